from abc import ABC, abstractmethod

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from .errors import BackendRejectionError

log = structlog.get_logger()

# Stands in for identifiers that a mutating call would have returned in no-op mode.
NOOP_ID = "noop"


class EndpointBackend(ABC):
    """
    A DNS or service-registry backend holding the endpoints of one fleet.

    Endpoints live in a container resource (a record name inside a hosted
    zone, or a service inside a namespace) which must be resolved with
    `ensure_container` before endpoints can be listed, created or deleted.
    Endpoints are matched against desired instances on `key_field`.
    """

    key_field = "identifier"

    def __init__(self, noop=False):
        self.noop = noop

    def _submit(self, action, call, **kwargs):
        """
        Submits a mutating API call.

        In no-op mode the call is only logged and None is returned. A call
        rejected by the backend raises BackendRejectionError; it is not retried.
        """
        if self.noop:
            log.info("No-op mode, skipping call", action=action, params=kwargs)
            return None
        log.debug("Submitting call", action=action, params=kwargs)
        try:
            return call(**kwargs)
        except (ClientError, BotoCoreError) as e:
            log.error("Backend rejected call", action=action, error=str(e))
            raise BackendRejectionError(action, e) from e

    def is_complete(self, endpoint):
        """Whether an endpoint can serve as a match; incomplete ones are replaced."""
        return True

    @abstractmethod
    def ensure_container(self, waiter):
        """Looks up, or creates, the container the endpoints live in."""

    @abstractmethod
    def list_endpoints(self):
        """Returns the endpoints currently registered, as ManagedEndpoint objects."""

    @abstractmethod
    def create_endpoint(self, instance):
        """Registers a DesiredInstance. Returns the resulting PendingOperations."""

    @abstractmethod
    def delete_endpoint(self, endpoint):
        """Removes a ManagedEndpoint. Returns the resulting PendingOperations."""

    @abstractmethod
    def get_operation_status(self, operation_id):
        """Returns the OperationStatus of an asynchronous operation."""

    @abstractmethod
    def delete_container(self):
        """Destroys the endpoint container. Returns a PendingOperation or None."""

    @abstractmethod
    def delete_namespace(self):
        """Destroys the namespace holding the container. Returns a PendingOperation or None."""
