from collections import Counter

from asg_sync.backend import EndpointBackend
from asg_sync.models import BackendResourceIds, ManagedEndpoint, OperationKind, OperationStatus, PendingOperation


class FakeBackend(EndpointBackend):
    """In-memory backend whose operations succeed after a configurable number of polls."""

    def __init__(self, endpoints=None, key_field="address", polls_until_success=None, noop=False):
        super().__init__(noop=noop)
        self.key_field = key_field
        self.endpoints = list(endpoints or [])
        self.polls_until_success = dict(polls_until_success or {})
        self.poll_counts = Counter()
        self.mutations = []
        self.container_deleted = False
        self.namespace_deleted = False
        self._next_id = 0

    def _operation(self, kind):
        self._next_id += 1
        return PendingOperation(operation_id=f"op-{self._next_id}", kind=kind)

    def ensure_container(self, waiter):
        return "container"

    def list_endpoints(self):
        return list(self.endpoints)

    def _create(self, instance):
        self.mutations.append(("create", instance.identifier, instance.address))
        self.endpoints.append(
            ManagedEndpoint(
                identifier=instance.identifier,
                address=instance.address,
                resource_ids=BackendResourceIds(registry_instance=instance.identifier),
            )
        )
        return self._operation(OperationKind.CREATE)

    def _delete(self, endpoint):
        self.mutations.append(("delete", endpoint.identifier, endpoint.address))
        self.endpoints.remove(endpoint)
        return self._operation(OperationKind.DELETE)

    def create_endpoint(self, instance):
        operation = self._submit("create_endpoint", self._create, instance=instance)
        return [operation] if operation else []

    def delete_endpoint(self, endpoint):
        operation = self._submit("delete_endpoint", self._delete, endpoint=endpoint)
        return [operation] if operation else []

    def get_operation_status(self, operation_id):
        self.poll_counts[operation_id] += 1
        succeeded = self.poll_counts[operation_id] >= self.polls_until_success.get(operation_id, 1)
        return OperationStatus(
            operation_id=operation_id,
            status="SUCCESS" if succeeded else "PENDING",
            succeeded=succeeded,
            error_message=None if succeeded else "still pending",
        )

    def _delete_container(self):
        self.mutations.append(("delete_container", None, None))
        self.container_deleted = True

    def delete_container(self):
        self._submit("delete_container", self._delete_container)
        return None

    def _delete_namespace(self):
        self.mutations.append(("delete_namespace", None, None))
        self.namespace_deleted = True
        return self._operation(OperationKind.DESTROY_CONTAINER)

    def delete_namespace(self):
        return self._submit("delete_namespace", self._delete_namespace)


def endpoint(identifier, address):
    return ManagedEndpoint(
        identifier=identifier,
        address=address,
        resource_ids=BackendResourceIds(registry_instance=identifier),
    )
