from dataclasses import dataclass, field

import structlog

log = structlog.get_logger()


@dataclass
class ReconcileResult:
    to_create: list = field(default_factory=list)
    to_remove: list = field(default_factory=list)
    unchanged: list = field(default_factory=list)
    operations: list = field(default_factory=list)


def compute_changes(desired, actual, key_field, is_complete=None):
    """
    Diffs the desired instances against the endpoints a backend holds.

    Matching is exact equality on `key_field` ("address" or "identifier").
    Desired entries sharing a key collapse onto the first one, and an actual
    endpoint whose key has already been seen is treated as surplus, so the
    result always leaves at most one endpoint per key. Endpoints rejected by
    `is_complete` never match; they are removed and their key created anew.

    Args:
        desired (list[DesiredInstance]): Instances that should be registered.
        actual (list[ManagedEndpoint]): Endpoints currently registered.
        key_field (str): Attribute both sides are keyed on.
        is_complete (callable): Optional predicate over ManagedEndpoint.

    Returns:
        tuple: (to_create, to_remove, unchanged), where to_create holds
               DesiredInstance entries and the other two ManagedEndpoint entries.
    """
    actual_by_key = {}
    to_remove = []
    for endpoint in actual:
        key = getattr(endpoint, key_field)
        if key is None or key in actual_by_key or (is_complete and not is_complete(endpoint)):
            to_remove.append(endpoint)
        else:
            actual_by_key[key] = endpoint

    to_create = []
    unchanged = []
    seen = set()
    for instance in desired:
        key = getattr(instance, key_field)
        if key in seen:
            log.warning("Skipping duplicate instance", key_field=key_field, key=key, identifier=instance.identifier)
            continue
        seen.add(key)
        if key in actual_by_key:
            unchanged.append(actual_by_key.pop(key))
        else:
            to_create.append(instance)

    to_remove.extend(actual_by_key.values())
    return to_create, to_remove, unchanged


class Reconciler:
    """Makes a backend's endpoint set match the desired instances."""

    def __init__(self, backend):
        self.backend = backend

    def reconcile(self, desired):
        actual = self.backend.list_endpoints()
        log.info("Found registered endpoints", count=len(actual))

        to_create, to_remove, unchanged = compute_changes(
            desired, actual, self.backend.key_field, is_complete=self.backend.is_complete
        )
        result = ReconcileResult(to_create=to_create, to_remove=to_remove, unchanged=unchanged)

        for endpoint in unchanged:
            log.debug("Endpoint already registered", identifier=endpoint.identifier, address=endpoint.address)

        for instance in to_create:
            log.info("Registering endpoint", identifier=instance.identifier, address=instance.address)
            result.operations.extend(self.backend.create_endpoint(instance))

        for endpoint in to_remove:
            log.info("Removing endpoint", identifier=endpoint.identifier, address=endpoint.address)
            result.operations.extend(self.backend.delete_endpoint(endpoint))

        return result
