import structlog

log = structlog.get_logger()


class Pruner:
    """
    Removes the endpoint container, and optionally its namespace, once empty.

    The container is only destroyed when a fresh listing shows no endpoints;
    a non-empty container also keeps its namespace, whatever the configuration
    says. Namespace pruning only happens together with container pruning.
    """

    def __init__(self, backend, waiter, prune_service=False, prune_namespace=False):
        self.backend = backend
        self.waiter = waiter
        self.prune_service = prune_service
        self.prune_namespace = prune_namespace

    def prune(self):
        """
        Returns:
            tuple: (container_pruned, namespace_pruned)
        """
        if not self.prune_service:
            log.debug("Service pruning disabled")
            return False, False

        remaining = self.backend.list_endpoints()
        if remaining:
            log.info("Not pruning service, endpoints still registered", remaining=len(remaining))
            return False, False

        operation = self.backend.delete_container()
        if operation is not None:
            self.waiter.wait([operation])
        log.info("Pruned service")

        if not self.prune_namespace:
            return True, False

        operation = self.backend.delete_namespace()
        if operation is not None:
            self.waiter.wait([operation])
        log.info("Pruned namespace")
        return True, True
