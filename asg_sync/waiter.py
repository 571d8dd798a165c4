import time

import structlog

from .config import MAX_RETRIES, SLEEP_PERIOD
from .errors import OperationTimeoutError

log = structlog.get_logger()


class OperationWaiter:
    """
    Blocks until asynchronous backend operations report success.

    Every pass polls each operation that is still pending; operations reporting
    the backend's success status are dropped from the pending set, anything
    else (submitted, in progress, failed) keeps them pending. After
    `max_retries` passes the last known status of every pending operation is
    logged and OperationTimeoutError is raised.
    """

    def __init__(self, backend, sleep_period=SLEEP_PERIOD, max_retries=MAX_RETRIES, sleep=time.sleep):
        self.backend = backend
        self.sleep_period = sleep_period
        self.max_retries = max_retries
        self._sleep = sleep

    def wait(self, operations):
        """
        Waits for `operations` to complete.

        Args:
            operations (list[PendingOperation]): Operations submitted during the run.

        Returns:
            dict: The final OperationStatus of every operation, by operation id.

        Raises:
            OperationTimeoutError: If the retry budget runs out first.
        """
        pending = {op.operation_id: op for op in operations}
        completed = {}
        passes = 0

        while pending:
            passes += 1
            log.info("Pending operations", count=len(pending), attempt=passes)
            for operation_id in list(pending):
                status = self.backend.get_operation_status(operation_id)
                log.info("Operation status", operation_id=operation_id, status=status.status)
                if status.succeeded:
                    completed[operation_id] = status
                    del pending[operation_id]

            if not pending:
                break
            if passes >= self.max_retries:
                self._report_failures(pending, passes)
            self._sleep(self.sleep_period)

        return completed

    def _report_failures(self, pending, passes):
        log.critical("Operations failed to complete", retries=passes, pending=len(pending))
        statuses = []
        for operation_id, op in pending.items():
            status = self.backend.get_operation_status(operation_id)
            log.critical(
                "Operation failed",
                operation_id=operation_id,
                kind=op.kind.value,
                description=op.description,
                status=status.status,
                error_message=status.error_message,
            )
            statuses.append(status)
        raise OperationTimeoutError(statuses, passes)
