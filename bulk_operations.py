# bulk_operations.py
"""
Bulk operation lifecycle: drain, submit, poll until done.

Shopify only allows one bulk query per shop at a time, so every submission
first waits for whatever operation is currently running (ours or another
process's) to reach a terminal status.
"""

import threading
from typing import Dict, NamedTuple, Optional

from bulk_queries import (
    CANCEL_OPERATION_MUTATION,
    CURRENT_OPERATION_QUERY,
    OPERATION_BY_ID_QUERY,
)
from shopify_client import ShopifyClient
from shopify_errors import OperationFailed, OperationSubmissionRejected, SyncCancelled
from sync_config import DRAIN_INTERVAL, POLL_INTERVAL_MS, log

FINISHED_STATUSES = ('COMPLETED', 'FAILED', 'CANCELED')


class ResultLocation(NamedTuple):
    object_count: int
    url: Optional[str]


class BulkOperations:
    def __init__(
        self,
        client: ShopifyClient,
        cancel_event: Optional[threading.Event] = None,
        poll_interval_ms: int = POLL_INTERVAL_MS,
        drain_interval: float = DRAIN_INTERVAL,
    ):
        self.client = client
        self.cancel_event = cancel_event or threading.Event()
        self.poll_interval_ms = poll_interval_ms
        self.drain_interval = drain_interval
        # drain + submit is atomic within this process
        self._submit_lock = threading.Lock()

    # =========================================================================
    # REMOTE CALLS
    # =========================================================================

    def current_operation(self) -> Optional[Dict]:
        return self.client.request(CURRENT_OPERATION_QUERY).get('currentBulkOperation')

    def create_operation(self, operation_query: str) -> Dict:
        """Submit a bulkOperationRunQuery mutation and return the new operation."""
        result = self.client.request(operation_query).get('bulkOperationRunQuery') or {}
        user_errors = result.get('userErrors') or []
        if user_errors:
            log(f"Bulk query errors: {user_errors}", 'ERROR')
            raise OperationSubmissionRejected(user_errors)
        return result['bulkOperation']

    def cancel_operation(self, operation_id: str) -> Dict:
        result = self.client.request(CANCEL_OPERATION_MUTATION, {'id': operation_id})
        return result.get('bulkOperationCancel') or {}

    # =========================================================================
    # WAITING
    # =========================================================================

    def _wait(self, seconds: float):
        if self.cancel_event.wait(seconds):
            raise SyncCancelled("Sync cancelled while waiting on a bulk operation")

    def _check_cancelled(self):
        if self.cancel_event.is_set():
            raise SyncCancelled("Sync cancelled")

    def finish_last_operation(self):
        """Block until no bulk operation is running for this shop."""
        while True:
            self._check_cancelled()
            operation = self.current_operation()
            if not operation or not operation.get('id'):
                return

            log(f"Waiting for previous operation {operation['id']} (status: {operation.get('status')})", 'DEBUG')
            if operation.get('status') in FINISHED_STATUSES:
                return

            self._wait(self.drain_interval)

    def completed_operation(self, operation_id: str, interval: Optional[int] = None) -> Dict:
        """
        Poll an operation by id until it completes.

        interval is in milliseconds. Raises OperationFailed with the last
        poll response when the operation fails or is canceled remotely.
        """
        interval = self.poll_interval_ms if interval is None else interval

        while True:
            self._check_cancelled()
            operation = self.client.request(OPERATION_BY_ID_QUERY, {'id': operation_id}).get('node') or {}
            status = operation.get('status')

            log(
                f"Waiting for operation {operation_id} - status: {status}, "
                f"objects: {operation.get('objectCount')}, url: {operation.get('url')}",
                'DEBUG'
            )

            if status in ('FAILED', 'CANCELED'):
                raise OperationFailed(operation)

            if status == 'COMPLETED':
                return operation

            self._wait(interval / 1000)

    def submit_and_await(self, operation_query: str) -> ResultLocation:
        """
        Drain, submit the bulk query and wait for completion.

        If the sync is cancelled while our operation is running, the remote
        operation is cancelled too so it doesn't block the next run.
        """
        with self._submit_lock:
            self.finish_last_operation()
            operation = self.create_operation(operation_query)
        log(f"Started bulk operation {operation['id']}")

        try:
            completed = self.completed_operation(operation['id'])
        except SyncCancelled:
            log(f"Cancelling bulk operation {operation['id']}", 'WARNING')
            self.cancel_operation(operation['id'])
            raise

        return ResultLocation(
            object_count=int(completed.get('objectCount') or '0', 10),
            url=completed.get('url'),
        )
