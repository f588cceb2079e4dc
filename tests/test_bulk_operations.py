"""Tests for bulk_operations.BulkOperations."""

import threading

import pytest

from bulk_operations import BulkOperations, ResultLocation
from bulk_queries import (
    CANCEL_OPERATION_MUTATION,
    CURRENT_OPERATION_QUERY,
    OPERATION_BY_ID_QUERY,
    products_query,
)
from shopify_errors import OperationFailed, OperationSubmissionRejected, SyncCancelled

OP_ID = "gid://shopify/BulkOperation/1"


class FakeClient:
    """Answers the bulk operation documents from scripted responses."""

    def __init__(self, current=None, polls=None, submit=None, on_poll=None):
        self.current = list(current or [])
        self.polls = list(polls or [])
        self.submit = submit or {
            "bulkOperationRunQuery": {
                "bulkOperation": {"id": OP_ID, "status": "CREATED"},
                "userErrors": [],
            }
        }
        self.on_poll = on_poll
        self.calls = []

    def request(self, query, variables=None):
        if query == CURRENT_OPERATION_QUERY:
            self.calls.append("current")
            return {"currentBulkOperation": self.current.pop(0) if self.current else None}
        if query == OPERATION_BY_ID_QUERY:
            self.calls.append(("poll", variables["id"]))
            if self.on_poll:
                self.on_poll()
            return {"node": self.polls.pop(0)}
        if query == CANCEL_OPERATION_MUTATION:
            self.calls.append(("cancel", variables["id"]))
            return {"bulkOperationCancel": {"bulkOperation": {"id": variables["id"], "status": "CANCELING"}}}
        self.calls.append("submit")
        return self.submit


def _completed(count="3", url="https://storage.example.com/result.jsonl"):
    return {"id": OP_ID, "status": "COMPLETED", "objectCount": count, "url": url}


def _operations(client, cancel_event=None):
    return BulkOperations(client, cancel_event, poll_interval_ms=0, drain_interval=0)


def test_submit_and_await_returns_result_location():
    client = FakeClient(polls=[{"id": OP_ID, "status": "RUNNING"}, _completed("12")])
    location = _operations(client).submit_and_await(products_query())

    assert location == ResultLocation(12, "https://storage.example.com/result.jsonl")
    assert client.calls == ["current", "submit", ("poll", OP_ID), ("poll", OP_ID)]


def test_object_count_is_parsed_as_base_10():
    client = FakeClient(polls=[_completed("010")])
    assert _operations(client).submit_and_await(products_query()).object_count == 10


def test_zero_object_count_is_not_an_error():
    client = FakeClient(polls=[_completed("0", url=None)])
    location = _operations(client).submit_and_await(products_query())
    assert location.object_count == 0
    assert location.url is None


def test_failed_operation_raises_with_last_response():
    failed = {"id": OP_ID, "status": "FAILED", "errorCode": "INTERNAL_SERVER_ERROR"}
    client = FakeClient(polls=[{"id": OP_ID, "status": "RUNNING"}, failed])

    with pytest.raises(OperationFailed) as exc_info:
        _operations(client).submit_and_await(products_query())

    assert exc_info.value.operation == failed


def test_remotely_canceled_operation_raises():
    client = FakeClient(polls=[{"id": OP_ID, "status": "CANCELED"}])
    with pytest.raises(OperationFailed):
        _operations(client).completed_operation(OP_ID)


def test_user_errors_abort_without_polling():
    user_errors = [{"field": ["query"], "message": "Invalid bulk query"}]
    client = FakeClient(submit={"bulkOperationRunQuery": {"bulkOperation": None, "userErrors": user_errors}})

    with pytest.raises(OperationSubmissionRejected) as exc_info:
        _operations(client).submit_and_await(products_query())

    assert exc_info.value.user_errors == user_errors
    assert not any(isinstance(c, tuple) for c in client.calls)


def test_drain_waits_for_running_operation_before_submitting():
    other = "gid://shopify/BulkOperation/99"
    client = FakeClient(
        current=[
            {"id": other, "status": "RUNNING"},
            {"id": other, "status": "RUNNING"},
            {"id": other, "status": "COMPLETED"},
        ],
        polls=[_completed()],
    )
    _operations(client).submit_and_await(products_query())

    assert client.calls[:4] == ["current", "current", "current", "submit"]


def test_drain_treats_unknown_status_as_running():
    other = "gid://shopify/BulkOperation/99"
    client = FakeClient(current=[{"id": other, "status": "CREATED"}, {"id": other, "status": "CANCELED"}])
    _operations(client).finish_last_operation()
    assert client.calls == ["current", "current"]


def test_completed_operation_interval_override():
    client = FakeClient(polls=[{"id": OP_ID, "status": "RUNNING"}, _completed()])
    ops = BulkOperations(client, poll_interval_ms=60000, drain_interval=0)

    assert ops.completed_operation(OP_ID, interval=0)["status"] == "COMPLETED"


def test_cancel_while_polling_cancels_remote_operation():
    cancel_event = threading.Event()
    client = FakeClient(polls=[{"id": OP_ID, "status": "RUNNING"}], on_poll=cancel_event.set)

    with pytest.raises(SyncCancelled):
        _operations(client, cancel_event).submit_and_await(products_query())

    assert client.calls[-1] == ("cancel", OP_ID)


def test_cancelled_before_drain_submits_nothing():
    cancel_event = threading.Event()
    cancel_event.set()
    client = FakeClient()

    with pytest.raises(SyncCancelled):
        _operations(client, cancel_event).submit_and_await(products_query())

    assert client.calls == []


class SingleSlotShop:
    """A shop that reports whichever operation is running as currentBulkOperation."""

    def __init__(self, polls_until_complete=3):
        self.polls_until_complete = polls_until_complete
        self.lock = threading.Lock()
        self.running = None
        self.polls = {}
        self.next_id = 1
        self.timeline = []

    def request(self, query, variables=None):
        with self.lock:
            if query == CURRENT_OPERATION_QUERY:
                if self.running is None:
                    return {"currentBulkOperation": None}
                return {"currentBulkOperation": {"id": self.running, "status": "RUNNING"}}
            if query == OPERATION_BY_ID_QUERY:
                op_id = variables["id"]
                self.polls[op_id] = self.polls.get(op_id, 0) + 1
                if self.polls[op_id] < self.polls_until_complete:
                    return {"node": {"id": op_id, "status": "RUNNING"}}
                self.timeline.append(("completed", op_id))
                self.running = None
                return {"node": {"id": op_id, "status": "COMPLETED", "objectCount": "1", "url": op_id}}
            op_id = f"gid://shopify/BulkOperation/{self.next_id}"
            self.next_id += 1
            self.timeline.append(("submit", op_id))
            self.running = op_id
            return {"bulkOperationRunQuery": {"bulkOperation": {"id": op_id, "status": "CREATED"}, "userErrors": []}}


def test_concurrent_collections_submit_one_at_a_time():
    shop = SingleSlotShop()
    ops = BulkOperations(shop, poll_interval_ms=10, drain_interval=0.01)
    start = threading.Barrier(2)
    results = []

    def run():
        start.wait()
        results.append(ops.submit_and_await(products_query()))

    threads = [threading.Thread(target=run) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    first, second = "gid://shopify/BulkOperation/1", "gid://shopify/BulkOperation/2"
    assert shop.timeline == [
        ("submit", first),
        ("completed", first),
        ("submit", second),
        ("completed", second),
    ]
    assert sorted(r.url for r in results) == [first, second]
