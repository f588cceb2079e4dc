"""Tests for jsonl_stream."""

from unittest.mock import MagicMock

import pytest

from jsonl_stream import iter_records, open_result_stream
from shopify_errors import MalformedRecord


def test_iter_records_decodes_bytes_and_str_in_order():
    lines = [
        b'{"id": "gid://shopify/Product/1"}',
        "",
        '{"id": "gid://shopify/ProductVariant/2", "__parentId": "gid://shopify/Product/1"}',
        b"   ",
    ]
    records = list(iter_records(lines))

    assert [r["id"] for r in records] == [
        "gid://shopify/Product/1",
        "gid://shopify/ProductVariant/2",
    ]


def test_iter_records_malformed_line_identifies_the_line():
    lines = ['{"id": "gid://shopify/Product/1"}', '{"id": "gid://shopify/Prod']

    with pytest.raises(MalformedRecord) as exc_info:
        list(iter_records(lines))

    assert exc_info.value.line == '{"id": "gid://shopify/Prod'


def test_iter_records_rejects_non_object_lines():
    with pytest.raises(MalformedRecord):
        list(iter_records(["[1, 2, 3]"]))


def test_iter_records_is_lazy():
    def lines():
        yield '{"id": "gid://shopify/Product/1"}'
        raise AssertionError("read past the first record")

    records = iter_records(lines())
    assert next(records)["id"] == "gid://shopify/Product/1"


def test_open_result_stream_streams_and_closes():
    response = MagicMock()
    response.iter_lines.return_value = iter([b'{"id": "gid://shopify/Product/1"}'])
    session = MagicMock()
    session.get.return_value = response

    lines = list(open_result_stream("https://storage.example.com/r.jsonl", session=session))

    assert lines == [b'{"id": "gid://shopify/Product/1"}']
    assert session.get.call_args.kwargs["stream"] is True
    response.close.assert_called_once()
