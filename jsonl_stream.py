# jsonl_stream.py
"""Line-at-a-time reading of bulk operation result files."""

import json
import requests
from typing import Dict, Iterable, Iterator, Union

from shopify_errors import MalformedRecord
from sync_config import DOWNLOAD_TIMEOUT, log


def iter_records(lines: Iterable[Union[bytes, str]]) -> Iterator[Dict]:
    """
    Decode one JSON object per line, in input order.

    Blank lines are skipped. A line that isn't a JSON object raises
    MalformedRecord and ends the stream.
    """
    for line in lines:
        if isinstance(line, bytes):
            line = line.decode('utf-8')
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            raise MalformedRecord(line, str(e)) from e
        if not isinstance(obj, dict):
            raise MalformedRecord(line, 'expected a JSON object')
        yield obj


def open_result_stream(url: str, session=None, timeout: int = DOWNLOAD_TIMEOUT) -> Iterator[bytes]:
    """Stream the raw lines of a bulk result file without loading it whole."""
    log("Downloading bulk results...", 'DEBUG')
    http = session or requests
    response = http.get(url, stream=True, timeout=timeout)
    try:
        response.raise_for_status()
        yield from response.iter_lines()
    finally:
        response.close()
