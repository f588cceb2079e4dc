# remote_files.py
"""Download remote images and register them as File nodes."""

import hashlib
import os
import tempfile
import threading
import uuid
import requests
from typing import Dict, Optional
from urllib.parse import urlparse

from node_builder import NODE_ID_NAMESPACE, create_content_digest
from node_store import NodeStore
from sync_config import DOWNLOAD_TIMEOUT, FILES_DIR, log

FILE_NODE_TYPE = 'File'


class RemoteFileStore:
    def __init__(
        self,
        store: NodeStore,
        directory: str = FILES_DIR,
        session: Optional[requests.Session] = None,
        timeout: int = DOWNLOAD_TIMEOUT,
    ):
        self.store = store
        self.directory = directory
        self.session = session or requests.Session()
        self.timeout = timeout
        # one lock per local path; builds run in parallel and often share a URL
        self._path_locks: Dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def local_path(self, url: str) -> str:
        ext = os.path.splitext(urlparse(url).path)[1]
        name = hashlib.md5(url.encode('utf-8')).hexdigest()
        return os.path.join(self.directory, f"{name}{ext}")

    def _lock_for(self, path: str) -> threading.Lock:
        with self._locks_lock:
            return self._path_locks.setdefault(path, threading.Lock())

    def download(self, url: str, path: str):
        os.makedirs(self.directory, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=self.directory, suffix='.part', delete=False) as f:
            tmp_path = f.name
            try:
                with self.session.get(url, stream=True, timeout=self.timeout) as response:
                    response.raise_for_status()
                    for chunk in response.iter_content(chunk_size=65536):
                        f.write(chunk)
            except Exception:
                f.close()
                os.remove(tmp_path)
                raise
        os.replace(tmp_path, path)

    def fetch_and_store(self, url: str, parent_node_id: str) -> str:
        """Download url (once) and return the id of its File node."""
        path = self.local_path(url)
        with self._lock_for(path):
            if not os.path.exists(path):
                log(f"Downloading {url}", 'DEBUG')
                self.download(url, path)

        file_node = {
            'id': str(uuid.uuid5(NODE_ID_NAMESPACE, f"File >>> {url}")),
            'parent': parent_node_id,
            'url': url,
            'absolutePath': os.path.abspath(path),
            'size': os.path.getsize(path),
            'internal': {'type': FILE_NODE_TYPE},
        }
        file_node['internal']['contentDigest'] = create_content_digest(
            {k: v for k, v in file_node.items() if k != 'internal'}
        )
        self.store.create_node(file_node)
        return file_node['id']
