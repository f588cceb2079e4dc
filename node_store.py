# node_store.py
"""
JSON-file node store used as the sync target.

Holds nodes keyed by their stable id plus a small key-value cache (for
LAST_BUILD_TIME). Nodes that were neither created nor touched during a run
are considered stale and removed by sweep_stale().
"""

import json
import os
import threading
from typing import Any, Dict, List, Optional

from sync_config import NODE_STORE_PATH, log


class NodeStore:
    def __init__(self, path: Optional[str] = NODE_STORE_PATH):
        self.path = path
        self.nodes: Dict[str, Dict] = {}
        self.cache: Dict[str, Any] = {}
        self._touched = set()
        self._lock = threading.Lock()

        if path and os.path.exists(path):
            self.load()

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def load(self):
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        with self._lock:
            self.nodes = {node['id']: node for node in data.get('nodes', [])}
            self.cache = data.get('cache', {})
        log(f"Loaded {len(self.nodes)} nodes from {self.path}", 'DEBUG')

    def save(self):
        if not self.path:
            return
        with self._lock:
            data = {'cache': dict(self.cache), 'nodes': list(self.nodes.values())}
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)
        log(f"Saved {len(data['nodes'])} nodes to {self.path}", 'DEBUG')

    # =========================================================================
    # CACHE
    # =========================================================================

    def cache_get(self, key: str, default=None):
        with self._lock:
            return self.cache.get(key, default)

    def cache_set(self, key: str, value):
        with self._lock:
            self.cache[key] = value

    # =========================================================================
    # NODE ACTIONS
    # =========================================================================

    def create_node(self, node: Dict) -> bool:
        """Store a node. Returns False when an identical node (same digest) was already there."""
        node_id = node['id']
        with self._lock:
            self._touched.add(node_id)
            existing = self.nodes.get(node_id)
            if existing and existing['internal']['contentDigest'] == node['internal']['contentDigest']:
                return False
            self.nodes[node_id] = node
            return True

    def delete_node(self, node: Dict) -> bool:
        with self._lock:
            self._touched.discard(node['id'])
            return self.nodes.pop(node['id'], None) is not None

    def touch_node(self, node_id: str):
        with self._lock:
            if node_id in self.nodes:
                self._touched.add(node_id)

    def sweep_stale(self) -> int:
        """Delete every node that wasn't created or touched since the store was opened."""
        with self._lock:
            stale = [node_id for node_id in self.nodes if node_id not in self._touched]
            for node_id in stale:
                del self.nodes[node_id]
        if stale:
            log(f"Removed {len(stale)} stale nodes")
        return len(stale)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_node(self, node_id: str) -> Optional[Dict]:
        with self._lock:
            return self.nodes.get(node_id)

    def get_nodes_by_type(self, node_type: str) -> List[Dict]:
        with self._lock:
            return [n for n in self.nodes.values() if n['internal']['type'] == node_type]

    def run_query(self, node_type: str, field: str, value) -> List[Dict]:
        """All nodes of node_type whose field equals value."""
        with self._lock:
            return [
                n for n in self.nodes.values()
                if n['internal']['type'] == node_type and n.get(field) == value
            ]
