#!/usr/bin/env python3
# sync_shopify_nodes.py
"""
Shopify to local node store sync

- First run (no LAST_BUILD_TIME): one bulk query per collection, every
  result becomes a node
- Later runs: touch everything already stored, run incremental bulk
  queries for objects updated since the last build, replace the variants of
  changed products, then delete nodes reported by destroy events
- LAST_BUILD_TIME only moves forward when the whole pass succeeds
"""

import signal
import sys
import threading
import time
import requests
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from bulk_operations import BulkOperations
from bulk_queries import orders_query, products_query
from events_api import EventsApi
from jsonl_stream import iter_records, open_result_stream
from node_builder import REMOTE_TYPES, NodeBuilder, node_type
from node_store import NodeStore
from remote_files import FILE_NODE_TYPE, RemoteFileStore
from shopify_client import ShopifyClient
from shopify_errors import OperationSubmissionRejected, ShopifySyncError, SyncCancelled
from sync_config import (
    DOWNLOAD_IMAGES,
    LAST_BUILD_TIME_KEY,
    SHOPIFY_ACCESS_TOKEN,
    SHOPIFY_CONNECTIONS,
    TYPE_PREFIX,
    log,
)

Processor = Callable[[List[Dict]], None]


class ShopifyNodeSource:
    def __init__(
        self,
        operations: BulkOperations,
        builder: NodeBuilder,
        store: NodeStore,
        events: EventsApi,
        connections: List[str] = SHOPIFY_CONNECTIONS,
        type_prefix: str = TYPE_PREFIX,
        open_stream: Callable = open_result_stream,
    ):
        self.operations = operations
        self.builder = builder
        self.store = store
        self.events = events
        self.connections = connections
        self.type_prefix = type_prefix
        self.open_stream = open_stream
        self.cancel_event = operations.cancel_event
        self.stats = Counter()
        self._stats_lock = threading.Lock()

    def _count(self, key: str, n: int = 1):
        with self._stats_lock:
            self.stats[key] += n

    def _type(self, remote_type: str) -> str:
        return node_type(remote_type, self.type_prefix)

    # =========================================================================
    # ONE BULK OPERATION
    # =========================================================================

    def source_from_operation(self, name: str, operation_query: str, processor: Optional[Processor] = None) -> int:
        """
        Run one bulk query and publish its results.

        Every record is built before anything is published, so a failure
        anywhere in the batch leaves the store untouched by this operation.
        """
        if self.cancel_event.is_set():
            raise SyncCancelled(f"Sync cancelled before {name} started")

        start = time.time()
        log(f"[{name}] Waiting for bulk operation...")
        location = self.operations.submit_and_await(operation_query)

        if location.object_count == 0:
            log(f"[{name}] No data was returned for this operation")
            return 0
        if not location.url:
            raise ShopifySyncError(f"[{name}] Bulk operation reported {location.object_count} objects but no url")

        log(f"[{name}] Bulk operation completed with {location.object_count} objects, building nodes...")
        nodes = self.builder.build_nodes(iter_records(self.open_stream(location.url)))

        if processor:
            processor(nodes)

        created = 0
        for node in nodes:
            if self.store.create_node(node):
                created += 1
        self._count('created', created)
        self._count('unchanged', len(nodes) - created)

        log(f"[{name}] ✓ Sourced {len(nodes)} nodes ({created} new or changed) in {time.time() - start:.1f}s")
        return len(nodes)

    def _run_concurrently(self, jobs: List[Tuple[str, Callable[[], int]]]) -> Dict[str, int]:
        """Run collection pipelines side by side; re-raise the first failure once all have stopped."""
        results = {}
        errors = []

        with ThreadPoolExecutor(max_workers=len(jobs)) as executor:
            futures = {executor.submit(fn): name for name, fn in jobs}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    results[name] = future.result()
                except OperationSubmissionRejected as e:
                    # A rejected query aborts the whole pass
                    log(f"[{name}] {e}", 'ERROR')
                    self.cancel_event.set()
                    errors.append(e)
                except Exception as e:
                    log(f"[{name}] failed: {e}", 'ERROR')
                    errors.append(e)

        if errors:
            raise errors[0]
        return results

    # =========================================================================
    # FULL LOAD
    # =========================================================================

    def source_all_nodes(self) -> Dict[str, int]:
        log("No previous build found, sourcing all nodes...")
        jobs = [('products', lambda: self.source_from_operation('products', products_query()))]
        if 'orders' in self.connections:
            jobs.append(('orders', lambda: self.source_from_operation('orders', orders_query())))
        return self._run_concurrently(jobs)

    # =========================================================================
    # INCREMENTAL LOAD
    # =========================================================================

    def touch_all_nodes(self) -> int:
        touched = 0
        for remote_type in REMOTE_TYPES:
            for node in self.store.get_nodes_by_type(self._type(remote_type)):
                self.store.touch_node(node['id'])
                touched += 1
        for node in self.store.get_nodes_by_type(FILE_NODE_TYPE):
            self.store.touch_node(node['id'])
            touched += 1
        self._count('touched', touched)
        log(f"Touched {touched} existing nodes")
        return touched

    def incremental_products_processor(self, nodes: List[Dict]):
        """
        Drop the stored variants (and their metafields) of every product in
        this batch before the batch is published.

        The events API doesn't report deleted variants, so a changed product
        gets its variant set replaced wholesale by what the batch contains.
        """
        product_ids = {
            n['globalId'] for n in nodes if n['internal']['type'] == self._type('Product')
        }
        if not product_ids:
            return

        variants = [
            v for v in self.store.get_nodes_by_type(self._type('ProductVariant'))
            if v.get('productId') in product_ids
        ]
        for variant in variants:
            self.store.delete_node(variant)

        variant_ids = {v['globalId'] for v in variants}
        metafields = [
            m for m in self.store.get_nodes_by_type(self._type('Metafield'))
            if m.get('productVariantId') in variant_ids
        ]
        for metafield in metafields:
            self.store.delete_node(metafield)

        self._count('deleted', len(variants) + len(metafields))
        log(f"Replacing variants of {len(product_ids)} changed products "
            f"({len(variants)} variants, {len(metafields)} metafields removed)")

    def delete_destroyed_nodes(self, since: datetime) -> int:
        """Delete stored nodes that have a destroy event after ``since``. Children are left alone."""
        events = self.events.fetch_destroy_events_since(since)
        if not events:
            return 0

        destroyed = {
            (str(e['subject_id']), self._type(e['subject_type'])) for e in events
        }

        deleted = 0
        for remote_type in REMOTE_TYPES:
            for node in self.store.get_nodes_by_type(self._type(remote_type)):
                if (node['shopifyId'], node['internal']['type']) in destroyed:
                    self.store.delete_node(node)
                    deleted += 1

        self._count('deleted', deleted)
        log(f"Deleted {deleted} nodes from {len(events)} destroy events")
        return deleted

    def source_changed_nodes(self, since: datetime) -> Dict[str, int]:
        log(f"Sourcing nodes changed since {since.isoformat()}...")
        self.touch_all_nodes()

        jobs = [(
            'products',
            lambda: self.source_from_operation(
                'products', products_query(since), self.incremental_products_processor
            ),
        )]
        if 'orders' in self.connections:
            jobs.append(('orders', lambda: self.source_from_operation('orders', orders_query(since))))
        results = self._run_concurrently(jobs)

        self.delete_destroyed_nodes(since)
        return results

    # =========================================================================
    # ENTRY
    # =========================================================================

    def source_nodes(self) -> Dict[str, int]:
        """Full or incremental pass depending on LAST_BUILD_TIME."""
        last_build_time = self.store.cache_get(LAST_BUILD_TIME_KEY)

        if last_build_time:
            since = datetime.fromtimestamp(last_build_time / 1000, tz=timezone.utc)
            results = self.source_changed_nodes(since)
        else:
            results = self.source_all_nodes()

        self.store.cache_set(LAST_BUILD_TIME_KEY, int(time.time() * 1000))
        return results


# =============================================================================
# MAIN
# =============================================================================

def main() -> int:
    start_time = time.time()

    log("=" * 70)
    log("Shopify bulk operation node sync")
    log("=" * 70)

    if not SHOPIFY_ACCESS_TOKEN:
        log("Error: SHOPIFY_ACCESS_TOKEN not set", 'ERROR')
        return 1

    cancel_event = threading.Event()

    def request_cancel(signum, frame):
        log("Cancellation requested, stopping at the next poll...", 'WARNING')
        cancel_event.set()

    signal.signal(signal.SIGINT, request_cancel)
    signal.signal(signal.SIGTERM, request_cancel)

    store = NodeStore()
    operations = BulkOperations(ShopifyClient(), cancel_event)
    files = RemoteFileStore(store) if DOWNLOAD_IMAGES else None
    builder = NodeBuilder(fetch_and_store=files.fetch_and_store if files else None)
    source = ShopifyNodeSource(operations, builder, store, EventsApi())

    try:
        results = source.source_nodes()
    except (ShopifySyncError, requests.RequestException) as e:
        log(f"Sync failed, LAST_BUILD_TIME not advanced: {e}", 'ERROR')
        return 1

    stale = store.sweep_stale()
    store.save()

    total_time = time.time() - start_time
    log("\n" + "=" * 70)
    log("SYNC COMPLETE")
    log("=" * 70)
    log(f"Total time: {total_time:.1f}s")
    for name, count in results.items():
        log(f"  {name}: {count} records")
    log(f"  Created/changed: {source.stats['created']}")
    log(f"  Unchanged: {source.stats['unchanged']}")
    log(f"  Touched: {source.stats['touched']}")
    log(f"  Deleted: {source.stats['deleted']}")
    log(f"  Stale removed: {stale}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
