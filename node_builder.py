# node_builder.py
"""
Turn bulk result records into store-ready nodes.

Bulk results are a flattened forest: a variant line carries
``__parentId: gid://shopify/Product/123`` instead of being nested under its
product, and parents may appear before or after their children. Nodes are
therefore never linked by reference. Each child gets a foreign key field
named after its parent's type (``productId``) holding the parent's global id,
and relationships are resolved later by querying the store.
"""

import copy
import hashlib
import json
import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from shopify_errors import AssetFetchFailure, UnrecognizedIdentifier
from sync_config import DOWNLOAD_IMAGES, MAX_CONCURRENT, TYPE_PREFIX, log

# 'gid://shopify/Metafield/6936247730264'
ID_PATTERN = re.compile(r'^gid://shopify/(\w+)/(.+)$')

REMOTE_TYPES = (
    'LineItem',
    'Metafield',
    'Order',
    'Product',
    'ProductImage',
    'ProductVariant',
    'ProductVariantPricePair',
)

NODE_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, 'https://shopify.com/bulk-node-source')

FetchAndStore = Callable[[str, str], str]


# =============================================================================
# IDS AND DIGESTS
# =============================================================================

def parse_global_id(global_id) -> Tuple[str, str]:
    """Return (remote_type, local_id) for a gid://shopify/... identifier."""
    match = ID_PATTERN.match(global_id) if isinstance(global_id, str) else None
    if not match:
        raise UnrecognizedIdentifier(global_id)
    return match.group(1), match.group(2)


def foreign_key_field(remote_type: str) -> str:
    return f"{remote_type[0].lower()}{remote_type[1:]}Id"


def node_type(remote_type: str, type_prefix: str = TYPE_PREFIX) -> str:
    return f"{type_prefix}Shopify{remote_type}"


def attach_parent_id(record: Dict):
    """Replace ``__parentId`` with a typed foreign key, in place."""
    if '__parentId' not in record:
        return
    parent_id = record['__parentId']
    parent_type, _ = parse_global_id(parent_id)
    record[foreign_key_field(parent_type)] = parent_id
    del record['__parentId']


def create_node_id(global_id: str, type_prefix: str = TYPE_PREFIX) -> str:
    return str(uuid.uuid5(NODE_ID_NAMESPACE, f"{type_prefix}{global_id}"))


def create_content_digest(obj: Dict) -> str:
    canonical = json.dumps(obj, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.md5(canonical.encode('utf-8')).hexdigest()


# =============================================================================
# NODE BUILDER
# =============================================================================

class NodeBuilder:
    """Builds nodes from raw records and runs the per-type processors."""

    def __init__(
        self,
        fetch_and_store: Optional[FetchAndStore] = None,
        download_images: bool = DOWNLOAD_IMAGES,
        type_prefix: str = TYPE_PREFIX,
        max_workers: int = MAX_CONCURRENT,
    ):
        if download_images and fetch_and_store is None:
            raise ValueError("download_images requires a fetch_and_store callable")

        self.fetch_and_store = fetch_and_store
        self.download_images = download_images
        self.type_prefix = type_prefix
        self.max_workers = max_workers

        # Every supported remote type has an entry; unknown types fall back
        # to the no-op processor in processor_for().
        self.processors: Dict[str, Callable[[Dict], None]] = {
            'LineItem': self.process_line_item,
            'Metafield': self.process_nothing,
            'Order': self.process_nothing,
            'Product': self.process_product,
            'ProductImage': self.process_product_image,
            'ProductVariant': self.process_nothing,
            'ProductVariantPricePair': self.process_nothing,
        }

    def processor_for(self, remote_type: str) -> Callable[[Dict], None]:
        return self.processors.get(remote_type, self.process_nothing)

    # =========================================================================
    # PROCESSORS
    # =========================================================================

    def process_nothing(self, node: Dict):
        pass

    def process_line_item(self, node: Dict):
        # Line items embed { product { id } }; keep only the key.
        product = node.pop('product', None)
        node['productId'] = product.get('id') if product else None

    def process_product_image(self, node: Dict):
        if not self.download_images:
            return
        node['localFile'] = self._fetch_asset(node.get('originalSrc'), node['id'])

    def process_product(self, node: Dict):
        if not self.download_images:
            return
        featured_image = node.get('featuredImage')
        if featured_image:
            featured_image['localFile'] = self._fetch_asset(featured_image.get('originalSrc'), node['id'])

    def _fetch_asset(self, url: Optional[str], node_id: str) -> str:
        try:
            if not url:
                raise ValueError("missing image URL")
            return self.fetch_and_store(url, node_id)
        except AssetFetchFailure:
            raise
        except Exception as e:
            raise AssetFetchFailure(url, node_id, e) from e

    # =========================================================================
    # BUILDING
    # =========================================================================

    def build_node(self, record: Dict) -> Dict:
        """
        Build one node from a decoded bulk record.

        The input record is left untouched. Raises UnrecognizedIdentifier for
        ids (own or parent) that aren't Shopify global ids, and
        AssetFetchFailure when an image download fails.
        """
        result = copy.deepcopy(record)
        global_id = result.get('id')
        remote_type, local_id = parse_global_id(global_id)

        attach_parent_id(result)

        node = {
            **result,
            'globalId': global_id,
            'shopifyId': local_id,
            'id': create_node_id(global_id, self.type_prefix),
            'internal': {
                'type': node_type(remote_type, self.type_prefix),
                'contentDigest': create_content_digest(result),
            },
        }

        self.processor_for(remote_type)(node)
        return node

    def build_nodes(self, records: Iterable[Dict]) -> List[Dict]:
        """
        Build a batch of records concurrently.

        Records are submitted as they are read, so a streamed source is
        consumed while earlier records build. Returns only once every build
        has finished; the first failure is raised and nothing is returned.
        """
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self.build_node, record) for record in records]
            try:
                nodes = [future.result() for future in futures]
            except Exception:
                for future in futures:
                    future.cancel()
                raise

        log(f"Built {len(nodes)} nodes", 'DEBUG')
        return nodes
