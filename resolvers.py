# resolvers.py
"""
Read-side relationship lookups over the node store.

Children point at their parent through a ``<parentType>Id`` field holding the
parent's global id, so "children of X" is an equality query. Nothing is
cached; every call sees the store as it is now.
"""

from typing import Dict, List, Optional

from node_builder import foreign_key_field, node_type, parse_global_id
from node_store import NodeStore
from sync_config import TYPE_PREFIX


def children_of(
    store: NodeStore,
    parent: Dict,
    child_remote_type: str,
    foreign_key: Optional[str] = None,
    type_prefix: str = TYPE_PREFIX,
) -> List[Dict]:
    """Nodes of child_remote_type whose foreign key references parent."""
    if foreign_key is None:
        parent_remote_type, _ = parse_global_id(parent['globalId'])
        foreign_key = foreign_key_field(parent_remote_type)
    return store.run_query(node_type(child_remote_type, type_prefix), foreign_key, parent['globalId'])


def linked_node(
    store: NodeStore,
    child: Dict,
    parent_remote_type: str,
    type_prefix: str = TYPE_PREFIX,
) -> Optional[Dict]:
    """Follow a child's foreign key back to its parent, if it is stored."""
    parent_global_id = child.get(foreign_key_field(parent_remote_type))
    if not parent_global_id:
        return None
    matches = store.run_query(node_type(parent_remote_type, type_prefix), 'globalId', parent_global_id)
    return matches[0] if matches else None


# =============================================================================
# SCHEMA RELATIONSHIPS
# =============================================================================

def order_line_items(store: NodeStore, order: Dict, type_prefix: str = TYPE_PREFIX) -> List[Dict]:
    return children_of(store, order, 'LineItem', type_prefix=type_prefix)


def product_variants(store: NodeStore, product: Dict, type_prefix: str = TYPE_PREFIX) -> List[Dict]:
    return children_of(store, product, 'ProductVariant', type_prefix=type_prefix)


def product_images(store: NodeStore, product: Dict, type_prefix: str = TYPE_PREFIX) -> List[Dict]:
    return children_of(store, product, 'ProductImage', type_prefix=type_prefix)


def variant_metafields(store: NodeStore, variant: Dict, type_prefix: str = TYPE_PREFIX) -> List[Dict]:
    return children_of(store, variant, 'Metafield', type_prefix=type_prefix)


def variant_presentment_prices(store: NodeStore, variant: Dict, type_prefix: str = TYPE_PREFIX) -> List[Dict]:
    return children_of(store, variant, 'ProductVariantPricePair', type_prefix=type_prefix)


def linked_product(store: NodeStore, node: Dict, type_prefix: str = TYPE_PREFIX) -> Optional[Dict]:
    """Product of a variant, image or line item."""
    return linked_node(store, node, 'Product', type_prefix)


def linked_variant(store: NodeStore, node: Dict, type_prefix: str = TYPE_PREFIX) -> Optional[Dict]:
    """Variant of a metafield or presentment price pair."""
    return linked_node(store, node, 'ProductVariant', type_prefix)
