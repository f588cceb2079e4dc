# shopify_errors.py
"""Errors raised while sourcing nodes from Shopify bulk operations."""

from typing import Dict, List, Optional


class ShopifySyncError(Exception):
    pass


class ShopifyGraphQLError(ShopifySyncError):
    """The Admin API answered with a top-level GraphQL ``errors`` array."""

    def __init__(self, errors: List[Dict]):
        self.errors = errors
        messages = '; '.join(e.get('message', str(e)) for e in errors)
        super().__init__(f"GraphQL request failed: {messages}")


class OperationSubmissionRejected(ShopifySyncError):
    """bulkOperationRunQuery returned userErrors. Never retried."""

    def __init__(self, user_errors: List[Dict]):
        self.user_errors = user_errors
        super().__init__(f"Couldn't perform bulk operation: {user_errors}")


class OperationFailed(ShopifySyncError):
    """A bulk operation reached FAILED (or CANCELED) status."""

    def __init__(self, operation: Dict):
        self.operation = operation
        super().__init__(
            f"Bulk operation {operation.get('id')} ended with status "
            f"{operation.get('status')} (errorCode: {operation.get('errorCode')})"
        )


class MalformedRecord(ShopifySyncError):
    def __init__(self, line: str, reason: Optional[str] = None):
        self.line = line
        message = f"Could not decode bulk result line: {line!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class UnrecognizedIdentifier(ShopifySyncError):
    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(
            f"Expected an ID in the format gid://shopify/<typename>/<id>, got {identifier!r}"
        )


class AssetFetchFailure(ShopifySyncError):
    def __init__(self, url: str, node_id: str, cause: Exception):
        self.url = url
        self.node_id = node_id
        super().__init__(f"Failed to fetch {url} for node {node_id}: {cause}")


class SyncCancelled(ShopifySyncError):
    pass
