# shopify_client.py
"""Thin Admin GraphQL client shared by the bulk operation helpers."""

import requests
from typing import Dict, Optional

from shopify_errors import ShopifyGraphQLError
from sync_config import GRAPHQL_URL, SHOPIFY_ACCESS_TOKEN, REQUEST_TIMEOUT, log


class ShopifyClient:
    def __init__(
        self,
        graphql_url: str = GRAPHQL_URL,
        access_token: Optional[str] = SHOPIFY_ACCESS_TOKEN,
        timeout: int = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.graphql_url = graphql_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
            'X-Shopify-Access-Token': access_token or '',
        })

    def request(self, query: str, variables: Optional[Dict] = None) -> Dict:
        """Run a GraphQL document and return its ``data`` payload."""
        payload = {'query': query}
        if variables:
            payload['variables'] = variables

        response = self.session.post(self.graphql_url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        result = response.json()

        if result.get('errors'):
            log(f"GraphQL errors: {result['errors']}", 'ERROR')
            raise ShopifyGraphQLError(result['errors'])

        return result.get('data') or {}
