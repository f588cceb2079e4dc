# events_api.py
"""
Destroy events from the Admin REST Events API.

Bulk queries only return objects that still exist, so deletions are
discovered here and applied by the cascade-delete pass.
"""

import requests
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sync_config import EVENTS_URL, REQUEST_TIMEOUT, SHOPIFY_ACCESS_TOKEN, log

PAGE_LIMIT = 250


class EventsApi:
    def __init__(
        self,
        events_url: str = EVENTS_URL,
        access_token: Optional[str] = SHOPIFY_ACCESS_TOKEN,
        session: Optional[requests.Session] = None,
        timeout: int = REQUEST_TIMEOUT,
    ):
        self.events_url = events_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'X-Shopify-Access-Token': access_token or ''})

    def fetch_destroy_events_since(self, since: datetime) -> List[Dict]:
        """Every destroy event created strictly after ``since``."""
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        params = {
            'verb': 'destroy',
            'created_at_min': since.isoformat(),
            'limit': PAGE_LIMIT,
        }
        url = self.events_url
        events = []

        while url:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            events.extend(response.json().get('events', []))

            # page_info cursors can't be combined with the first request's filters
            url = response.links.get('next', {}).get('url')
            params = None

        # created_at_min is inclusive on Shopify's side
        events = [e for e in events if _created_after(e, since)]
        log(f"Fetched {len(events)} destroy events since {since.isoformat()}", 'DEBUG')
        return events


def _created_after(event: Dict, since: datetime) -> bool:
    created_at = event.get('created_at')
    if not created_at:
        return True
    return datetime.fromisoformat(created_at.replace('Z', '+00:00')) > since
