#!/usr/bin/env python3
# sync_config.py
"""
Shared configuration for the Shopify node sourcing scripts.

Everything is read from the environment once at import time. Components
take explicit arguments that default to these values so tests can
override them without touching os.environ.
"""

import os
from datetime import datetime

# =============================================================================
# CONFIGURATION
# =============================================================================

SHOPIFY_STORE = os.environ.get('SHOPIFY_STORE', 'example.myshopify.com')
SHOPIFY_ACCESS_TOKEN = os.environ.get('SHOPIFY_ACCESS_TOKEN')

API_VERSION = os.environ.get('SHOPIFY_API_VERSION', '2026-01')
GRAPHQL_URL = f'https://{SHOPIFY_STORE}/admin/api/{API_VERSION}/graphql.json'
EVENTS_URL = f'https://{SHOPIFY_STORE}/admin/api/{API_VERSION}/events.json'

# Extra collections to source besides products, e.g. "orders"
SHOPIFY_CONNECTIONS = [
    c.strip() for c in os.environ.get('SHOPIFY_CONNECTIONS', '').split(',') if c.strip()
]

DOWNLOAD_IMAGES = os.environ.get('DOWNLOAD_IMAGES', 'false').lower() == 'true'
TYPE_PREFIX = os.environ.get('TYPE_PREFIX', '')

# Local node store
NODE_STORE_PATH = os.environ.get('NODE_STORE_PATH', 'shopify_nodes.json')
FILES_DIR = os.environ.get('FILES_DIR', 'shopify_files')

# Request settings
REQUEST_TIMEOUT = 30
DOWNLOAD_TIMEOUT = 300
MAX_CONCURRENT = int(os.environ.get('MAX_CONCURRENT', '8'))

# Bulk operation settings
POLL_INTERVAL_MS = int(os.environ.get('POLL_INTERVAL_MS', '1000'))
DRAIN_INTERVAL = 1  # seconds between checks of an operation we didn't start

LAST_BUILD_TIME_KEY = 'LAST_BUILD_TIME'

VERBOSE = os.environ.get('VERBOSE', 'false').lower() == 'true'

# =============================================================================
# LOGGING
# =============================================================================

def log(message: str, level: str = 'INFO'):
    if level == 'DEBUG' and not VERBOSE:
        return
    timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    print(f"[{timestamp}] [{level}] {message}", flush=True)
