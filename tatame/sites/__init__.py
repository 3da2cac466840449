"""
TATAME WordPress site management: site registry, REST client, VPS records.
"""

from .store import WordPressSiteStore
from .vps_store import VpsConfigStore
from .wordpress_client import WordPressClient, normalize_url

__all__ = [
    "WordPressSiteStore",
    "VpsConfigStore",
    "WordPressClient",
    "normalize_url",
]
