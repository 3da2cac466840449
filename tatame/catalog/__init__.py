"""
TATAME catalog: WordPress plugins and themes offered in the site builder.
"""

from .seed_data import PLUGINS, THEMES
from .store import CatalogStore

__all__ = ["CatalogStore", "PLUGINS", "THEMES"]
