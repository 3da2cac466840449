"""
TATAME feature flags: role-gated platform tools with an audit trail.
"""

from .defaults import DEFAULT_FEATURES, FeatureCatalogSync, scan_manifests
from .models import Actor, AuditAction, Feature, FeatureStatus
from .registry import FeatureRegistry

__all__ = [
    "Actor",
    "AuditAction",
    "DEFAULT_FEATURES",
    "Feature",
    "FeatureCatalogSync",
    "FeatureRegistry",
    "FeatureStatus",
    "scan_manifests",
]
