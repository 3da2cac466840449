"""
TATAME - Platform API

Backend for the Tatame learning platform:
- tatame.provisioning: WordPress sites, VPS setup and blogs over SSH
- tatame.sites: WordPress site registry and REST client
- tatame.features: feature flags with audit logs
- tatame.lms: courses and lesson progress
- tatame.email: email templates and delivery
- tatame.catalog: WordPress plugin/theme catalog
- tatame.cache: Redis key-value cache
- tatame.api: FastAPI service
- tatame.shared: settings, logging, errors, utilities

Usage:
    from tatame.shared.logging import get_logger

    logger = get_logger("tatame.api")
    logger.info("TATAME starting...")
"""

# Version
__version__ = "1.0.0"
