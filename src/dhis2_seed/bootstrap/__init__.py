"""Bootstrap package for seeding a clean instance end to end.

This module sequences authentication, metadata import, data import and
analytics recomputation against the target instance.
"""

import logging

logger = logging.getLogger(__name__)


def init_bootstrap_subpackage() -> None:
    """Initialize the bootstrap subpackage and log package details."""
    logger.info("🚢 Initializing DHIS2 Seed Bootstrap Package")
    logger.info("   📦 Package responsible for the end-to-end seeding run")


init_bootstrap_subpackage()
