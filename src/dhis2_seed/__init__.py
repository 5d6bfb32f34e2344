"""Bootstrap package for seeding a fresh DHIS2 instance.

This package contains modules for identifier generation, source loading,
record normalization, reshaping, joining and payload building, plus the
orchestrator that pushes everything through the instance's REST API.
"""

import logging
import os

logger = logging.getLogger(__name__)


def init_bootstrap_package() -> None:
    """Initialize the bootstrap package and log package details."""
    logger.info("🚀 Initializing DHIS2 Seed Package")
    logger.info("   📦 Modules:")
    logger.info("      • Identifier Generation")
    logger.info("      • Record Normalization")
    logger.info("      • Reshaping and Joining")
    logger.info("      • Payload Building")
    logger.info("      • Bootstrap Orchestration")

    package_path = os.path.dirname(os.path.abspath(__file__))
    logger.debug(f"   📂 Package Path: {package_path}")


init_bootstrap_package()
