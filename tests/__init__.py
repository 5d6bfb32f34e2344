"""Test suite for the DHIS2 seed pipeline.

This package contains tests for the bootstrap pipeline including:
- Unit tests for individual modules
- Integration tests for complete bootstrap runs
"""

__version__ = "0.1.0"
