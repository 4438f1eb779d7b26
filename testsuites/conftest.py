"""
================================================================================
Root Pytest Configuration
================================================================================

This module provides the root pytest configuration for the entire test suite.
It registers common markers and tags tests by the directory they live in.

================================================================================
"""

import pytest


def pytest_configure(config):
    """Configure pytest with project-wide custom markers."""

    # Priority markers
    config.addinivalue_line(
        "markers", "P0: Critical priority tests - must pass for release"
    )
    config.addinivalue_line(
        "markers", "P1: High priority tests - important functionality"
    )
    config.addinivalue_line(
        "markers", "P2: Medium priority tests - edge cases and minor features"
    )
    config.addinivalue_line(
        "markers", "P3: Low priority tests - extensive validation"
    )

    # Test type markers
    config.addinivalue_line(
        "markers", "smoke: Quick verification tests"
    )
    config.addinivalue_line(
        "markers", "regression: Full regression test suite"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests between components"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests against a running container"
    )

    # Domain markers
    config.addinivalue_line(
        "markers", "compose: Docker Compose acceptance tests"
    )
    config.addinivalue_line(
        "markers", "docker: Tests requiring a docker daemon"
    )
    config.addinivalue_line(
        "markers", "unit: Harness unit tests (no docker)"
    )

    # Feature markers
    config.addinivalue_line(
        "markers", "secrets: Tests related to compose secrets"
    )


def pytest_collection_modifyitems(config, items):
    """
    Modify collected test items.

    Adds domain markers based on the directory a test lives in.
    """
    for item in items:
        if "compose_testing" in item.path.parts:
            item.add_marker(pytest.mark.compose)
            item.add_marker(pytest.mark.docker)
            item.add_marker(pytest.mark.e2e)

        if "unit" in item.path.parts:
            item.add_marker(pytest.mark.unit)


def pytest_report_header(config):
    """Add custom header to pytest output."""
    return [
        "",
        "=" * 60,
        "Neo4j Docker Compose Acceptance Harness",
        "=" * 60,
        "",
    ]
