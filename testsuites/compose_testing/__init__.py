"""Docker Compose acceptance testing."""
