"""
Pytest fixtures for unit tests.
"""

import pytest

from tests.unit.helpers import make_instance, make_schema_v10, make_schema_v11, make_store


@pytest.fixture
def event_store():
    """Store with both event schema versions and one v1.0 instance."""
    return make_store(make_schema_v10(), make_schema_v11(), make_instance())
