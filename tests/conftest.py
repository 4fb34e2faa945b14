"""
Pytest configuration and fixtures for the test suite.
"""
import pytest
from hypothesis import settings

from modelsync.sync.config import SyncConfig
from modelsync.sync.model_store import InMemoryModelStore

# Configure Hypothesis settings for all tests
# Disable deadline to avoid flaky failures during parallel execution
settings.register_profile("default", deadline=None)
settings.load_profile("default")


@pytest.fixture
def fast_config():
    """Config with millisecond backoff so reconnection tests finish quickly."""
    return SyncConfig(
        websocket_base_url="ws://collab.test",
        initial_reconnection_delay_ms=1,
        max_reconnection_delay_ms=4,
        reconnection_jitter=False,
        status_poll_interval_seconds=0.01,
    )


@pytest.fixture
def model_store():
    """Local model with three tables and a two-edge chain A -> B -> C."""
    return InMemoryModelStore(
        tables=[
            {"id": "A", "name": "customers"},
            {"id": "B", "name": "orders"},
            {"id": "C", "name": "order_items"},
        ],
        relationships=[
            {"id": "r1", "source_table_id": "A", "target_table_id": "B"},
            {"id": "r2", "source_table_id": "B", "target_table_id": "C"},
        ],
    )
