# tests/conftest.py
"""
Pytest configuration for SynapseIndex tests.
"""

import shutil
import tempfile

import pytest
import pytest_asyncio

from synapse_index.config import Settings
from synapse_index.engine import SynapseEngine
from synapse_index.similarity import MS_PER_DAY
from synapse_index.storage import MemoryStorage

START_TIME = 1_700_000_000_000


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test."
    )


class FixedClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, days: float = 0, ms: int = 0) -> int:
        self.now += int(days * MS_PER_DAY) + ms
        return self.now


@pytest.fixture
def temp_storage():
    """Create a temporary storage directory."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def memory_settings():
    return Settings(storage_backend="memory")


@pytest_asyncio.fixture
async def engine(clock, memory_settings):
    """An engine backed by in-memory storage and a fixed clock."""
    eng = SynapseEngine(MemoryStorage(), memory_settings, clock)
    await eng.load()
    yield eng
    await eng.close()
