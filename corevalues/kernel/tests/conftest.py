"""
Core Values kernel test configuration.

Engine and storage tests run on MemoryStorage with function-scoped loops.
PostgresStorage tests are skipped automatically when DATABASE_URL is not set.
"""

import pytest

from corevalues.kernel.storage import MemoryStorage


@pytest.fixture
def storage():
    return MemoryStorage()
