from __future__ import annotations

"""
Shared pytest fixtures for the unit suite.

This module:
- keeps the pid to service lookup cache empty around every test, and
- exposes the raw entry builder as a fixture.
"""

from typing import Callable, Iterator

import pytest

from netverdict.events.models import RawLogEntry, clear_service_cache
from tests.support.fakes import make_entry


@pytest.fixture
def entry_factory() -> Callable[..., RawLogEntry]:
    return make_entry


@pytest.fixture(autouse=True)
def _empty_service_cache() -> Iterator[None]:
    clear_service_cache()
    yield
    clear_service_cache()
