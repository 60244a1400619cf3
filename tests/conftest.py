"""Shared fixtures for the governance engine tests.

Provides:
- A settings cache reset so environment overrides never leak between tests
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from src.dealflow.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Clear the cached Settings singleton around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
