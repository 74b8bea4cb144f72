"""
Pytest fixtures for formx engine tests.

This module provides:
1. Import path setup (repository root on sys.path)
2. Settings isolation (cached settings reset per test)
3. Deterministic identifier generation
"""

import os
import random
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from formx.config import get_settings  # noqa: E402
from formx.services.id_generator import IdentifierGenerator  # noqa: E402


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Isolate every test from FORMX_* variables of the developer's shell."""
    for key in list(os.environ):
        if key.startswith("FORMX_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def id_generator():
    """Identifier generator with a seeded PRNG"""
    return IdentifierGenerator(rng=random.Random(1234))
