"""Shared pytest fixtures for observa tests."""

import pytest

from observa import Runtime, default_runtime


@pytest.fixture(autouse=True)
def reset_default_runtime():
    """Drop work a test left queued on the default runtime."""
    default_runtime.reset()
    yield
    default_runtime.reset()


@pytest.fixture
def runtime():
    """A fresh, independent Runtime."""
    return Runtime()
