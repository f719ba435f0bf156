"""Shared pytest fixtures for docker_remote tests."""

import pytest

from tests.fakes import FakeExecutor


@pytest.fixture
def executor() -> FakeExecutor:
    """Fresh scripted executor per test."""
    return FakeExecutor()
