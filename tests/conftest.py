"""Pytest configuration and fixtures for theskyx-mcp tests.

Autouse fixtures reset package logging and the global factory and tool
service around every test. The test doubles live in tests/helpers.py.
"""

from __future__ import annotations

from collections.abc import Iterator

import numpy as np
import pytest

from tests.helpers import RecordingChannel, ScriptedDelay
from theskyx_mcp.observability import reset_logging
from theskyx_mcp.tools import camera as camera_tools


@pytest.fixture(autouse=True)
def _clean_logging() -> Iterator[None]:
    """Reset package logging around each test."""
    reset_logging()
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clean_global_state() -> Iterator[None]:
    """Drop the global driver factory and tool service between tests."""
    from theskyx_mcp.drivers.config import reset_factory

    reset_factory()
    camera_tools.shutdown_service()
    yield
    camera_tools.shutdown_service()
    reset_factory()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def delay() -> ScriptedDelay:
    return ScriptedDelay()


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(12345)
