"""Shared fixtures: a CPU backend and headless matplotlib."""

from __future__ import annotations

import os

# Must happen before anything imports matplotlib.pyplot
os.environ.setdefault('MPLBACKEND', 'Agg')

import pytest

from kestrel.backend import Backend, BackendConfig


@pytest.fixture
def backend():
    """CPU backend, finalized after the test."""
    b = Backend(BackendConfig(platform="cpu"))
    yield b
    b.finalize()
