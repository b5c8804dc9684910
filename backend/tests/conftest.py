"""Pytest configuration and fixtures."""

import logging

import pytest


@pytest.fixture
def event_loop_policy():
    """Use the default event loop policy for all async tests."""
    import asyncio

    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture(autouse=True)
def _quiet_logs(caplog):
    """Capture quotehub logs at DEBUG so tests can assert on them."""
    caplog.set_level(logging.DEBUG, logger="quotehub")
