"""Shared pytest configuration: integration opt-in and async backend."""

import pytest


def pytest_addoption(parser):
    """Register ``--integration`` for tests that need a real teldrive."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run tests against a live teldrive instance",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: test talks to a websocket or HTTP endpoint"
    )


def pytest_collection_modifyitems(config, items):
    """Skip ``integration`` tests unless ``--integration`` was given.

    ``ci_safe`` tests run a local stand-in server and are never skipped.
    """
    if config.getoption("--integration", default=False):
        return
    skip = pytest.mark.skip(reason="Need --integration option to run")
    for item in items:
        if "integration" in item.keywords and "ci_safe" not in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def anyio_backend():
    """The orchestrator relies on asyncio primitives."""
    return "asyncio"
