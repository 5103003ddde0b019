"""Shared test plumbing."""

import pytest

from harborsync.observability.logging import configure_logging


@pytest.fixture(autouse=True)
def _rebind_log_stream():
    """Re-bind structlog to the live stderr around each test.

    ``configure_logging`` captures ``sys.stderr`` at call time; a CliRunner
    invoke leaves it pointing at the runner's stream, which is closed once
    the invoke returns.
    """
    configure_logging(json_output=False)
    yield
    configure_logging(json_output=False)
