"""Shared pytest fixtures."""

import logging

import pytest

from tablecodec.core.logging_config import JSONFormatter, TextFormatter


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Remove handlers installed by setup_logging() and restore the root level."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler.formatter, (JSONFormatter, TextFormatter)):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
