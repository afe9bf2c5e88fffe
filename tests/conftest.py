"""
Root conftest.py - fixtures shared across all tests.
"""

import logging
import os

import pytest

from sizespec.core.logging_config import ROOT_LOGGER_NAME


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo handler changes made by configure_logging so caplog keeps working."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, '_sizespec_handler', False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def _clean_sizespec_env(monkeypatch):
    """Keep SIZESPEC_* variables from the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith('SIZESPEC_'):
            monkeypatch.delenv(key, raising=False)
