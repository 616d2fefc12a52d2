import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_tokenvest_logger():
    """The CLI installs handlers on the package logger; drop them after each test."""
    yield
    logger = logging.getLogger("tokenvest")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
