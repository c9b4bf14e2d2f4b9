from __future__ import annotations

import logging

import pytest

from repo_sync.logs import ROOT_LOGGER, SynchronizedHandler


@pytest.fixture(autouse=True)
def _reset_repo_sync_logging():
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, SynchronizedHandler):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)
