########################################################################################
##
##                                  TESTS FOR
##                              'utils/logger.py'
##
########################################################################################

# IMPORTS ==============================================================================

import io
import logging

import pytest

from proflik import ProfileLikelihoodError
from proflik.utils.logger import ROOT_LOGGER_NAME, LoggerManager


# ═══════════════════════════════════════════════════════════════════════════
# LoggerManager
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def manager():
    mgr = LoggerManager()
    level = mgr.root.level
    yield mgr
    if mgr._handler is not None:
        mgr.root.removeHandler(mgr._handler)
        mgr._handler = None
    mgr.set_level(level)


class TestLoggerManager:

    def test_singleton(self):
        assert LoggerManager() is LoggerManager()

    def test_namespaced_loggers(self, manager):
        assert manager.get_logger().name == ROOT_LOGGER_NAME
        assert manager.get_logger("univariate").name == "proflik.univariate"
        assert manager.get_logger("proflik.bivariate").name == "proflik.bivariate"

    def test_silent_by_default(self):
        handlers = LoggerManager().root.handlers
        assert any(isinstance(h, logging.NullHandler) for h in handlers)

    def test_configure_replaces_handler(self, manager):
        first, second = io.StringIO(), io.StringIO()
        manager.configure(logging.INFO, fmt="%(name)s|%(message)s", stream=first)
        manager.configure(logging.INFO, fmt="%(name)s|%(message)s", stream=second)

        manager.get_logger("results").info("hello %d", 3)
        assert first.getvalue() == ""
        assert second.getvalue().strip() == "proflik.results|hello 3"
        stream_handlers = [h for h in manager.root.handlers if isinstance(h, logging.StreamHandler)]
        assert len(stream_handlers) == 1

    def test_set_level(self, manager):
        stream = io.StringIO()
        manager.configure(logging.INFO, stream=stream)
        manager.set_level(logging.ERROR)
        manager.get_logger("x").warning("dropped")
        assert stream.getvalue() == ""


# ═══════════════════════════════════════════════════════════════════════════
# Error context
# ═══════════════════════════════════════════════════════════════════════════

def test_error_log_message():
    err = ProfileLikelihoodError("bad thing", context={"parameter": 2})
    assert err.log_message() == "bad thing: {'parameter': 2}"
    assert ProfileLikelihoodError("plain").log_message() == "plain"
