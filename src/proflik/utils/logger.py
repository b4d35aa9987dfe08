#########################################################################################
##
##                                 LOGGER MANAGER
##                                (utils/logger.py)
##
##         Process-wide access point for the package loggers. Everything logs under
##         the "proflik" namespace and stays silent until the application configures
##         a handler (or calls LoggerManager().configure()).
##
#########################################################################################

# IMPORTS ===============================================================================

import logging
import threading


# CONSTANTS =============================================================================

ROOT_LOGGER_NAME   = "proflik"
DEFAULT_LOG_LEVEL  = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# CLASS =================================================================================

class LoggerManager:
    """Singleton that hands out namespaced loggers.

    Example
    -------
    .. code-block:: python

        from proflik.utils.logger import LoggerManager

        LoggerManager().configure(level=logging.DEBUG)
        log = LoggerManager().get_logger("univariate")
        log.info("profiling parameter %d", 0)
    """

    _instance = None
    _instance_lock = threading.Lock()

    def __new__(cls):
        with cls._instance_lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._root = logging.getLogger(ROOT_LOGGER_NAME)
                instance._root.addHandler(logging.NullHandler())
                instance._handler = None
                cls._instance = instance
        return cls._instance


    @property
    def root(self) -> logging.Logger:
        """The ``proflik`` package logger."""
        return self._root


    def get_logger(self, name: str | None = None) -> logging.Logger:
        """Return ``proflik.<name>`` (or the package logger when ``name`` is None)."""
        if not name:
            return self._root
        if name.startswith(ROOT_LOGGER_NAME + ".") or name == ROOT_LOGGER_NAME:
            return logging.getLogger(name)
        return self._root.getChild(name)


    def configure(
        self,
        level: int = DEFAULT_LOG_LEVEL,
        *,
        fmt: str = DEFAULT_LOG_FORMAT,
        stream=None,
    ) -> logging.Logger:
        """Attach a single stream handler to the package logger.

        Calling this repeatedly replaces the previously installed handler
        instead of stacking duplicates.
        """
        if self._handler is not None:
            self._root.removeHandler(self._handler)

        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(fmt))
        self._root.addHandler(handler)
        self._root.setLevel(level)
        self._handler = handler
        return self._root


    def set_level(self, level: int) -> None:
        self._root.setLevel(level)
