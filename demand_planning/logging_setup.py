import logging
import logging.handlers
import time
from contextlib import contextmanager
from pathlib import Path

from demand_planning.config import config

PACKAGE_LOGGER = 'demand_planning'


class Logger:
    """Logging manager for the Demand Planning engine.

    Module loggers nest under the 'demand_planning' logger, which owns every
    handler: planning.log, errors.log for ERROR and above, and the console.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        settings = config.log_config
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(getattr(logging, settings['level'].upper(), logging.INFO))
        package_logger.propagate = False
        for handler in package_logger.handlers[:]:
            package_logger.removeHandler(handler)
        for handler in self._handlers(settings):
            package_logger.addHandler(handler)

        self._initialized = True

    @staticmethod
    def _handlers(settings):
        handlers = []
        if settings['file_output']:
            log_dir = Path(settings['directory'])
            log_dir.mkdir(parents=True, exist_ok=True)
            rotation = {
                'maxBytes': settings['max_size_mb'] * 1024 * 1024,
                'backupCount': settings['backup_count']
            }
            handlers.append(logging.handlers.RotatingFileHandler(log_dir / 'planning.log', **rotation))
            errors = logging.handlers.RotatingFileHandler(log_dir / 'errors.log', **rotation)
            errors.setLevel(logging.ERROR)
            handlers.append(errors)
        if settings['console_output']:
            handlers.append(logging.StreamHandler())

        formatter = logging.Formatter(settings['format'])
        for handler in handlers:
            handler.setFormatter(formatter)
        return handlers

    def get_logger(self, name):
        """Logger for a module; names outside the package are nested under it."""
        if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + '.'):
            name = f"{PACKAGE_LOGGER}.{name}"
        return logging.getLogger(name)

    @property
    def app_logger(self):
        return self.get_logger('app')

    @contextmanager
    def operation(self, name, **context):
        """Time a planning run and log how it ended.

        The yielded dict collects result figures logged on completion. Errors
        are logged with the elapsed time and re-raised.
        """
        op_logger = self.get_logger('operations')
        results = {}
        started = time.monotonic()
        op_logger.info(f"Starting {name} {context}" if context else f"Starting {name}")
        try:
            yield results
        except Exception as e:
            op_logger.error(f"Failed {name} after {time.monotonic() - started:.2f}s: {e}")
            raise
        elapsed = time.monotonic() - started
        op_logger.info(f"Completed {name} in {elapsed:.2f}s {results}" if results else f"Completed {name} in {elapsed:.2f}s")


logger = Logger()


def get_logger(name):
    return logger.get_logger(name)
