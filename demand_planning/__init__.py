from .config import config
from .db import db, session_scope
from .logging_setup import logger, get_logger
from .exceptions import (
    PlanningError, ConfigError, DataUnavailableError, SourceSchemaError, ValidationError
)

__version__ = '0.3.0'

__all__ = [
    'config',
    'db',
    'session_scope',
    'logger',
    'get_logger',
    'PlanningError',
    'ConfigError',
    'DataUnavailableError',
    'SourceSchemaError',
    'ValidationError'
]
