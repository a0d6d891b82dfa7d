"""
Core module containing essential utilities and configurations for the application.
"""

from .config import Config, get_config, load_config
from .logging_config import setup_logging, get_logger, LoggingContext
from .exceptions import (
    AppException,
    ConfigurationError,
    SecurityError,
    AuthenticationError,
    AuthorizationError,
    ValidationError,
    InvalidLocationError,
    InvalidChoiceError,
    NotFoundError,
    ConflictError,
    AlreadyVotedError,
    StorageError,
)

__all__ = [
    # Config
    "Config",
    "get_config",
    "load_config",

    # Logging
    "setup_logging",
    "get_logger",
    "LoggingContext",

    # Exceptions
    "AppException",
    "ConfigurationError",
    "SecurityError",
    "AuthenticationError",
    "AuthorizationError",
    "ValidationError",
    "InvalidLocationError",
    "InvalidChoiceError",
    "NotFoundError",
    "ConflictError",
    "AlreadyVotedError",
    "StorageError",
]
