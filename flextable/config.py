"""Configuration management for FlexTable."""

import logging
import os
from typing import Optional

from .constants import DEFAULT_BATCH_WRITE_LIMIT

SUPPORTED_BACKENDS = ("memory", "sqlite")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Config:
    """Configuration class for FlexTable."""
    
    def __init__(self) -> None:
        self._backend: str = "memory"
        self.db_path: str = "flextable.db"
        self.log_level: str = "WARNING"
        self.batch_write_limit: int = DEFAULT_BATCH_WRITE_LIMIT
        self._load_from_env()
    
    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        self._backend = os.getenv("FLEXTABLE_BACKEND", "memory")
        self.db_path = os.getenv("FLEXTABLE_DB_PATH", "flextable.db")
        self.log_level = os.getenv("FLEXTABLE_LOG_LEVEL", "WARNING").upper()
        limit = os.getenv("FLEXTABLE_BATCH_WRITE_LIMIT")
        if limit:
            self.batch_write_limit = int(limit)
    
    @property
    def backend(self) -> str:
        """Get the default backend."""
        return self._backend
    
    @backend.setter
    def backend(self, value: str) -> None:
        """Set the default backend."""
        if value not in SUPPORTED_BACKENDS:
            raise ValueError(f"Invalid backend: {value}. Supported: {', '.join(SUPPORTED_BACKENDS)}")
        self._backend = value
    
    def get_backend_for_path(self, db_path: str, explicit_backend: Optional[str] = None) -> str:
        """Get the backend to use for a specific database path."""
        if explicit_backend:
            return explicit_backend
        
        if db_path == ":memory:":
            return "memory"
        
        if isinstance(db_path, str) and db_path.endswith(('.db', '.sqlite', '.sqlite3')):
            return "sqlite"
        
        return self.backend


# Global configuration instance
config = Config()


def set_default_backend(backend: str) -> None:
    """Set the default backend globally."""
    config.backend = backend


def get_default_backend() -> str:
    """Get the default backend."""
    return config.backend


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a stream handler to the package logger.

    Calling it more than once only changes the level.
    """
    logger = logging.getLogger("flextable")
    logger.setLevel((level or config.log_level).upper())
    
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    
    return logger
