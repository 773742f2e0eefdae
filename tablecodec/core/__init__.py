"""Core module initialization."""

from .config_manager import ConfigManager, TableCodecConfig
from .logging_config import setup_logging, get_logger

__all__ = [
    "ConfigManager",
    "TableCodecConfig",
    "setup_logging",
    "get_logger",
]
