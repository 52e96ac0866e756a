"""Core utilities for configuration, logging and chain access."""

from .config import AppSettings, get_env, load_settings
from .logging_config import get_logger, setup_logging
from .web3_client_manager import Web3ClientManager

__all__ = [
    "AppSettings",
    "get_env",
    "load_settings",
    "Web3ClientManager",
    "get_logger",
    "setup_logging",
]
