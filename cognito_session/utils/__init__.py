"""
Shared utilities: configuration and logging
"""

from .config import Config, ProviderConfig, get_config
from .logger import setup_logger

__all__ = [
    'Config',
    'ProviderConfig',
    'get_config',
    'setup_logger'
]
