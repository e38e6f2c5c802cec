"""
Utilities Module
================

Common utilities shared across the engine:
- logger: Structured logging with levels and context
- config: Centralized configuration management
"""

from agentcore.utils.logger import Logger, StructuredLogger, logger
from agentcore.utils.config import Config, get_config

__all__ = ["Logger", "StructuredLogger", "logger", "get_config", "Config"]
