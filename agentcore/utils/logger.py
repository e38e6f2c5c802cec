"""
Logger Utility
==============

Structured logging for the agent loop. Every skip, failover and context
decision goes through here, so the output is meant to be scanned by a human
watching a run as well as grepped afterwards.

Features:
1. Log levels (DEBUG, INFO, WARNING, ERROR) filtered by LOG_LEVEL
2. Context prefixes with child loggers ([AgentLoop:Resolve])
3. Structured fields printed as indented JSON under the message
4. Color-coded terminal output

The logger never raises: a log call that fails to write is dropped so that
observability can't take a request down with it.

Usage:
    from agentcore.utils.logger import Logger, logger

    logger.info("Application started")

    loop_logger = Logger("AgentLoop")
    loop_logger.warn("Skipping rate-limited provider", {"provider_id": "openai"})
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any, Protocol


class LogLevel(IntEnum):
    """
    Log levels with numeric values for comparison.
    Higher values = more severe = always shown.
    """
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


# ANSI color codes for terminal output
class Colors:
    """ANSI escape codes for colored terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"       # Dimmed text


class StructuredLogger(Protocol):
    """
    The logging surface the core depends on.

    Anything with these four methods can be passed as a logger, which lets
    callers route loop diagnostics into their own telemetry.
    """

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None: ...

    def info(self, message: str, data: dict[str, Any] | None = None) -> None: ...

    def warn(self, message: str, data: dict[str, Any] | None = None) -> None: ...

    def error(self, message: str, error: Exception | dict[str, Any] | None = None) -> None: ...


def _get_log_level_from_env() -> LogLevel:
    """
    Parse the LOG_LEVEL environment variable.

    Returns:
        LogLevel: The configured log level, defaults to INFO
    """
    level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": LogLevel.DEBUG,
        "INFO": LogLevel.INFO,
        "WARNING": LogLevel.WARNING,
        "WARN": LogLevel.WARNING,
        "ERROR": LogLevel.ERROR,
    }
    return level_map.get(level_str, LogLevel.INFO)


class Logger:
    """
    A context-aware logger with colored output and structured fields.

    Example:
        logger = Logger("AgentLoop")
        logger.info("Attempting provider", {"provider_id": "openai", "model_id": "gpt-4o"})

        # Create a child logger for a sub-operation
        resolve_logger = logger.child("Resolve")
        resolve_logger.debug("Router returned profile", {"profile_id": "env:OPENAI_API_KEY"})
    """

    def __init__(self, context: str = ""):
        """
        Initialize a logger with an optional context.

        Args:
            context: A string prefix for all log messages (e.g., "AgentLoop", "Context")
        """
        self.context = context
        self._min_level = _get_log_level_from_env()

    def child(self, child_context: str) -> "Logger":
        """
        Create a child logger with additional context.

        Args:
            child_context: Additional context to append

        Returns:
            A new Logger with combined context, e.g. [AgentLoop:ToolBridge]
        """
        new_context = f"{self.context}:{child_context}" if self.context else child_context
        return Logger(new_context)

    def _format_message(
        self,
        level: str,
        message: str,
        color: str
    ) -> str:
        """
        Format a log message with timestamp, level, and context.

        Output format: [TIMESTAMP] [LEVEL] [context] message
        Example: [2024-01-31T10:30:00] [WARN] [AgentLoop] Provider rate-limited
        """
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""

        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _log(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        """
        Internal logging method.

        Args:
            level: The log level for filtering
            level_name: Display name of the level
            color: ANSI color code for the level
            message: The log message
            data: Optional structured fields to include
        """
        if level < self._min_level:
            return

        stream = sys.stderr if level >= LogLevel.ERROR else sys.stdout
        try:
            print(self._format_message(level_name, message, color), file=stream)
            if data:
                data_str = json.dumps(data, indent=2, default=str)
                print(f"{Colors.DIM}{data_str}{Colors.RESET}", file=stream)
        except (OSError, ValueError, TypeError):
            # Closed stream or unserializable keys; logging must not raise.
            return

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """
        Log a debug message. Only shown when LOG_LEVEL=DEBUG.

        Args:
            message: The debug message
            data: Optional structured data to log
        """
        self._log(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """
        Log an info message.

        Args:
            message: The info message
            data: Optional structured data to log
        """
        self._log(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """
        Log a warning message.

        Warnings mark decisions worth noticing: skipped providers,
        failovers, undersized context windows.

        Args:
            message: The warning message
            data: Optional structured data to log
        """
        self._log(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    warn = warning

    def error(self, message: str, error: Exception | dict[str, Any] | None = None) -> None:
        """
        Log an error message. Always shown regardless of log level.

        Args:
            message: The error message
            error: Optional exception (type and message are extracted)
                or a dict of structured fields
        """
        data = None
        if isinstance(error, BaseException):
            data = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        elif error:
            data = error
        self._log(LogLevel.ERROR, "ERROR", Colors.ERROR, message, data)


# Default logger instance for general use
logger = Logger("AgentCore")
