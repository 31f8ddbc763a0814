"""Logging configuration for the Vault secrets client.

Provides structured logging with JSON formatting in production, Rich
console output in development, and masking of sensitive values so tokens
and secret IDs never reach log output.
"""

import logging
import logging.handlers
import sys
from typing import Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

from .config import VaultSettings

SENSITIVE_KEYS = (
    "token",
    "password",
    "secret",
    "key",
    "auth",
    "credential",
    "jwt",
    "bearer",
    "authorization",
    "secret_id",
    "role_id",
)

MASK = "***MASKED***"

# Global logger instance
logger = structlog.get_logger()


def setup_logging(
    settings: VaultSettings,
    enable_json: bool | None = None,
    enable_rich: bool | None = None,
) -> None:
    """Configure application logging.

    Args:
        settings: Environment settings
        enable_json: Force JSON formatting (None = auto-detect from env)
        enable_rich: Force Rich formatting (None = auto-detect from env)
    """
    if enable_json is None:
        enable_json = settings.is_production()
    if enable_rich is None:
        enable_rich = settings.is_development() and not enable_json

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if enable_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = []

    if enable_rich and not enable_json:
        console = Console(stderr=True)
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_level=True,
            show_path=True,
            markup=False,
            rich_tracebacks=True,
        )
        rich_handler.setLevel(settings.log_level)
        handlers.append(rich_handler)
    else:
        stream_handler = logging.StreamHandler(sys.stdout)
        if enable_json:
            formatter = logging.Formatter(fmt="%(message)s")
        else:
            formatter = logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(settings.log_level)
        handlers.append(stream_handler)

    if settings.logs_dir:
        settings.logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=settings.logs_dir / "vault-secrets.log",
            maxBytes=10_000_000,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(fmt="%(message)s"))
        file_handler.setLevel(settings.log_level)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)

    _configure_third_party_loggers(settings.log_level)

    logger.info(
        "Logging configured",
        log_level=settings.log_level,
        json_logging=enable_json,
        rich_logging=enable_rich,
    )


def _configure_third_party_loggers(log_level: str) -> None:
    """Reduce verbosity of noisy library loggers."""
    noisy_loggers = [
        "aiohttp.access",
        "aiohttp.client",
        "asyncio",
        "urllib3.connectionpool",
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(
            max(logging.WARNING, getattr(logging, log_level))
        )


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(sensitive in lowered for sensitive in SENSITIVE_KEYS)


def mask_sensitive_data(value: Any) -> Any:
    """Recursively replace string values under sensitive keys with a mask.

    Non-string values under sensitive keys (counts, flags) are kept, and
    nested mappings and lists are walked.
    """
    if isinstance(value, dict):
        masked = {}
        for key, item in value.items():
            if _is_sensitive(str(key)) and isinstance(item, str):
                masked[key] = MASK
            else:
                masked[key] = mask_sensitive_data(item)
        return masked
    if isinstance(value, list | tuple):
        return type(value)(mask_sensitive_data(item) for item in value)
    return value


class ContextualLogger:
    """Logger with automatic context management and value masking."""

    def __init__(self, name: str, **context: Any) -> None:
        self._name = name
        self._logger = structlog.get_logger(name)
        self._context = context

    @property
    def name(self) -> str:
        return self._name

    def bind(self, **new_context: Any) -> "ContextualLogger":
        """Create a new logger with additional context."""
        combined_context = {**self._context, **new_context}
        return ContextualLogger(self._name, **combined_context)

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        combined_kwargs = mask_sensitive_data({**self._context, **kwargs})
        getattr(self._logger, level)(message, **combined_kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("debug", message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("info", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("warning", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("error", message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log("exception", message, **kwargs)


def get_logger(name: str, **context: Any) -> ContextualLogger:
    """Get a contextual logger instance.

    Args:
        name: Logger name
        **context: Additional context to include in all log messages

    Returns:
        ContextualLogger: Configured logger instance
    """
    return ContextualLogger(name, **context)
