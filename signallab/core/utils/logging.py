"""Logging utilities for SignalLab."""

from __future__ import annotations

import logging

_NOISY_LOGGERS: tuple[str, ...] = ("matplotlib", "httpx", "httpcore", "asyncio")


def _parse_level(level: str | int) -> int:
    """Parse a logging level name (or number) into a numeric level."""
    if isinstance(level, int):
        return level
    resolved_level = getattr(logging, level.strip().upper(), None)
    if not isinstance(resolved_level, int):
        raise ValueError(f"Invalid logging level: {level}")
    return resolved_level


def configure_logging(level: str | int = "INFO") -> None:
    """
    Configure process-wide logging for CLI and API entrypoints.

    Library code never calls this; it only asks for named loggers.

    Args:
        level: Logging level (for example ``INFO`` or ``DEBUG``).
    """
    logging.basicConfig(
        level=_parse_level(level),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Return a named logger.

    Args:
        name: Logger name, usually ``__name__``.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
