"""Observability: logging and metrics."""

from perp_keeper.observability.logging import (
    LOG_TAG_BATCH,
    LOG_TAG_FUNDING,
    LOG_TAG_HEALTH,
    get_logger,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "LOG_TAG_BATCH",
    "LOG_TAG_FUNDING",
    "LOG_TAG_HEALTH",
]
