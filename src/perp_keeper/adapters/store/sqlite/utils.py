"""
Shared helpers for SQLite store modules.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def _ts(value: datetime | None) -> str | None:
    """Fixed-width UTC timestamp (lexical order == time order)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _norm_hash(value: str) -> str:
    return value.lower()


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _maybe_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _row_dict(row: tuple, description: Any) -> dict[str, Any]:
    columns = [col[0] for col in description]
    return dict(zip(columns, row, strict=False))
