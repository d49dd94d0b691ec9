"""
SQLite batch store package (facade).
"""

from __future__ import annotations

from perp_keeper.adapters.store.sqlite.store import SQLiteBatchStore

__all__ = ["SQLiteBatchStore"]
