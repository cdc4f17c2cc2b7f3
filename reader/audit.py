"""Append-only audit trail of progress reconciliations (SQLite)."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite

if TYPE_CHECKING:
    from .reconciler import Reconciliation

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reconciliations (
    id TEXT PRIMARY KEY,
    outcome TEXT,             -- see reconciler.Outcome
    local_value INTEGER,      -- NULL when the cache was empty
    remote_value INTEGER,     -- NULL when absent or unreachable
    adopted INTEGER,
    source TEXT,              -- "server" | "local"
    pushed INTEGER DEFAULT 0,
    push_error TEXT,
    created_at TEXT
);
"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReconciliationLog:
    """Records every reconciliation decision for later review."""

    def __init__(self, db_path: str | Path):
        self._path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        logger.debug("Audit DB ready at %s", self._path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> ReconciliationLog:
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def log_reconciliation(
        self,
        result: Reconciliation,
        pushed: bool = False,
        push_error: str = "",
    ) -> str:
        row_id = str(uuid.uuid4())
        await self._db.execute(
            "INSERT INTO reconciliations "
            "(id, outcome, local_value, remote_value, adopted, source, pushed, push_error, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                row_id,
                result.outcome.value,
                result.local,
                result.remote,
                result.value,
                result.source.value,
                1 if pushed else 0,
                push_error[:1000],
                _now_iso(),
            ),
        )
        await self._db.commit()
        return row_id

    async def get_recent_reconciliations(
        self,
        limit: int = 20,
        outcome: str | None = None,
    ) -> list[dict[str, Any]]:
        query = "SELECT * FROM reconciliations"
        params: list[Any] = []
        if outcome:
            query += " WHERE outcome = ?"
            params.append(outcome)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        cursor = await self._db.execute(query, params)
        rows = await cursor.fetchall()
        cols = [d[0] for d in cursor.description]
        return [dict(zip(cols, row)) for row in rows]

    async def count_by_outcome(self) -> dict[str, int]:
        cursor = await self._db.execute(
            "SELECT outcome, COUNT(*) FROM reconciliations GROUP BY outcome"
        )
        rows = await cursor.fetchall()
        return {row[0]: int(row[1]) for row in rows}
