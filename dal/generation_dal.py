"""Async Data Access Layer for the GENERATION history table.

Provides GenerationDAL with the async operations the orchestrator and the
history route need, on top of `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import time
from typing import List, Optional, Sequence

from models.generation_record import GenerationRecord
from utils.database_init import AsyncDatabaseInitializer


class GenerationDAL:
    """Data access layer for GENERATION records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "request_id",
        "quality",
        "model",
        "credit_cost",
        "phase",
        "error_kind",
        "result_ref",
        "created_at",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def record_generation(self, record: GenerationRecord) -> int:
        """Insert a settled generation and return the new row id."""
        created_at = record.created_at or int(time.time())

        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"INSERT INTO GENERATION ({self._INSERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.request_id,
                    record.quality,
                    record.model,
                    record.credit_cost,
                    record.phase,
                    record.error_kind,
                    record.result_ref,
                    created_at,
                ),
            )
            await conn.commit()
            return cur.lastrowid

    async def get_by_request_id(self, request_id: str) -> Optional[GenerationRecord]:
        """Return the record for `request_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM GENERATION WHERE request_id = ?",
                (request_id,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_generations(self, limit: int = 100, offset: int = 0) -> List[GenerationRecord]:
        """List GENERATION rows newest first.

        Args:
            limit: Maximum number of rows to return.
            offset: Rows to skip.
        """
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM GENERATION ORDER BY id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> GenerationRecord:
        """Convert a DB row tuple into a GenerationRecord."""
        return GenerationRecord(
            id=row[0],
            request_id=row[1],
            quality=row[2],
            model=row[3],
            credit_cost=row[4],
            phase=row[5],
            error_kind=row[6],
            result_ref=row[7],
            created_at=row[8],
        )
