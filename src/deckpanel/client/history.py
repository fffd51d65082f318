"""
Local history of completed evaluations, kept in SQLite.
"""
import json
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

import aiosqlite
from pydantic import BaseModel, Field

from deckpanel.core.entities import Evaluation, Persona, Recommendation

logger = logging.getLogger(__name__)


class EvaluationRecord(BaseModel):
    id: str
    file_name: str
    goal: str
    personas: List[Persona] = Field(default_factory=list)
    evaluations: List[Evaluation] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    created_at: str


def _dump(items: List[BaseModel]) -> str:
    return json.dumps([item.to_wire() for item in items], ensure_ascii=False)


class EvaluationHistory:
    """
    Newest-first history; only the latest `limit` runs are kept.
    """

    def __init__(self, path: str, limit: int = 20):
        self.path = path
        self.limit = limit

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = await aiosqlite.connect(self.path)
        await conn.execute("PRAGMA journal_mode=WAL;")
        conn.row_factory = aiosqlite.Row
        try:
            yield conn
        finally:
            await conn.close()

    async def init_tables(self) -> None:
        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS evaluation_history (
                    id TEXT PRIMARY KEY,
                    file_name TEXT NOT NULL,
                    goal TEXT NOT NULL,
                    personas TEXT NOT NULL,
                    evaluations TEXT NOT NULL,
                    recommendations TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_evaluation_history_created_at
                ON evaluation_history(created_at)
            """)
            await conn.commit()

    async def record(
        self,
        *,
        file_name: str,
        goal: str,
        personas: List[Persona],
        evaluations: List[Evaluation],
        recommendations: Optional[List[Recommendation]] = None,
    ) -> str:
        """Store a finished run and drop anything beyond the retention limit."""
        record_id = uuid.uuid4().hex
        created_at = datetime.now(timezone.utc).isoformat()

        async with self.connect() as conn:
            await conn.execute(
                """
                INSERT INTO evaluation_history
                    (id, file_name, goal, personas, evaluations, recommendations, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    file_name,
                    goal,
                    _dump(personas),
                    _dump(evaluations),
                    _dump(recommendations or []),
                    created_at,
                ),
            )
            # rowid breaks ties between runs recorded within the same timestamp
            await conn.execute(
                """
                DELETE FROM evaluation_history WHERE id NOT IN (
                    SELECT id FROM evaluation_history
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                )
                """,
                (self.limit,),
            )
            await conn.commit()

        logger.info(f"Recorded evaluation {record_id} for {file_name or 'unnamed deck'}")
        return record_id

    async def update_recommendations(self, record_id: str, recommendations: List[Recommendation]) -> None:
        async with self.connect() as conn:
            await conn.execute(
                "UPDATE evaluation_history SET recommendations = ? WHERE id = ?",
                (_dump(recommendations), record_id),
            )
            await conn.commit()

    async def recent(self, limit: Optional[int] = None) -> List[EvaluationRecord]:
        async with self.connect() as conn:
            cursor = await conn.execute(
                "SELECT * FROM evaluation_history ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit or self.limit,),
            )
            rows = await cursor.fetchall()
        return [self._to_record(row) for row in rows]

    async def get(self, record_id: str) -> Optional[EvaluationRecord]:
        async with self.connect() as conn:
            cursor = await conn.execute("SELECT * FROM evaluation_history WHERE id = ?", (record_id,))
            row = await cursor.fetchone()
        return self._to_record(row) if row else None

    @staticmethod
    def _to_record(row: aiosqlite.Row) -> EvaluationRecord:
        return EvaluationRecord(
            id=row["id"],
            file_name=row["file_name"],
            goal=row["goal"],
            personas=json.loads(row["personas"]),
            evaluations=json.loads(row["evaluations"]),
            recommendations=json.loads(row["recommendations"]),
            created_at=row["created_at"],
        )
