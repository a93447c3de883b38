# nl2sql_gateway/history.py
import datetime
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, Table, Text, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from nl2sql_gateway.config import HISTORY_DB_URL
from nl2sql_gateway.database import get_engine
from nl2sql_gateway.errors import PersistenceError

logger = logging.getLogger(__name__)

metadata = MetaData()

history_table = Table(
    "history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("natural", Text, nullable=False),
    Column("sql", Text, nullable=False),
    Column("executed", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    sqlite_autoincrement=True,
)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class HistoryEntry:
    id: int
    natural_prompt: str
    generated_sql: str
    executed: bool
    created_at: datetime.datetime

    @classmethod
    def from_row(cls, row) -> "HistoryEntry":
        created_at = row["created_at"]
        # SQLite hands timestamps back without tzinfo
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=datetime.timezone.utc)
        return cls(
            id=row["id"],
            natural_prompt=row["natural"],
            generated_sql=row["sql"],
            executed=bool(row["executed"]),
            created_at=created_at,
        )


class QueryHistory:
    """Ledger of prompt -> generated SQL -> execution status."""

    def __init__(self, engine: Optional[Engine] = None, url: str = HISTORY_DB_URL):
        self.engine = engine if engine is not None else get_engine(url)
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to prepare history table: {e}") from e

    def append(self, natural_prompt: str, generated_sql: str) -> int:
        """Insert a new, not-yet-executed entry and return its id."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    history_table.insert().values(
                        natural=natural_prompt,
                        sql=generated_sql,
                        executed=False,
                        created_at=_utcnow(),
                    )
                )
                new_id = result.inserted_primary_key[0]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save history and get ID: {e}") from e
        if new_id is None:
            raise PersistenceError("Failed to save history and get ID")
        return int(new_id)

    def mark_executed(self, history_id: int) -> bool:
        """
        Flag an entry as executed. Idempotent; an unknown id matches nothing
        and returns False.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(history_table).where(history_table.c.id == history_id).values(executed=True)
                )
        except (SQLAlchemyError, OverflowError) as e:
            raise PersistenceError(f"Failed to update history entry {history_id}: {e}") from e
        return result.rowcount > 0

    def recent(self, limit: int = 5) -> List[HistoryEntry]:
        """Most recently created entries, newest first."""
        if limit < 0:
            raise ValueError("limit must be non-negative")
        stmt = select(history_table).order_by(history_table.c.id.desc()).limit(limit)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read history: {e}") from e
        return [HistoryEntry.from_row(r) for r in rows]
