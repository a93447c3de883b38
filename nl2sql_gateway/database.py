"""
nl2sql_gateway/database.py

Centralized database utilities:
- get_engine: build SQLAlchemy engine from a URL
- normalize_value / normalize_row: coerce driver values into JSON scalars
- QueryExecutor: run approved SQL statement by statement and return rows
"""

import base64
import datetime
import logging
import math
import time
import uuid
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from nl2sql_gateway.config import EXEC_TIMEOUT_SECONDS, USER_DB_URL
from nl2sql_gateway.errors import ExecutionError
from nl2sql_gateway.query_validator import split_statements

logger = logging.getLogger(__name__)

Scalar = Union[None, bool, int, float, str]
Row = Dict[str, Scalar]

# sqlite3 calls the progress handler every N virtual machine instructions
_PROGRESS_STEPS = 10_000


# ---------------- Engine ----------------
def get_engine(url: str = USER_DB_URL) -> Engine:
    """Return a SQLAlchemy engine; file-backed SQLite gets its directory created."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, pool_pre_ping=True, future=True)


# ---------------- Row normalization ----------------
def normalize_value(value: Any) -> Scalar:
    # JSON has no Infinity or NaN
    if isinstance(value, float) and (math.isinf(value) or math.isnan(value)):
        return None
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return normalize_value(float(value))
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, uuid.UUID):
        return str(value)
    return str(value)


def normalize_row(row: Mapping[str, Any]) -> Row:
    return {str(k): normalize_value(v) for k, v in row.items()}


# ---------------- Query Execution ----------------
class QueryExecutor:
    """
    Submits policy-approved SQL to the user database.

    Statements run in textual order on one connection, each committed on its
    own; there is no transaction spanning the batch. The rows of the last
    statement that produced a result set are returned.
    """

    def __init__(self, engine: Optional[Engine] = None, timeout: float = EXEC_TIMEOUT_SECONDS):
        self.engine = engine if engine is not None else get_engine()
        self.timeout = timeout

    @contextmanager
    def _deadline(self, conn):
        """Interrupt SQLite statements that run past the timeout."""
        if self.engine.dialect.name != "sqlite" or not self.timeout:
            yield
            return
        raw = conn.connection.driver_connection
        deadline = time.monotonic() + self.timeout
        raw.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, _PROGRESS_STEPS)
        try:
            yield
        finally:
            raw.set_progress_handler(None, 0)

    def execute(self, sql: str) -> List[Row]:
        statements = split_statements(sql)
        rows: List[Row] = []
        start = time.monotonic()
        try:
            with self.engine.connect() as conn:
                with self._deadline(conn):
                    for statement in statements:
                        result = conn.exec_driver_sql(statement)
                        if result.returns_rows:
                            rows = [normalize_row(r) for r in result.mappings()]
                        conn.commit()
        except SQLAlchemyError as e:
            elapsed = time.monotonic() - start
            reason = getattr(e, "orig", None) or e
            if "interrupted" in str(reason).lower():
                raise ExecutionError(
                    f"SQL Execution Error: query exceeded timeout of {self.timeout}s (took {elapsed:.2f}s)"
                ) from e
            raise ExecutionError(f"SQL Execution Error: {reason}") from e

        logger.info(
            "Executed %d statement(s) in %.3fs, %d row(s)", len(statements), time.monotonic() - start, len(rows)
        )
        return rows
