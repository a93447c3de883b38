# tests/test_database.py
import datetime
import threading
from decimal import Decimal

import pytest

from nl2sql_gateway.database import QueryExecutor, get_engine, normalize_row, normalize_value
from nl2sql_gateway.errors import ExecutionError


def test_select_returns_typed_rows(executor):
    """Numbers stay numbers and NULL stays None."""
    rows = executor.execute("SELECT id, name, age, score, nickname FROM users ORDER BY id;")
    assert rows == [
        {"id": 1, "name": "Alice", "age": 30, "score": 9.5, "nickname": None},
        {"id": 2, "name": "Bob", "age": 25, "score": 7.25, "nickname": "bobby"},
    ]
    assert isinstance(rows[0]["age"], int)
    assert isinstance(rows[0]["score"], float)


def test_select_limit_one(executor):
    rows = executor.execute("SELECT name FROM users LIMIT 1;")
    assert rows == [{"name": "Alice"}]


def test_select_without_rows_returns_empty_list(executor):
    assert executor.execute("SELECT name FROM users WHERE id = 999") == []


def test_write_statement_returns_empty_list_and_commits(executor):
    assert executor.execute("INSERT INTO users (id, name) VALUES (3, 'Carol')") == []
    rows = executor.execute("SELECT name FROM users WHERE id = 3")
    assert rows == [{"name": "Carol"}]


def test_multi_statement_runs_in_order(executor):
    rows = executor.execute(
        "CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT);"
        "INSERT INTO notes (body) VALUES ('first');"
        "INSERT INTO notes (body) VALUES ('second');"
        "SELECT body FROM notes ORDER BY id;"
    )
    assert rows == [{"body": "first"}, {"body": "second"}]


def test_rows_come_from_last_result_set(executor):
    rows = executor.execute("SELECT 1 AS a; SELECT 2 AS b; UPDATE users SET age = 31 WHERE id = 1")
    assert rows == [{"b": 2}]


def test_earlier_statements_stay_committed_when_later_fails(executor):
    with pytest.raises(ExecutionError):
        executor.execute("INSERT INTO users (id, name) VALUES (10, 'Eve'); INSERT INTO missing VALUES (1)")
    assert executor.execute("SELECT name FROM users WHERE id = 10") == [{"name": "Eve"}]


def test_constraint_violation_is_execution_error(executor):
    with pytest.raises(ExecutionError) as exc:
        executor.execute("INSERT INTO users (id, name) VALUES (1, 'Duplicate')")
    assert exc.value.status_code == 400
    assert "UNIQUE" in str(exc.value)


def test_unknown_table_is_execution_error(executor):
    with pytest.raises(ExecutionError) as exc:
        executor.execute("SELECT * FROM non_existent_table")
    assert "SQL Execution Error" in str(exc.value)
    assert "no such table" in str(exc.value)


def test_query_timeout_enforcement(user_engine):
    """A runaway recursive query is interrupted instead of hanging."""
    executor = QueryExecutor(engine=user_engine, timeout=0.2)
    with pytest.raises(ExecutionError) as exc:
        executor.execute(
            "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) SELECT count(*) FROM c"
        )
    assert "timeout" in str(exc.value)
    # connection is still usable afterwards
    assert executor.execute("SELECT 1 AS one") == [{"one": 1}]


def test_concurrent_query_execution(executor):
    results = []
    errors = []

    def worker(query):
        try:
            results.append(len(executor.execute(query)))
        except Exception as e:
            errors.append(str(e))

    threads = [
        threading.Thread(target=worker, args=("SELECT * FROM users",)),
        threading.Thread(target=worker, args=("SELECT * FROM users WHERE id = 1",)),
        threading.Thread(target=worker, args=("SELECT name FROM users LIMIT 1",)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    assert sorted(results) == [1, 1, 2]


def test_get_engine_creates_sqlite_directory(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "app.db"
    engine = get_engine(f"sqlite:///{db_path}")
    with engine.connect() as conn:
        conn.exec_driver_sql("SELECT 1")
    engine.dispose()
    assert db_path.parent.exists()


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        (True, True),
        (7, 7),
        (1.5, 1.5),
        ("text", "text"),
        (Decimal("2.50"), 2.5),
        (datetime.date(2024, 1, 2), "2024-01-02"),
        (datetime.datetime(2024, 1, 2, 3, 4, 5), "2024-01-02T03:04:05"),
        (b"\x00\x01", "AAE="),
        (float("inf"), None),
        (float("-inf"), None),
        (float("nan"), None),
        (Decimal("Infinity"), None),
    ],
)
def test_normalize_value(value, expected):
    assert normalize_value(value) == expected


def test_normalize_row_keeps_bool_distinct_from_int():
    row = normalize_row({"flag": True, "count": 1})
    assert row["flag"] is True
    assert row["count"] == 1 and not isinstance(row["count"], bool)
