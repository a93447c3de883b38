# tests/conftest.py
import pytest
from fastapi.testclient import TestClient

from nl2sql_gateway.api import create_app
from nl2sql_gateway.config import Settings
from nl2sql_gateway.database import QueryExecutor, get_engine
from nl2sql_gateway.history import QueryHistory
from nl2sql_gateway.text2sql_engine import InferenceClient, Text2SQLEngine


class FakeInferenceClient(InferenceClient):
    """Returns a canned completion and records what it was asked."""

    def __init__(self, response="SELECT * FROM users;", error=None):
        self.response = response
        self.error = error
        self.calls = []

    def complete(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def user_engine(tmp_path):
    """User database with a small users table."""
    engine = get_engine(f"sqlite:///{tmp_path / 'app.db'}")
    with engine.begin() as conn:
        conn.exec_driver_sql(
            "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL, "
            "age INTEGER, score REAL, nickname TEXT)"
        )
        conn.exec_driver_sql(
            "INSERT INTO users (id, name, age, score, nickname) VALUES "
            "(1, 'Alice', 30, 9.5, NULL), (2, 'Bob', 25, 7.25, 'bobby')"
        )
    yield engine
    engine.dispose()


@pytest.fixture
def history(tmp_path):
    engine = get_engine(f"sqlite:///{tmp_path / 'history.db'}")
    yield QueryHistory(engine=engine)
    engine.dispose()


@pytest.fixture
def executor(user_engine):
    return QueryExecutor(engine=user_engine, timeout=5)


@pytest.fixture
def fake_llm():
    return FakeInferenceClient()


@pytest.fixture
def text2sql_engine(fake_llm, history, executor):
    return Text2SQLEngine(client=fake_llm, history=history, executor=executor)


@pytest.fixture
def settings():
    return Settings(
        allowed_origins=("https://cf-ai-query-assistant.pages.dev", "http://localhost:3000"),
        history_limit=5,
    )


@pytest.fixture
def client(text2sql_engine, settings):
    with TestClient(create_app(engine=text2sql_engine, settings=settings)) as c:
        yield c
