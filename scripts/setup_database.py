"""
scripts/setup_database.py

Create the history ledger table and seed a small demo `users` table in the
user database.
"""
from sqlalchemy import text

from nl2sql_gateway.config import HISTORY_DB_URL, USER_DB_URL
from nl2sql_gateway.database import get_engine
from nl2sql_gateway.history import QueryHistory

USERS = [
    (1, "Alice", "alice@example.com", 30),
    (2, "Bob", "bob@example.com", 25),
    (3, "Carol", "carol@example.com", 41),
]


def setup():
    QueryHistory(engine=get_engine(HISTORY_DB_URL))
    print(f"✅ History table ready at {HISTORY_DB_URL}")

    engine = get_engine(USER_DB_URL)
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE IF NOT EXISTS users ("
            " id INTEGER PRIMARY KEY,"
            " name TEXT NOT NULL,"
            " email TEXT UNIQUE,"
            " age INTEGER)"
        ))
        for user_id, name, email, age in USERS:
            conn.execute(
                text("INSERT OR IGNORE INTO users (id, name, email, age) VALUES (:id, :name, :email, :age)"),
                {"id": user_id, "name": name, "email": email, "age": age},
            )
    print(f"📦 Demo users seeded into {USER_DB_URL}")


if __name__ == "__main__":
    setup()
