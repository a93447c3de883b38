"""
nl2sql_gateway/query_validator.py

SQL gatekeeping for the execution endpoint:
- Parse submitted SQL with a fixed SQLite grammar (sqlglot)
- Classify every statement into a closed set of statement kinds
- Reject the whole batch if any statement is destructive or structural DDL
- Split raw SQL into per-statement text for the executor
- Strip typical LLM formatting from generated SQL
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import List, Sequence

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError
from sqlglot.tokens import TokenType

from nl2sql_gateway.errors import PolicyViolation, SqlSyntaxError

logger = logging.getLogger(__name__)

# Downstream execution targets one dialect, so this is not configurable.
SQL_DIALECT = "sqlite"

POLICY_MESSAGE = (
    "Your SQL contains operations that are not allowed for safety reasons "
    "(e.g., DROP, ALTER, TRUNCATE, etc.)."
)


class StatementKind(str, enum.Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CREATE_TABLE = "CREATE TABLE"
    CREATE_INDEX = "CREATE INDEX"
    CREATE_VIEW = "CREATE VIEW"
    CREATE_DATABASE = "CREATE DATABASE"
    CREATE_ROLE = "CREATE ROLE"
    CREATE_OTHER = "CREATE"
    DROP = "DROP"
    ALTER_TABLE = "ALTER TABLE"
    ALTER_SCHEMA = "ALTER SCHEMA"
    ALTER_ROLE = "ALTER ROLE"
    ALTER_OTHER = "ALTER"
    TRUNCATE = "TRUNCATE"
    PRAGMA = "PRAGMA"
    TRANSACTION = "TRANSACTION"
    OTHER = "OTHER"


BLOCKED_KINDS = frozenset(
    {
        StatementKind.DROP,
        StatementKind.ALTER_TABLE,
        StatementKind.ALTER_SCHEMA,
        StatementKind.ALTER_ROLE,
        StatementKind.TRUNCATE,
        StatementKind.CREATE_ROLE,
        StatementKind.CREATE_DATABASE,
    }
)

_CREATE_KINDS = {
    "TABLE": StatementKind.CREATE_TABLE,
    "INDEX": StatementKind.CREATE_INDEX,
    "VIEW": StatementKind.CREATE_VIEW,
    "DATABASE": StatementKind.CREATE_DATABASE,
    "ROLE": StatementKind.CREATE_ROLE,
}

_ALTER_KINDS = {
    "TABLE": StatementKind.ALTER_TABLE,
    "SCHEMA": StatementKind.ALTER_SCHEMA,
    "ROLE": StatementKind.ALTER_ROLE,
}

# words that may sit between CREATE and the object type
_CREATE_MODIFIERS = {"OR", "REPLACE", "TEMP", "TEMPORARY", "UNIQUE", "VIRTUAL"}

_TRANSACTION_TYPES = (exp.Transaction, exp.Commit, exp.Rollback)


@dataclass(frozen=True)
class ParsedStatement:
    kind: StatementKind
    expression: exp.Expression

    @property
    def blocked(self) -> bool:
        return is_blocked(self.kind)


# ---------------- Classification ----------------
def _kind_from_keywords(head: str, rest: str) -> StatementKind:
    """Classify statements the parser only kept as raw commands."""
    words = rest.upper().split()
    head = head.upper()
    if head == "DROP":
        return StatementKind.DROP
    if head == "TRUNCATE":
        return StatementKind.TRUNCATE
    if head == "ALTER":
        return _ALTER_KINDS.get(words[0] if words else "", StatementKind.ALTER_OTHER)
    if head == "CREATE":
        words = [w for w in words if w not in _CREATE_MODIFIERS]
        return _CREATE_KINDS.get(words[0] if words else "", StatementKind.CREATE_OTHER)
    if head == "PRAGMA":
        return StatementKind.PRAGMA
    if head in {"BEGIN", "COMMIT", "END", "ROLLBACK", "SAVEPOINT", "RELEASE"}:
        return StatementKind.TRANSACTION
    return StatementKind.OTHER


def classify_statement(expression: exp.Expression) -> StatementKind:
    if isinstance(expression, exp.Drop):
        return StatementKind.DROP
    if isinstance(expression, exp.TruncateTable):
        return StatementKind.TRUNCATE
    if isinstance(expression, exp.Alter):
        kind = str(expression.args.get("kind") or "TABLE").upper()
        return _ALTER_KINDS.get(kind, StatementKind.ALTER_OTHER)
    if isinstance(expression, exp.Create):
        kind = str(expression.args.get("kind") or "").upper()
        return _CREATE_KINDS.get(kind, StatementKind.CREATE_OTHER)
    if isinstance(expression, (exp.Query, exp.Values)):
        return StatementKind.SELECT
    if isinstance(expression, exp.Insert):
        return StatementKind.INSERT
    if isinstance(expression, exp.Update):
        return StatementKind.UPDATE
    if isinstance(expression, exp.Delete):
        return StatementKind.DELETE
    if isinstance(expression, exp.Pragma):
        return StatementKind.PRAGMA
    if isinstance(expression, _TRANSACTION_TYPES):
        return StatementKind.TRANSACTION
    if isinstance(expression, exp.Command):
        return _kind_from_keywords(
            str(expression.args.get("this") or ""),
            str(expression.args.get("expression") or ""),
        )
    return StatementKind.OTHER


def is_blocked(kind: StatementKind) -> bool:
    return kind in BLOCKED_KINDS


def _is_bare_expression(expression: exp.Expression) -> bool:
    # sqlglot happily parses "foo bar" as a projection without SELECT
    if isinstance(expression, exp.Query):
        return False
    return isinstance(expression, (exp.Condition, exp.Alias, exp.Identifier, exp.Star))


# ---------------- Syntax ----------------
def parse_statements(sql: str) -> List[ParsedStatement]:
    """
    Parse SQL under the fixed dialect.
    Returns statements in textual order; [] means nothing to execute.
    Raises SqlSyntaxError on malformed input.
    """
    if not sql or not sql.strip():
        return []
    try:
        expressions = sqlglot.parse(sql, read=SQL_DIALECT)
    except (ParseError, TokenError) as e:
        raise SqlSyntaxError(f"SQL Syntax Error: {e}") from e

    statements = []
    for expression in expressions:
        if expression is None:
            continue
        if _is_bare_expression(expression):
            raise SqlSyntaxError(
                f"SQL Syntax Error: expected a statement, found '{expression.sql(dialect=SQL_DIALECT)}'"
            )
        statements.append(ParsedStatement(kind=classify_statement(expression), expression=expression))
    return statements


def split_statements(sql: str) -> List[str]:
    """Split raw SQL on top-level semicolons without rewriting statement text."""
    pieces = []
    start, seen = 0, False
    for token in sqlglot.tokenize(sql, read=SQL_DIALECT):
        if token.token_type == TokenType.SEMICOLON:
            if seen:
                pieces.append(sql[start:token.start].strip())
            start, seen = token.end + 1, False
        else:
            seen = True
    if seen:
        pieces.append(sql[start:].strip())
    return pieces


# ---------------- Policy ----------------
def check_policy(statements: Sequence[ParsedStatement]) -> None:
    """Reject the batch atomically if any statement is of a blocked kind."""
    for index, statement in enumerate(statements):
        if statement.blocked:
            logger.warning("Blocked %s statement at position %d", statement.kind.value, index)
            raise PolicyViolation(POLICY_MESSAGE, kind=statement.kind)


def validate_sql(sql: str) -> List[ParsedStatement]:
    statements = parse_statements(sql)
    check_policy(statements)
    return statements


# ---------------- LLM output cleanup ----------------
def _strip_code_fences(sql: str) -> str:
    s = sql.strip()
    # remove ```sql ... ``` or ``` ... ```
    if s.startswith("```"):
        parts = s.split("```")
        if len(parts) >= 3:
            s = parts[1]
            s = re.sub(r"^\s*sql\b", "", s, flags=re.IGNORECASE)
        else:
            s = s.replace("```", "")
    return s.strip()


def clean_llm_sql(raw: str) -> str:
    """Drop markdown fences and a leading 'SQL:' label from model output."""
    s = _strip_code_fences(raw or "")
    return re.sub(r"^\s*SQL\s*:\s*", "", s, flags=re.IGNORECASE)
