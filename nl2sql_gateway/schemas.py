import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    # camelCase on the wire; snake_case keys are accepted too
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Nl2SqlRequest(BaseModel):
    prompt: str = Field(..., examples=["show me all users"])


class Nl2SqlResponse(_CamelModel):
    generated_sql: str
    history_id: int


class ExecSqlRequest(_CamelModel):
    sql_to_run: str = Field(..., examples=["SELECT * FROM users;"])
    # SQLite INTEGER range
    history_id: Optional[int] = Field(None, ge=-(2**63), le=2**63 - 1)


class HistoryItem(_CamelModel):
    id: int
    natural: str
    sql: str
    executed: bool
    created_at: datetime.datetime

    @classmethod
    def from_entry(cls, entry) -> "HistoryItem":
        return cls(
            id=entry.id,
            natural=entry.natural_prompt,
            sql=entry.generated_sql,
            executed=entry.executed,
            created_at=entry.created_at,
        )
