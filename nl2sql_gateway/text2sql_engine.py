"""
nl2sql_gateway/text2sql_engine.py

NL2SQL gateway engine:
- Asks an LLM (Gemini or Workers AI) to turn a prompt into SQL
- Records every generation in the history ledger
- Validates, policy-checks and executes submitted SQL
- Marks the cited history entry as executed (best effort)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import google.generativeai as genai
import httpx

from nl2sql_gateway.config import Settings, get_settings
from nl2sql_gateway.database import QueryExecutor, Row, get_engine
from nl2sql_gateway.errors import ClientInputError, InferenceError, PersistenceError
from nl2sql_gateway.history import HistoryEntry, QueryHistory
from nl2sql_gateway.query_validator import check_policy, clean_llm_sql, parse_statements

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a SQL generator for given user prompt. "
    "Output ONLY a SQL query for SQLite dialect.\n"
    "Do not include any explanations, markdown, or other text.\n"
    "Return SQL only."
)

Message = Dict[str, str]


def build_messages(prompt: str) -> List[Message]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


# ---------------- Inference clients ----------------
class InferenceClient:
    """Opaque text-completion service: chat messages in, text out."""

    def complete(self, messages: List[Message]) -> str:
        raise NotImplementedError


class GeminiClient(InferenceClient):
    def __init__(self, model_name: str, api_key: Optional[str], timeout: float = 60.0):
        if not api_key:
            raise ValueError("GOOGLE_API_KEY not found in environment variables")
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.timeout = timeout

    def complete(self, messages: List[Message]) -> str:
        system = "\n".join(m["content"] for m in messages if m["role"] == "system")
        user = "\n\n".join(m["content"] for m in messages if m["role"] != "system")
        model = genai.GenerativeModel(self.model_name, system_instruction=system or None)
        resp = model.generate_content(user, request_options={"timeout": self.timeout})
        return resp.text or ""


class WorkersAIClient(InferenceClient):
    """Cloudflare Workers AI REST endpoint."""

    URL = "https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/{model}"

    def __init__(self, account_id: Optional[str], api_token: Optional[str], model: str, timeout: float = 60.0):
        if not account_id or not api_token:
            raise ValueError("CF_ACCOUNT_ID and CF_API_TOKEN are required for Workers AI")
        self.url = self.URL.format(account_id=account_id, model=model)
        self.api_token = api_token
        self.timeout = timeout

    def complete(self, messages: List[Message]) -> str:
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(
                self.url,
                headers={"Authorization": f"Bearer {self.api_token}"},
                json={"messages": messages},
            )
            response.raise_for_status()
            data = response.json()
        return data["result"]["response"]


def build_inference_client(settings: Settings) -> InferenceClient:
    provider = settings.llm_provider.lower()
    if provider == "gemini":
        return GeminiClient(settings.model_name, settings.gemini_api_key, settings.inference_timeout_seconds)
    if provider in {"workers-ai", "workers_ai", "cloudflare"}:
        return WorkersAIClient(
            settings.cf_account_id,
            settings.cf_api_token,
            settings.workers_ai_model,
            settings.inference_timeout_seconds,
        )
    raise ValueError(f"Unknown LLM_PROVIDER: {settings.llm_provider}")


# ---------------- Engine ----------------
@dataclass(frozen=True)
class GenerationResult:
    generated_sql: str
    history_id: int


class Text2SQLEngine:
    def __init__(
        self,
        client: InferenceClient,
        history: QueryHistory,
        executor: QueryExecutor,
        debug: bool = False,
    ):
        self.client = client
        self.history = history
        self.executor = executor
        self.debug = debug

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Text2SQLEngine":
        settings = settings or get_settings()
        return cls(
            client=build_inference_client(settings),
            history=QueryHistory(engine=get_engine(settings.history_db_url)),
            executor=QueryExecutor(
                engine=get_engine(settings.user_db_url),
                timeout=settings.exec_timeout_seconds,
            ),
            debug=settings.debug,
        )

    def generate_sql(self, prompt: str) -> str:
        """Ask the model for SQL. The result is not validated here."""
        try:
            raw = self.client.complete(build_messages(prompt))
        except Exception as e:
            logger.error("Failed to run model: %s", e)
            raise InferenceError(f"AI Error: {e}") from e
        sql = clean_llm_sql(raw)
        if self.debug:
            logger.info("Model raw SQL:\n%s", raw)
        return sql

    def nl2sql(self, prompt: str) -> GenerationResult:
        if not prompt or not prompt.strip():
            raise ClientInputError("Bad Request: prompt must not be empty")
        sql = self.generate_sql(prompt)
        # append failure aborts the request: SQL is never returned without a history id
        history_id = self.history.append(prompt, sql)
        logger.info("Saved generated SQL as history entry %d", history_id)
        return GenerationResult(generated_sql=sql, history_id=history_id)

    def run_sql(self, sql: str, history_id: Optional[int] = None) -> List[Row]:
        """Validate, policy-check and execute SQL; then mark the cited entry."""
        statements = parse_statements(sql)
        check_policy(statements)
        if not statements:
            return []

        rows = self.executor.execute(sql)

        if history_id is not None:
            self._mark_executed(history_id)
        return rows

    def _mark_executed(self, history_id: int) -> None:
        try:
            found = self.history.mark_executed(history_id)
        except Exception as e:
            logger.warning("Could not mark history entry %s as executed: %s", history_id, e)
            return
        if not found:
            logger.info("History entry %s not found; nothing to mark", history_id)

    def recent_history(self, limit: int = 5) -> List[HistoryEntry]:
        return self.history.recent(limit)
