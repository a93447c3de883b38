"""
FastAPI surface for the NL2SQL gateway.
Run with: uvicorn nl2sql_gateway.api:create_app --factory --port 8000
"""
import logging
import time
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from nl2sql_gateway.config import Settings, configure_logging, get_settings
from nl2sql_gateway.database import Row
from nl2sql_gateway.errors import GatewayError
from nl2sql_gateway.schemas import ExecSqlRequest, HistoryItem, Nl2SqlRequest, Nl2SqlResponse
from nl2sql_gateway.text2sql_engine import Text2SQLEngine

logger = logging.getLogger(__name__)


def create_app(engine: Optional[Text2SQLEngine] = None, settings: Optional[Settings] = None) -> FastAPI:
    configure_logging()
    settings = settings or get_settings()
    engine = engine or Text2SQLEngine.from_settings(settings)

    app = FastAPI(title="NL2SQL Gateway", version="0.1.0")
    app.state.engine = engine
    app.state.settings = settings

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("%s %s failed with an unhandled error", request.method, request.url.path)
            response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.time() - start_time) * 1000,
        )
        return response

    # outermost, so unhandled-error 500s carry CORS headers too
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def bad_request_handler(request: Request, exc: RequestValidationError):
        errors = "; ".join(str(e.get("msg")) for e in exc.errors())
        return JSONResponse(status_code=400, content={"detail": f"Bad Request: {errors}"})

    @app.post("/nl2sql", response_model=Nl2SqlResponse)
    def nl2sql(body: Nl2SqlRequest):
        result = engine.nl2sql(body.prompt)
        return Nl2SqlResponse(generated_sql=result.generated_sql, history_id=result.history_id)

    @app.post("/execsql", response_model=None)
    def execsql(body: ExecSqlRequest) -> List[Row]:
        return engine.run_sql(body.sql_to_run, body.history_id)

    @app.get("/history", response_model=List[HistoryItem])
    def history():
        return [HistoryItem.from_entry(e) for e in engine.recent_history(settings.history_limit)]

    @app.get("/ping", response_class=PlainTextResponse)
    def ping():
        return "pong"

    return app


def main():
    import uvicorn

    uvicorn.run("nl2sql_gateway.api:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
