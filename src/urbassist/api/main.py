"""UrbAssist API — FastAPI application for French planning permits.

Run:
    uvicorn urbassist.api.main:app --reload
    # or
    urbassist-api
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from urllib.parse import urlparse

import mlflow
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from urbassist.api.dossier import router as dossier_router
from urbassist.api.routes import router
from urbassist.config import settings
from urbassist.observability.logging import correlation_id, setup_logging
from urbassist.observability.tracing import init_tracking
from urbassist.storage.db import get_session, init_db

logger = logging.getLogger(__name__)

DB_INIT_TIMEOUT = 15  # seconds

ERROR_TYPES = {
    400: "bad_request",
    404: "not_found",
    422: "validation_error",
    502: "upstream_error",
    504: "timeout",
}


def _database_target(url: str) -> str:
    """host:port/dbname, without credentials."""
    parsed = urlparse(url)
    host = f"{parsed.hostname}:{parsed.port}" if parsed.port else parsed.hostname
    return f"{host}/{parsed.path.lstrip('/')}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Logging, then MLflow, then tables. MLflow and the DB are optional at startup."""
    setup_logging(json_format=settings.log_json, level=settings.log_level)

    try:
        init_tracking(settings.mlflow_tracking_uri, settings.mlflow_experiment_name)
        logger.info("MLflow tracking at %s", settings.mlflow_tracking_uri)
    except Exception as e:
        logger.error("MLflow unavailable, traces will not be recorded: %s", e)

    logger.info("Database: %s", _database_target(settings.database_url))
    try:
        await asyncio.wait_for(init_db(), timeout=DB_INIT_TIMEOUT)
    except asyncio.TimeoutError:
        logger.error("Database not reachable after %ds; decisions will not be persisted", DB_INIT_TIMEOUT)
    except Exception as e:
        logger.error("Database initialization failed, decisions will not be persisted: %s", e)

    logger.info("UrbAssist API ready")
    yield
    logger.info("Shutting down")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Bind X-Request-ID (or a fresh UUID) to the request's log lines and echo it back."""

    async def dispatch(self, request: Request, call_next):
        cid = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = correlation_id.set(cid)
        try:
            response = await call_next(request)
        finally:
            correlation_id.reset(token)
        response.headers["x-request-id"] = cid
        return response


app = FastAPI(
    title="UrbAssist",
    description="French planning-permit assistant: PLU zoning, DP/PC determination, "
    "site-plan compliance and dossier documents.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(dossier_router)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_type": ERROR_TYPES.get(exc.status_code, "error")},
    )


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc.errors()), "error_type": "validation_error"},
    )


async def _check_database() -> dict[str, str]:
    """Connectivity plus the time of the latest persisted decision."""
    session = None
    try:
        session = await get_session()
        await session.execute(text("SELECT 1"))
    except Exception as e:
        return {"database": f"error: {e}", "last_decision": "unknown"}
    else:
        try:
            result = await session.execute(text("SELECT MAX(created_at) FROM decision_records"))
            latest = result.scalar()
            last_decision = latest.isoformat() if latest else "never"
        except Exception:
            last_decision = "unknown"
        return {"database": "ok", "last_decision": last_decision}
    finally:
        if session is not None:
            await session.close()


def _check_mlflow() -> str:
    try:
        mlflow.search_experiments(max_results=1)
    except Exception as e:
        return f"error: {e}"
    return "ok"


@app.get("/health")
async def health():
    """Database and MLflow status. Only the database decides healthy vs degraded."""
    checks = await _check_database()
    checks["mlflow"] = _check_mlflow()
    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, "checks": checks}


def run():
    """Entry point for urbassist-api console script."""
    uvicorn.run("urbassist.api.main:app", host="0.0.0.0", port=8000, reload=True)
