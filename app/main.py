"""FastAPI application entrypoint."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1 import v1_router
from app.core.config import get_settings
from app.core.database import async_session_factory, init_db
from app.core.errors import NotFoundOrDeniedError, TenantAccessError
from app.tenancy.middleware import AuthenticationMiddleware, TenantIsolationMiddleware
from app.tenancy.security_log import SecurityEventLog


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: ensure tables exist
    await init_db()
    yield


app = FastAPI(
    title="QueueHub",
    version="0.1.0",
    description="Multi-tenant queue management with strict tenant isolation",
    lifespan=lifespan,
)

_settings = get_settings()

# Collaborators read by the isolation middleware; tests swap these
app.state.session_factory = async_session_factory
app.state.security_log = SecurityEventLog(
    async_session_factory,
    persist_levels=_settings.security_persist_levels,
)

# ── Middleware (last added runs first) ───────────────────────
app.add_middleware(TenantIsolationMiddleware)
app.add_middleware(AuthenticationMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error mapping ────────────────────────────────────────────

@app.exception_handler(NotFoundOrDeniedError)
async def not_found_or_denied(_request: Request, exc: NotFoundOrDeniedError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(TenantAccessError)
async def tenant_access_error(_request: Request, exc: TenantAccessError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "code": exc.code},
    )


# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}
