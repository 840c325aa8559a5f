from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from bidledger.config import settings
from bidledger.errors import LedgerError
from bidledger.logging_setup import configure_logging
from bidledger.routes.system import router as system_router
from bidledger.routes.balance import router as balance_router
from bidledger.routes.bids import router as bids_router
from bidledger.routes.billing import router as billing_router
from bidledger.routes.admin import router as admin_router
from bidledger.routes.stripe_webhooks import router as stripe_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha,
             auction_tz=settings.auction_timezone)
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for partner points and the weekly ad-slot auction"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system_router)
app.include_router(balance_router)
app.include_router(bids_router)
app.include_router(billing_router)
app.include_router(admin_router)
app.include_router(stripe_router)

@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    log.warning("request_rejected", path=request.url.path, code=exc.code, status=exc.status_code, reason=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": {"code": exc.code, "message": exc.message}})

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
