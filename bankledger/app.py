import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from . import config, security
from .accounts import AccountService
from .api import router
from .auth import AuthGateway
from .db import SQLiteAccountStore, seed_if_empty
from .engine import TransactionEngine
from .errors import LedgerError
from .logger_config import request_id_var, setup_logging
from .store import AccountStore

# ---- logging ----
setup_logging()
log = logging.getLogger("app")

DEMO_PASSWORD = "demo-password"

# ---- status -> code mapping ----
STATUS_TO_CODE = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    415: "UNSUPPORTED_MEDIA_TYPE",
    422: "UNPROCESSABLE_ENTITY",
    503: "SERVICE_UNAVAILABLE",
}


def code_for(status: int) -> str:
    return STATUS_TO_CODE.get(status, f"HTTP_{status}")


def error_response(status: int, message: str, code: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"error": {"code": code or code_for(status), "message": message}},
    )


# ---- middleware ----
class EnforceJSONMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.method in {"POST", "PUT", "PATCH"}:
            ct = request.headers.get("content-type", "").split(";")[0].strip().lower()
            if ct != "application/json":
                log.warning("Unsupported media type: %s %s", request.method, request.url.path)
                return error_response(415, "Content-Type must be application/json")
        return await call_next(request)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = rid
            return response
        finally:
            request_id_var.reset(token)


def create_app(store: AccountStore | None = None) -> FastAPI:
    """Build the API around ``store``; defaults to the SQLite file named by BANK_DB_PATH."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        if isinstance(app.state.store, SQLiteAccountStore):
            app.state.store.init()
        if config.seed_demo():
            seed_if_empty(app.state.store, security.hash_password(DEMO_PASSWORD))
        log.info("Bank ledger API started")
        try:
            yield
        finally:
            # Shutdown
            app.state.store.close()
            log.info("Bank ledger API stopped")

    app = FastAPI(title="Bank Ledger", lifespan=lifespan)

    if store is None:
        store = SQLiteAccountStore()
    gateway = AuthGateway(store)
    app.state.store = store
    app.state.gateway = gateway
    app.state.engine = TransactionEngine(store)
    app.state.accounts = AccountService(store, gateway)

    # middleware
    app.add_middleware(EnforceJSONMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # exception handlers
    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if exc.status >= 500:
            log.error("%s %s -> %s %s", request.method, request.url.path, exc.code, exc.message,
                      exc_info=exc.__cause__)
        else:
            log.warning("%s %s -> %s %s", request.method, request.url.path, exc.code, exc.message)
        return error_response(exc.status, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        msg = "Invalid request."
        errors = exc.errors()
        if errors:
            err = errors[0]
            loc = ".".join(str(x) for x in err.get("loc", []))
            detail = err.get("msg", "")
            msg = f"{loc}: {detail}" if loc else (detail or msg)
        log.warning("422 validation: %s %s -> %s", request.method, request.url.path, msg)
        return error_response(422, msg)

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else code_for(exc.status_code).replace("_", " ").title()
        log.warning("%s %s -> %s (%s)", request.method, request.url.path, exc.status_code, detail)
        return error_response(exc.status_code, str(detail))

    # routers
    app.include_router(router)
    return app


app = create_app()
