from contextlib import asynccontextmanager
from typing import Optional
import json
import logging
import traceback

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.staticfiles import StaticFiles

from ideaportal import __version__
from ideaportal.auth.auth import auth_middleware
from ideaportal.config.loader import get_bootstrap_admin_settings
from ideaportal.data.user_manager import UserManager
from ideaportal.database import Base, SessionLocal, engine, ensure_sqlite_schema
import ideaportal.models  # noqa: F401  # Ensure all SQLAlchemy models are registered
from ideaportal.models.user import is_staff_role, role_value
from ideaportal.routers import admin as admin_router
from ideaportal.routers import analytics as analytics_router
from ideaportal.routers import auth as auth_router
from ideaportal.routers import ideas as ideas_router
from ideaportal.routers import notifications as notifications_router
from ideaportal.utils.logging_config import setup_logging
from ideaportal.utils.uploads import UPLOAD_URL_PREFIX, upload_directory

logger = logging.getLogger("ideaportal")


def _bootstrap_admin() -> None:
    settings = get_bootstrap_admin_settings()
    if not settings:
        logger.info("No bootstrap admin configured; use scripts/create_admin.py.")
        return
    db = SessionLocal()
    try:
        manager = UserManager()
        manager.set_db(db)
        admin = manager.ensure_admin_exists(
            settings["username"], settings["password"], settings["display_name"]
        )
        logger.info(f"Bootstrap admin ready: {admin.username}")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema(engine)
    _bootstrap_admin()
    logger.info("Database initialized.")
    yield
    logger.info("Application shutdown.")


app = FastAPI(
    title="Idea Portal",
    description="Collect, vote on and track ideas, challenges and pain points",
    version=__version__,
    lifespan=lifespan,
)

app.mount(
    UPLOAD_URL_PREFIX,
    StaticFiles(directory=str(upload_directory())),
    name="uploads",
)


def _summarize_payload(body: bytes) -> Optional[str]:
    if not body:
        return None
    parsed = json.loads(body.decode("utf-8"))
    if not isinstance(parsed, dict):
        return type(parsed).__name__
    redacted = {}
    for key, value in parsed.items():
        lower_key = str(key).lower()
        if "password" in lower_key or "token" in lower_key:
            redacted[key] = "***"
        elif isinstance(value, (str, int, float, bool, type(None))):
            redacted[key] = value
        else:
            redacted[key] = type(value).__name__
    return json.dumps(redacted, ensure_ascii=True)


async def audit_action_middleware(
    request: Request, call_next: RequestResponseEndpoint
) -> Response:
    """Logs mutating /api calls made by admins and staff."""
    method = request.method.upper()
    if method not in {"POST", "PUT", "PATCH", "DELETE"}:
        return await call_next(request)

    path = request.url.path
    if not path.startswith("/api/"):
        return await call_next(request)

    user = getattr(request.state, "user", None)
    role = getattr(user, "role", None)
    if not role or not is_staff_role(role):
        return await call_next(request)

    payload_summary: Optional[str] = None
    if request.headers.get("content-type", "").lower().startswith("application/json"):
        body = await request.body()
        request._body = body  # Preserve for any downstream access
        try:
            payload_summary = _summarize_payload(body)
        except (UnicodeDecodeError, ValueError):
            payload_summary = "unavailable"

    response = await call_next(request)

    details = {
        "method": method,
        "path": path,
        "status": response.status_code,
        "user": getattr(user, "username", None) or "unknown",
        "role": role_value(role),
    }
    if payload_summary:
        details["payload"] = payload_summary
    logging.getLogger("audit").info("Audit action: %s", details)
    return response


app.add_middleware(BaseHTTPMiddleware, dispatch=audit_action_middleware)
# Outermost, so request.state.user is set before the audit middleware runs.
app.add_middleware(BaseHTTPMiddleware, dispatch=auth_middleware)

app.include_router(auth_router.router)
app.include_router(analytics_router.router)
app.include_router(ideas_router.router)
app.include_router(admin_router.router)
app.include_router(notifications_router.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {str(exc)}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal Server Error. Please check logs."},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code} error: {exc.detail}\n{traceback.format_exc()}"
        )
    else:
        logger.info(f"HTTP {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Plain messages keep the response serializable whatever the error context holds.
    error_messages = [err["msg"] for err in exc.errors()]
    logger.warning(f"Validation error on {request.url.path}: {error_messages}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": error_messages},
    )


@app.get("/health", tags=["healthcheck"])
async def health_check():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database connection error: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )
    finally:
        db.close()
    return {"status": "healthy", "database": "connected", "version": __version__}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("ideaportal.main:app", host="0.0.0.0", port=8000)
