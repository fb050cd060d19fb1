"""Account Service - user registration, login and password reset API."""

import logging
import time
from pathlib import Path

from fastapi import Depends, FastAPI, Form, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from accounts.config import get_settings
from accounts.database import get_db
from accounts.exceptions import AppError, InternalError, ValidationError
from accounts.rate_limit import limiter
from accounts.routers import auth_router, users_router
from accounts.services.auth import get_auth_service

BASE_DIR = Path(__file__).resolve().parent

# Logging
logger = logging.getLogger("accounts")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

settings = get_settings()
for warning in settings.validate():
    logger.warning("Config: %s", warning)

app = FastAPI(title="Account Service", version="0.1.0")
app.state.limiter = limiter


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'self'; style-src 'self'; form-action 'self'"
        return response


# --- Request size limit middleware ---
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    MAX_BODY_SIZE = 1024 * 1024  # JSON and form bodies only, no uploads

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.MAX_BODY_SIZE:
            return JSONResponse(status_code=413, content={"detail": "Request body too large", "error_code": "TOO_LARGE"})
        return await call_next(request)


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    AUDITED_METHODS = {"POST", "PATCH", "DELETE"}
    AUDIT_PATHS = ("/api/v1/users", "/reset-password")

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        path = request.url.path
        method = request.method
        if method in self.AUDITED_METHODS and path.startswith(self.AUDIT_PATHS):
            # Reset secrets travel in the path; keep them out of the log.
            if "/reset-password/" in path:
                path = path.split("/reset-password/")[0] + "/reset-password/<token>"
            logger.info(
                "AUDIT %s %s -> %d (%.0fms) from %s",
                method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(AuditLogMiddleware)

# Static files
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")

# Templates
templates = Jinja2Templates(directory=BASE_DIR / "templates")

# API routers
app.include_router(auth_router)
app.include_router(users_router)


# --- Error translation ---
def _error_response(error: AppError) -> JSONResponse:
    content = {"detail": error.message, "error_code": error.error_code}
    if not error.is_operational and not settings.DEBUG:
        content["detail"] = InternalError.default_message
    elif error.details:
        content["details"] = error.details
    return JSONResponse(status_code=error.status_code, content=content)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Return service errors with their kind and message."""
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed bodies and parameters as validation errors."""
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    message = "Invalid input data. " + ". ".join(problems)
    return _error_response(ValidationError(message))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle framework HTTP errors, mainly unknown routes."""
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = f"Can't find {request.url.path} on this server!"
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "error_code": "HTTP_ERROR"},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle rate limit exceeded."""
    return JSONResponse(
        status_code=429, content={"detail": "Rate limit exceeded. Try again later.", "error_code": "RATE_LIMITED"}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected becomes an InternalError; details only leak in DEBUG."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = InternalError(f"{type(exc).__name__}: {exc}" if settings.DEBUG else None)
    return _error_response(error)


# --- Health check ---
@app.get("/api/health")
def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "app": "account-service", "version": "0.1.0"}


# --- Web password reset ---
@app.get("/reset-password/{token}", response_class=HTMLResponse)
def reset_password_page(request: Request, token: str, db: Session = Depends(get_db)) -> HTMLResponse:
    """Render the reset form, or the error page when the link is no longer valid."""
    auth_service = get_auth_service()
    try:
        auth_service.reset_tokens.resolve(db, token)
    except AppError as e:
        return templates.TemplateResponse(request, "reset_error.html", {"error": e.message}, status_code=400)
    return templates.TemplateResponse(request, "reset_password.html", {"token": token})


@app.post("/reset-password/{token}", response_class=HTMLResponse)
def reset_password_submit(
    request: Request,
    token: str,
    password: str = Form(""),
    password_confirm: str = Form(""),
    db: Session = Depends(get_db),
) -> HTMLResponse:
    """Handle the reset form submission."""
    auth_service = get_auth_service()
    try:
        auth_service.complete_password_reset(db, token, password, password_confirm)
    except AppError as e:
        return templates.TemplateResponse(request, "reset_error.html", {"error": e.message}, status_code=e.status_code)
    return templates.TemplateResponse(request, "reset_success.html", {})
