"""
Transitline API - FastAPI application entry point.
"""
from __future__ import annotations

import logging
import os
import sys
import time
import uuid
from collections import defaultdict, deque

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from apps.api.authz import INTERNAL_TOKEN_MIN_LENGTH, hipaa_enforcement_enabled
from packages.db.database import DATABASE_URL, init_db

API_VERSION = "0.1.0"


def _parse_csv_env(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return [value.strip() for value in raw.split(",") if value.strip()]


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("transitline")

app = FastAPI(
    title="Transitline API",
    description="Care transition lifecycle and TCM compliance tracking",
    version=API_VERSION,
)

# Runtime settings, read once at import
cors_allow_origins = _parse_csv_env("CORS_ALLOW_ORIGINS", ["http://localhost:3000", "http://127.0.0.1:3000"])
cors_allow_credentials = _parse_bool_env("CORS_ALLOW_CREDENTIALS", True)
audit_logging_enabled = _parse_bool_env("HIPAA_AUDIT_LOGGING", True)
rate_limit_enabled = _parse_bool_env("RATE_LIMIT_ENABLED", True)
rate_limit_rpm = int(os.getenv("RATE_LIMIT_RPM", "240"))
max_request_bytes = int(os.getenv("MAX_REQUEST_BYTES", str(1024 * 1024)))
allowed_hosts = _parse_csv_env("ALLOWED_HOSTS", ["*"])
security_headers_enabled = _parse_bool_env("SECURITY_HEADERS_ENABLED", True)
RATE_WINDOW_SECONDS = 60.0
# client ip -> request times inside the current window
_rate_windows: dict[str, deque[float]] = defaultdict(deque)
_last_rate_sweep = 0.0

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}


def _validate_hipaa_runtime() -> None:
    """Refuse to start with settings that would expose PHI when enforcement is on."""
    if not hipaa_enforcement_enabled():
        return

    if DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("HIPAA_ENFORCEMENT=true requires a managed database; sqlite DATABASE_URL is not allowed.")
    if "*" in cors_allow_origins:
        raise RuntimeError("HIPAA_ENFORCEMENT=true does not allow wildcard CORS_ALLOW_ORIGINS.")
    if "*" in allowed_hosts:
        raise RuntimeError("HIPAA_ENFORCEMENT=true does not allow wildcard ALLOWED_HOSTS.")
    if not audit_logging_enabled:
        raise RuntimeError("HIPAA_ENFORCEMENT=true requires HIPAA_AUDIT_LOGGING.")

    if len(os.getenv("API_INTERNAL_TOKEN", "").strip()) < INTERNAL_TOKEN_MIN_LENGTH:
        raise RuntimeError(
            f"HIPAA_ENFORCEMENT=true requires API_INTERNAL_TOKEN of at least {INTERNAL_TOKEN_MIN_LENGTH} chars."
        )


app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allow_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "X-User-Id",
        "X-Tenant-Key",
        "X-Internal-Token",
        "X-Request-Id",
    ],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)


def _request_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _path_tenant(path: str) -> str:
    # /tenants/{tenant_key}/...
    parts = path.strip("/").split("/")
    if len(parts) >= 2 and parts[0] == "tenants":
        return parts[1]
    return "-"


def _sweep_rate_windows(now: float) -> None:
    global _last_rate_sweep
    if now - _last_rate_sweep < RATE_WINDOW_SECONDS:
        return
    idle = [ip for ip, window in _rate_windows.items() if not window or now - window[-1] > RATE_WINDOW_SECONDS]
    for ip in idle:
        del _rate_windows[ip]
    _last_rate_sweep = now


def _is_rate_limited(request: Request) -> bool:
    now = time.time()
    _sweep_rate_windows(now)
    window = _rate_windows[_request_ip(request)]
    while window and (now - window[0]) > RATE_WINDOW_SECONDS:
        window.popleft()
    if len(window) >= rate_limit_rpm:
        return True
    window.append(now)
    return False


def _oversized(request: Request) -> bool:
    content_length = request.headers.get("Content-Length")
    if not content_length:
        return False
    try:
        return int(content_length) > max_request_bytes
    except ValueError:
        return False


@app.middleware("http")
async def request_security_and_audit_middleware(request: Request, call_next):
    started = time.perf_counter()
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex

    if request.url.path != "/health":
        if _oversized(request):
            return JSONResponse(status_code=413, content={"detail": "Request entity too large"})
        if rate_limit_enabled and _is_rate_limited(request):
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded"},
                headers={"Retry-After": "60", "X-Request-Id": request_id},
            )

    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id

    if security_headers_enabled:
        for header, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)

    if audit_logging_enabled:
        logger.info(
            "request_audit request_id=%s method=%s path=%s status=%s duration_ms=%s user_id=%s tenant_key=%s",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            int((time.perf_counter() - started) * 1000),
            request.headers.get("X-User-Id", "anonymous"),
            _path_tenant(request.url.path),
        )

    return response


@app.on_event("startup")
def startup():
    """Validate runtime settings and ensure tables exist."""
    _validate_hipaa_runtime()
    init_db()
    logger.info("Transitline API %s ready", API_VERSION)


# Register routes
from apps.api.routes.care_transitions import router as care_transitions_router  # noqa: E402
from apps.api.routes.tcm import router as tcm_router  # noqa: E402

app.include_router(care_transitions_router)
app.include_router(tcm_router)


@app.get("/health")
def health():
    return {"status": "ok", "version": API_VERSION}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("apps.api.main:app", host="0.0.0.0", port=8000, reload=True)
