"""Console logging setup and the per-service HTTP audit log."""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from time import perf_counter

from fastapi import FastAPI, Request

LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
SLOW_REQUEST_MS = 1000.0


def configure_logging(level: int = logging.INFO) -> None:
    """Console logging for the ``hotelops`` loggers, installed once."""

    package_logger = logging.getLogger("hotelops")
    if package_logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


def get_audit_logger(service_name: str) -> logging.Logger:
    """File logger writing ``logs/<service>.log``; handlers attach only on first use."""

    audit_logger = logging.getLogger(f"audit.{service_name}")
    if not audit_logger.handlers:
        LOG_DIR.mkdir(exist_ok=True)
        handler = logging.FileHandler(LOG_DIR / f"{service_name}.log", encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        audit_logger.addHandler(handler)
        audit_logger.setLevel(logging.INFO)
    return audit_logger


def _level_for(status_code: int, duration_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if duration_ms >= SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.INFO


def add_audit_middleware(app: FastAPI, service_name: str) -> None:
    audit_logger = get_audit_logger(service_name)

    @app.middleware("http")
    async def audit_requests(request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        started = perf_counter()
        response = await call_next(request)
        elapsed_ms = (perf_counter() - started) * 1000
        audit_logger.log(
            _level_for(response.status_code, elapsed_ms),
            "%s %s | status=%s | client=%s | agent=%s | request_id=%s | duration=%.2fms",
            request.method,
            request.url.path,
            response.status_code,
            request.client.host if request.client else "unknown",
            request.headers.get("user-agent", "-"),
            request_id,
            elapsed_ms,
        )
        response.headers["X-Request-ID"] = request_id
        return response
