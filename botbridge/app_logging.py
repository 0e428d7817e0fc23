"""Application and access logging for the bridge.

Application records from the ``botbridge`` logger go to ``botbridge.log`` and
stderr; one JSON line per webhook request goes to ``access.log``. Both files
rotate at midnight. Webhook traffic carries verification tokens and
signatures, so logged headers and bodies pass through :func:`scrub`.

Options come from :class:`botbridge.config.LoggingSettings`.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from logging.handlers import TimedRotatingFileHandler
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request

from .config import LoggingSettings

APP_LOGGER = "botbridge"
ACCESS_LOGGER = "uvicorn.access"
REQUEST_ID_HEADER = "X-Request-Id"

# health checks would drown the webhook traffic
UNLOGGED_PATHS = frozenset({"/api/health"})

SENSITIVE_FIELDS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "token",
        "access_token",
        "refresh_token",
        "secret",
        "private_key",
        "x-hub-signature",
    }
)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, used when LOG_JSON is on."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data)


def scrub(data: object) -> object:
    """Recursively mask sensitive fields in dictionaries and lists."""

    if isinstance(data, dict):
        return {
            k: ("***" if str(k).lower() in SENSITIVE_FIELDS else scrub(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [scrub(v) for v in data]
    return data


def _decode_body(body: bytes) -> object:
    try:
        return scrub(json.loads(body))
    except ValueError:
        return body.decode("utf-8", errors="replace")


async def _buffer_body(request: Request) -> bytes:
    """Read the body and make it readable again for the route."""

    body = await request.body()

    async def receive() -> dict:  # pragma: no cover - internal
        return {"type": "http.request", "body": body, "more_body": False}

    request._receive = receive  # type: ignore[attr-defined]
    return body


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


def _install_access_logging(app: FastAPI, log_request_bodies: bool = False) -> None:
    """Log each request as one JSON line and echo an ``X-Request-Id``."""

    access_logger = logging.getLogger(ACCESS_LOGGER)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path in UNLOGGED_PATHS:
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id
        body = await _buffer_body(request) if log_request_bodies else b""

        started = time.perf_counter()
        response = await call_next(request)
        latency_ms = (time.perf_counter() - started) * 1000

        entry: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round(latency_ms, 2),
            "client_ip": _client_ip(request),
            "headers": scrub(dict(request.headers)),
        }
        if body:
            entry["body"] = _decode_body(body)

        response.headers[REQUEST_ID_HEADER] = request_id
        access_logger.info(json.dumps(entry, default=str))
        return response


def _rotating_handler(
    settings: LoggingSettings, filename: str, formatter: logging.Formatter
) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        os.path.join(settings.log_dir, filename),
        when="midnight",
        backupCount=settings.retention_days,
        utc=settings.rotate_utc,
    )
    handler.setFormatter(formatter)
    return handler


def init_logging(
    app: FastAPI | None = None, settings: LoggingSettings | None = None
) -> None:
    """Configure the bridge and access loggers; install the middleware on ``app``."""

    if settings is None:
        settings = LoggingSettings()
    os.makedirs(settings.log_dir, exist_ok=True)

    if settings.log_json:
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    # app handlers are added once per process, e.g. across app factories
    app_logger = logging.getLogger(APP_LOGGER)
    if not app_logger.handlers:
        app_logger.addHandler(_rotating_handler(settings, "botbridge.log", formatter))
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        app_logger.addHandler(console)
    app_logger.setLevel(level)

    # uvicorn installs its own access handlers; ours replace them
    access_logger = logging.getLogger(ACCESS_LOGGER)
    access_logger.handlers.clear()
    access_logger.addHandler(_rotating_handler(settings, "access.log", formatter))
    access_logger.setLevel(level)

    if app is not None:
        _install_access_logging(app, settings.log_request_bodies)
