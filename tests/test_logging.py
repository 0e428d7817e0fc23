import json
import logging
from logging.handlers import TimedRotatingFileHandler

import pytest
from fastapi import FastAPI, Request
from starlette.testclient import TestClient

from botbridge.app_logging import ACCESS_LOGGER, APP_LOGGER, init_logging, scrub
from botbridge.config import LoggingSettings


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


@pytest.fixture
def loggers():
    app_logger = _clear_handlers(APP_LOGGER)
    access_logger = _clear_handlers(ACCESS_LOGGER)
    yield app_logger, access_logger
    for logger in (app_logger, access_logger):
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()


def _echo_app() -> FastAPI:
    app = FastAPI()

    @app.post("/bot/channel/echo")
    async def echo(request: Request):
        return {"rid": request.state.request_id}

    return app


def test_timed_rotating_handler_configuration(tmp_path, loggers):
    app_logger, access_logger = loggers

    init_logging(settings=LoggingSettings(log_dir=str(tmp_path), retention_days=5))

    app_handler = next(
        h for h in app_logger.handlers if isinstance(h, TimedRotatingFileHandler)
    )
    assert app_handler.when == "MIDNIGHT"
    assert app_handler.backupCount == 5
    assert app_handler.baseFilename == str(tmp_path / "botbridge.log")

    access_handler = next(
        h for h in access_logger.handlers if isinstance(h, TimedRotatingFileHandler)
    )
    assert access_handler.when == "MIDNIGHT"
    assert access_handler.backupCount == 5


def test_init_logging_replaces_existing_access_handlers(tmp_path, loggers):
    _, access_logger = loggers
    stream_handler = logging.StreamHandler()
    access_logger.addHandler(stream_handler)

    init_logging(settings=LoggingSettings(log_dir=str(tmp_path)))

    assert stream_handler not in access_logger.handlers
    assert any(isinstance(h, TimedRotatingFileHandler) for h in access_logger.handlers)


def test_app_handlers_are_added_once(tmp_path, loggers):
    app_logger, _ = loggers
    settings = LoggingSettings(log_dir=str(tmp_path))

    init_logging(settings=settings)
    count = len(app_logger.handlers)
    init_logging(settings=settings)

    assert len(app_logger.handlers) == count


def test_log_files_and_redaction(tmp_path, loggers):
    app_logger, access_logger = loggers
    app = _echo_app()
    init_logging(app, LoggingSettings(log_dir=str(tmp_path), log_request_bodies=True))

    logging.getLogger("botbridge.routers.webhooks").info("hello bridge")

    with TestClient(app) as client:
        resp = client.post(
            "/bot/channel/echo",
            json={"token": "verify-me", "user": {"name": "users/1"}},
            headers={"X-Hub-Signature": "sha256=abc", "Authorization": "Bearer secret"},
        )
        assert resp.status_code == 200

    for logger in (app_logger, access_logger):
        for handler in logger.handlers:
            handler.flush()

    app_log = tmp_path / "botbridge.log"
    access_log = tmp_path / "access.log"

    assert "hello bridge" in app_log.read_text()
    assert "botbridge.routers.webhooks" in app_log.read_text()

    access_line = access_log.read_text().splitlines()[-1]
    data = json.loads(access_line.split(": ", 1)[1])
    assert data["path"] == "/bot/channel/echo"
    assert data["headers"]["authorization"] == "***"
    assert data["headers"]["x-hub-signature"] == "***"
    assert data["body"]["token"] == "***"
    assert data["body"]["user"] == {"name": "users/1"}


def test_json_formatter_output(tmp_path, loggers):
    app_logger, _ = loggers
    init_logging(settings=LoggingSettings(log_dir=str(tmp_path), log_json=True))

    app_logger.warning("structured %s", "line")
    for handler in app_logger.handlers:
        handler.flush()

    record = json.loads((tmp_path / "botbridge.log").read_text().splitlines()[-1])
    assert record["level"] == "WARNING"
    assert record["logger"] == APP_LOGGER
    assert record["message"] == "structured line"


def test_scrub_masks_nested_fields():
    data = {"Token": "t", "items": [{"private_key": "k", "keep": 1}], "secret": "s"}

    assert scrub(data) == {"Token": "***", "items": [{"private_key": "***", "keep": 1}], "secret": "***"}
