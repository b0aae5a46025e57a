import logging
from logging.handlers import TimedRotatingFileHandler

from fastapi import FastAPI

from support_triage.app_logging import PIPELINE_LOGGER, init_logging


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


def test_init_logging_adds_handlers(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    pipeline_logger = _clear_handlers(PIPELINE_LOGGER)
    access_logger = _clear_handlers("uvicorn.access")

    app = FastAPI()
    init_logging(app)

    assert any(isinstance(h, TimedRotatingFileHandler) for h in pipeline_logger.handlers)
    assert any(isinstance(h, TimedRotatingFileHandler) for h in access_logger.handlers)
    assert app.logger is pipeline_logger

    pipeline_logger.handlers.clear()
    access_logger.handlers.clear()


def test_init_logging_replaces_existing_access_handlers(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    access_logger = _clear_handlers("uvicorn.access")

    stream_handler = logging.StreamHandler()
    access_logger.addHandler(stream_handler)

    init_logging()

    assert stream_handler not in access_logger.handlers
    assert any(isinstance(h, TimedRotatingFileHandler) for h in access_logger.handlers)
    access_logger.handlers.clear()


def test_init_logging_keeps_existing_pipeline_handler(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_LEVEL", "debug")
    pipeline_logger = _clear_handlers(PIPELINE_LOGGER)
    existing = logging.StreamHandler()
    pipeline_logger.addHandler(existing)

    init_logging()

    assert pipeline_logger.handlers == [existing]
    assert pipeline_logger.level == logging.DEBUG
    pipeline_logger.handlers.clear()
    logging.getLogger("uvicorn.access").handlers.clear()
