"""Tests for the fintrack logging setup used by the API and the scheduled jobs."""
from __future__ import annotations

import io
import logging
import logging.handlers

import pytest

from fintrack.logging_config import get_logger, setup_logging


@pytest.fixture()
def restore_app_logger():
    app_logger = logging.getLogger("fintrack")
    handlers = list(app_logger.handlers)
    level = app_logger.level
    propagate = app_logger.propagate
    yield app_logger
    app_logger.handlers[:] = handlers
    app_logger.setLevel(level)
    app_logger.propagate = propagate


def test_get_logger_namespaces_short_names() -> None:
    assert get_logger("jobs.recurring").name == "fintrack.jobs.recurring"
    assert get_logger("fintrack.crud.crud_budget").name == "fintrack.crud.crud_budget"
    assert get_logger().name == "fintrack"


def test_job_name_is_tagged_on_each_line(restore_app_logger) -> None:
    app_logger = setup_logging(app_log_level="DEBUG", job_name="recurring")

    assert app_logger.level == logging.DEBUG
    assert app_logger.propagate is False
    assert len(app_logger.handlers) == 1

    stream = io.StringIO()
    app_logger.handlers[0].setStream(stream)
    get_logger("jobs.recurring").info("Posted 2 recurring occurrence(s)")

    line = stream.getvalue()
    assert "[recurring] fintrack.jobs.recurring - INFO - Posted 2 recurring occurrence(s)" in line


def test_unknown_level_falls_back_to_default(restore_app_logger) -> None:
    app_logger = setup_logging(app_log_level="chatty", third_party_log_level="WARNING")

    assert app_logger.level == logging.INFO
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_log_file_gets_rotating_handler(restore_app_logger, tmp_path) -> None:
    log_file = tmp_path / "logs" / "jobs.log"
    app_logger = setup_logging(log_file=str(log_file), job_name="investment-growth")

    assert log_file.parent.is_dir()
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in app_logger.handlers)

    for handler in app_logger.handlers:
        handler.close()
