from __future__ import annotations

import logging

from workflow_app.utils.logging_config import ENGINE_LOGGER_NAME, configure_logging


def test_configure_logging_returns_engine_logger() -> None:
    engine_logger = logging.getLogger(ENGINE_LOGGER_NAME)
    previous = engine_logger.level
    try:
        assert configure_logging(engine_level=logging.DEBUG) is engine_logger
        assert engine_logger.level == logging.DEBUG
    finally:
        engine_logger.setLevel(previous)


def test_rejected_commands_are_logged_as_warnings(coordinator, classroom, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger=ENGINE_LOGGER_NAME):
        coordinator.request_join(classroom.id, "stu-1", "WRONG00")

    assert any(
        record.levelno == logging.WARNING and "InvalidCode" in record.getMessage()
        for record in caplog.records
    )
