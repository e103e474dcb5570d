"""
Unit tests for logger setup.
"""

import json
import logging

import pytest
from pythonjsonlogger.json import JsonFormatter

from thoughtlands.utils.logging import APP_LOGGER, configure_root_logging, setup_logging


@pytest.fixture
def app_logger():
    logger = logging.getLogger(APP_LOGGER)
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    handlers, level, propagate = saved
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


def test_module_loggers_have_no_handlers_of_their_own():
    logger = setup_logging("thoughtlands.services.vault")

    assert logger.name == "thoughtlands.services.vault"
    assert logger.handlers == []
    assert setup_logging().name == APP_LOGGER


def test_reconfiguring_replaces_handlers(app_logger):
    configure_root_logging(level="DEBUG")
    configure_root_logging(level="warning")

    assert len(app_logger.handlers) == 1
    assert app_logger.level == logging.WARNING
    assert not app_logger.propagate


def test_structured_records_go_to_the_log_file(app_logger, tmp_path):
    log_file = tmp_path / "logs" / "thoughtlands.log"
    configure_root_logging(level="INFO", structured=True, log_file=log_file)

    setup_logging("thoughtlands.services.pipeline").info("Region created")
    for handler in app_logger.handlers:
        handler.flush()

    assert all(isinstance(h.formatter, JsonFormatter) for h in app_logger.handlers)
    record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert record["message"] == "Region created"
    assert record["name"] == "thoughtlands.services.pipeline"
    assert record["levelname"] == "INFO"


def test_unknown_level_falls_back_to_info(app_logger):
    configure_root_logging(level="chatty")

    assert app_logger.level == logging.INFO
