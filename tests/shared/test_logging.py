import logging

import pytest

from src.shared.utils import get_logger, parse_bool, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_reads_level_from_environment(monkeypatch, restore_root_logger):
    monkeypatch.setenv("LOG_LEVEL", "debug")

    setup_logging()

    assert restore_root_logger.level == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_setup_logging_explicit_level_wins(monkeypatch, restore_root_logger):
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    setup_logging(level="warning", include_timestamp=False)

    assert restore_root_logger.level == logging.WARNING


def test_get_logger_level_override():
    logger = get_logger("diagnostics.test", level="error")

    assert logger.level == logging.ERROR


def test_parse_bool():
    assert parse_bool(" Yes ") is True
    assert parse_bool("0") is False
    with pytest.raises(ValueError):
        parse_bool("maybe")
