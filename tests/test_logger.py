import logging
from pathlib import Path

from startale_lotto.utils.logger import DEFAULT_LOG_FILE, get_logger, resolve_level, resolve_log_path


def test_level_from_environment() -> None:
    assert resolve_level({"LOG_LEVEL": "debug"}) == logging.DEBUG
    assert resolve_level({"LOG_LEVEL": "chatty"}) == logging.INFO
    assert resolve_level({}) == logging.INFO


def test_log_file_can_be_switched_off(tmp_path) -> None:
    assert resolve_log_path({"LOG_FILE": "off"}) is None
    assert resolve_log_path({"LOG_FILE": str(tmp_path / "lotto.log")}) == tmp_path / "lotto.log"
    assert resolve_log_path({}) == Path.cwd() / DEFAULT_LOG_FILE


def test_get_logger_returns_named_logger() -> None:
    logger = get_logger("startale_lotto.tests")
    assert logger.name == "startale_lotto.tests"
    assert logging.getLogger().handlers
