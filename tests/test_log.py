import logging

from focalcrop.log import get_logger


def test_get_logger_attaches_one_handler(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "debug")
    logger = get_logger("focalcrop.test_once")
    assert get_logger("focalcrop.test_once") is logger
    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG
