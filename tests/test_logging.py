import logging

from ledger_submit.logging_config import LOGGING_CONFIG, QUIET_LOGGERS, setup_logging


def test_library_loggers_are_held_back():
    setup_logging()
    for name, level in QUIET_LOGGERS.items():
        assert logging.getLogger(name).level == logging.getLevelName(level)
        assert LOGGING_CONFIG["loggers"][name]["propagate"] is False


def test_package_logger_does_not_propagate():
    setup_logging()
    assert logging.getLogger("ledger_submit").propagate is False
    assert logging.getLogger("ledger_submit").handlers
