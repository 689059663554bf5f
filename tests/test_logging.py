import logging

import pytest

from radiusedge.logging import LOG_LEVEL, MASK, SecretFilter, mask_secret, setup_logging


def _record(msg, *args):
    return logging.LogRecord("radiusedge.test", logging.INFO, __file__, 1, msg, args, None)


@pytest.mark.parametrize(
    ("level", "expected"),
    [("trace", LOG_LEVEL.TRACE), ("WARNING", LOG_LEVEL.WARNING), (10, LOG_LEVEL.DEBUG)],
)
def test_parse_level(level, expected):
    assert LOG_LEVEL.parse(level) is expected


def test_parse_unknown_level_defaults():
    assert LOG_LEVEL.parse("chatty") is LOG_LEVEL.INFO
    assert LOG_LEVEL.parse(42, default=LOG_LEVEL.ERROR) is LOG_LEVEL.ERROR


def test_secret_filter_masks_registered_values():
    secret_filter = SecretFilter()
    record = _record("radclient 10.0.0.5:1812 auth %s", "testing123")
    assert secret_filter.filter(record)
    assert record.getMessage() == "radclient 10.0.0.5:1812 auth testing123"

    secret_filter.add("testing123")
    secret_filter.add("ab")
    secret_filter.add(None)
    record = _record("radclient 10.0.0.5:1812 auth %s (ab)", "testing123")
    secret_filter.filter(record)
    assert record.getMessage() == f"radclient 10.0.0.5:1812 auth {MASK} (ab)"


def test_log_file_hides_secrets(tmp_path):
    log_file = tmp_path / "radiusedge.log"
    try:
        setup_logging(console_level="silent", file_level="debug", log_path=log_file)
        mask_secret("s3cr3t-value")
        logging.getLogger("radiusedge.test").debug("password is s3cr3t-value")
        for handler in logging.getLogger().handlers:
            handler.flush()
        content = log_file.read_text()
    finally:
        setup_logging(
            console_level="warning",
            file_level="debug",
            log_path="logs/radiusedge_tests.log",
            structured=False,
        )
    assert f"password is {MASK}" in content
    assert "s3cr3t-value" not in content
