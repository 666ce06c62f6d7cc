import logging

from logger_helper import SizedTimedRotatingFileHandler, redact


def test_size_cap_rotates_and_compresses(tmp_path):
    log_file = tmp_path / "requests.log"
    handler = SizedTimedRotatingFileHandler(str(log_file), max_bytes=10, when="W0",
                                            backupCount=5, encoding="utf-8", delay=True)
    logger = logging.getLogger("request_logger_rotation_test")
    logger.propagate = False
    logger.addHandler(handler)
    try:
        logger.warning("first request line, longer than ten bytes")
        assert list(tmp_path.glob("*.gz")) == []

        logger.warning("second request line")
    finally:
        logger.removeHandler(handler)
        handler.close()

    assert len(list(tmp_path.glob("requests.log.*.gz"))) == 1
    assert log_file.read_text(encoding="utf-8").strip() == "second request line"


def test_api_key_is_redacted_from_bodies():
    body = '{"rfid_code": "AB12", "api_key":"K1", "session_code": "S1"}'

    assert redact(body) == '{"rfid_code": "AB12", "api_key":"***", "session_code": "S1"}'
