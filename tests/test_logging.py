from __future__ import annotations

import logging

import orjson
import pytest

from user_service.observability.logging import configure_logging, get_logger


def test_lines_are_json_stamped_with_service(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(service_name="user-service-test", level="INFO")

    get_logger("tests.logging").info("user_created", user_id=7)

    line = capsys.readouterr().out.strip().splitlines()[-1]
    event = orjson.loads(line)
    assert event["event"] == "user_created"
    assert event["service"] == "user-service-test"
    assert event["level"] == "info"
    assert event["user_id"] == 7


def test_http_client_loggers_stay_quiet_at_debug() -> None:
    configure_logging(service_name="user-service-test", level="DEBUG")

    assert logging.getLogger("httpx").getEffectiveLevel() == logging.WARNING
    assert logging.getLogger("sqlalchemy.engine").getEffectiveLevel() == logging.WARNING
    assert logging.getLogger("user_service").getEffectiveLevel() == logging.DEBUG
