# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import re
import json
import logging

import pytest
from asgi_correlation_id import CorrelationIdFilter, correlation_id

from common.logging import operations, splunk


@pytest.fixture()
def formatted_caplog(caplog):
    formatter = splunk.SplunkFormatter(
        defaults={
            "app_name": "test_app",
            "correlation_id": "test",
        }
    )
    caplog.handler.setFormatter(formatter)
    return caplog


def _test_formatted_log(data_str: str, expected_message: str | bool, expected_level: str, expected_hash: str = "test") -> None:
    data: dict[str, object] = json.loads(data_str)
    keys = data.keys()
    assert "message" in keys
    if expected_message is not False:
        assert data["message"] == expected_message
    assert "level" in keys
    assert data["level"] == expected_level
    assert "hash" in keys
    assert data["hash"] == expected_hash
    assert "@timestamp" in data.keys()
    # Expected format: 2024-02-07T14:38:19.565+01:00
    assert re.match(
        r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}(\.[0-9]{1,6})?[+-][0-9]{2}:[0-9]{2}",
        data["@timestamp"],
    )
    assert "app" in keys
    assert data["app"] == "test_app"


def test_formatter(formatted_caplog):

    logger = logging.getLogger(f"{__name__}_test_formatter")

    with formatted_caplog.at_level("DEBUG"):
        for level, log in [("ERROR", logger.error), ("WARNING", logger.warning), ("INFO", logger.info), ("DEBUG", logger.debug)]:
            formatted_caplog.clear()
            message = f"{level} message for testing"
            log(message)
            assert len(formatted_caplog.records) == 1
            _test_formatted_log(formatted_caplog.text, message, level)


def test_operations_formatter(formatted_caplog):

    with formatted_caplog.at_level("INFO"):
        formatted_caplog.clear()
        logger = logging.getLogger(__name__ + ":test_operations_formatter")
        logger.info(
            operations.OperationsLogEntry(
                message="Operations message for testing.",
                operation=operations.OperationsLogEntry.Operation.only_test,
                step=operations.OperationsLogEntry.Step.only_test,
                status=operations.OperationsLogEntry.Status.success,
                issuer="https://issuer.example",
            )
        )
        assert len(formatted_caplog.records) == 1
        _test_formatted_log(
            formatted_caplog.text,
            "Operations message for testing. status=SUCCESS operation=ONLY_TEST step=ONLY_TEST issuer=https://issuer.example",
            "INFO",
        )
        data = json.loads(formatted_caplog.text)
        assert data["operation"] == operations.OperationsLogEntry.Operation.only_test.value
        assert data["step"] == operations.OperationsLogEntry.Step.only_test.value
        assert data["status"] == operations.OperationsLogEntry.Status.success.value
        assert data["issuer"] == "https://issuer.example"


def test_exception_formatter(formatted_caplog):

    logger = logging.getLogger(f"{__name__}_test_exception_formatter")

    with formatted_caplog.at_level("DEBUG"):
        formatted_caplog.clear()

        try:
            raise Exception("Test")
        except Exception:
            logger.exception("Test message")

        assert len(formatted_caplog.records) == 1
        _test_formatted_log(
            formatted_caplog.text,
            False,
            "ERROR",
        )
        assert "Traceback" in formatted_caplog.text


def test_correlation_id_is_used_as_hash(formatted_caplog):
    logger = logging.getLogger(f"{__name__}_test_correlation_id")
    formatted_caplog.handler.addFilter(CorrelationIdFilter(uuid_length=8))
    token = correlation_id.set("0123456789abcdef")
    try:
        with formatted_caplog.at_level("INFO"):
            formatted_caplog.clear()
            logger.info("with correlation id")
            _test_formatted_log(formatted_caplog.text, "with correlation id", "INFO", expected_hash="01234567")
    finally:
        correlation_id.reset(token)
