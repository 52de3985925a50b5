# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Splunk compatible json log output.

Log entries can either be plain strings or `SplunkExtendedLogEntry` objects. The fields of
the latter are rendered as top level keys of the json document.
"""

import json
import logging
from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class SplunkExtendedLogEntry(BaseModel):
    """Log entry carrying additional, machine readable, fields next to the message."""

    message: str

    def fields(self) -> dict[str, str]:
        """All set fields except the message, enums are rendered by value."""
        result = {}
        for name, value in self:
            if name == "message" or value is None:
                continue
            result[name] = value.value if isinstance(value, Enum) else str(value)
        return result

    def __str__(self) -> str:
        suffix = " ".join(f"{k}={v}" for k, v in self.fields().items())
        return f"{self.message} {suffix}" if suffix else self.message


class SplunkFormatter(logging.Formatter):
    """
    Formats records as single line json documents.
    * defaults: fallback values for record attributes (app_name, correlation_id)
    """

    def __init__(self, defaults: dict[str, str] | None = None) -> None:
        super().__init__()
        self._defaults = defaults or {}

    def _value(self, record: logging.LogRecord, attribute: str) -> str | None:
        value = getattr(record, attribute, None)
        return value if value is not None else self._defaults.get(attribute)

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "@timestamp": datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "app": self._value(record, "app_name"),
            "hash": self._value(record, "correlation_id"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if isinstance(record.msg, SplunkExtendedLogEntry):
            data.update(record.msg.fields())
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)
