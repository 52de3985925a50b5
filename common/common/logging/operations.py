# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from enum import Enum

from common.logging import splunk


class OperationsLogEntry(splunk.SplunkExtendedLogEntry):
    """
    Audit event of a service operation, rendered as extra fields of the splunk log line.
    Services subclass it and replace Operation and Step with their own enums.
    """

    class Status(Enum):
        success = "SUCCESS"
        error = "ERROR"

    class Operation(Enum):
        """Placeholder, enums can not be extended so every service defines its own."""

        only_test = "ONLY_TEST"

    class Step(Enum):
        """Placeholder, named <operation>_<step> in the services."""

        only_test = "ONLY_TEST"

    status: Status
    operation: Operation
    step: Step
    issuer: str | None = None
    """Issuer url the operation is concerned with, never any holder data."""
