# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import logging

from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .errors import VerificationError

_logger = logging.getLogger(__name__)


class VerificationErrorResponse(BaseModel):
    """
    Rendered verification error.
    * error: Machine readable code identifying the exception
    * error_description: Human readable error description of the error
    * error_category: INPUT, TRUST, TRANSIENT or INTEGRITY
    * retryable: whether a later retry may succeed
    * identifier: the offending identifier (issuer url, key id)
    """

    error: str
    error_description: str
    error_category: str
    retryable: bool
    identifier: str | None = None
    additional_error_description: str | None = None

    @staticmethod
    def from_error(exc: VerificationError) -> "VerificationErrorResponse":
        return VerificationErrorResponse(
            error=exc.error,
            error_description=exc.error_description,
            error_category=exc.category.value,
            retryable=exc.retryable,
            identifier=exc.identifier,
            additional_error_description=exc.additional_error_description,
        )


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configure exception handlers on the FastAPI app instance rendering verification errors.

    Args:
        app (FastAPI): the instance to configure the handlers for.
    """

    @app.exception_handler(VerificationError)
    async def verification_exception_handler(request: Request, exc: VerificationError):
        content = VerificationErrorResponse.from_error(exc)
        _logger.info(f"Verification rejected {exc.status_code=} {exc.error=} {exc.identifier=}")
        headers = {"Cache-Control": "no-store"}
        if exc.retryable:
            headers["Retry-After"] = "30"
        return JSONResponse(
            status_code=exc.status_code,
            headers=headers,
            content=content.model_dump(exclude_none=True),
        )
