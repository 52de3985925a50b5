# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import logging

import fastapi

from shc_verifier import context
from shc_verifier.exception.handler import VerificationErrorResponse
from shc_verifier.models import IssuerRecord, VerificationResult, VerifiedPayload, VerifyRequest

_logger = logging.getLogger(__name__)

TAG = "Verification"

router = fastapi.APIRouter(tags=[TAG])


@router.post(
    "/verify",
    responses={
        400: {"model": VerificationErrorResponse},
        422: {"model": VerificationErrorResponse},
        503: {"model": VerificationErrorResponse},
    },
)
def verify(request: VerifyRequest, ctx: context.inject) -> VerifiedPayload:
    """
    Verifies a SMART Health Card, given as compact JWS or numeric shc:/ QR content.
    Rejections are rendered with their error code, category and whether a retry may succeed.
    Unknown vaccine codes are listed as warnings of the verified payload.
    """
    return ctx.verifier.verify(request.credential)


@router.post("/verify/evaluate")
def evaluate(request: VerifyRequest, ctx: context.inject) -> VerificationResult:
    """Verifies the credential, returning a rejection as result instead of an error response."""
    return ctx.verifier.evaluate(request.credential)


@router.get("/issuers")
def list_issuers(ctx: context.inject) -> list[IssuerRecord]:
    return ctx.trust_store.list_issuers()
