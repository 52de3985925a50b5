# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Verification of SMART Health Cards.

RECEIVED -> ISSUER_RESOLVING -> KEY_RESOLVING -> SIGNATURE_CHECKING -> PAYLOAD_DECODING -> CODE_VALIDATING -> VERIFIED
Any fatal error ends in REJECTED with the error as reason. Unknown vaccine codes are warnings only,
the registry may lag the codes in use.
"""

import logging

from shc_verifier import credential as shc
from shc_verifier.exception import VerificationError
from shc_verifier.logging import VerifierOperationsLogEntry as LogEntry
from shc_verifier.models import (
    Immunization,
    RejectionReason,
    UnrecognizedVaccineCode,
    VerificationResult,
    VerificationState,
    VerifiedPayload,
)
from shc_verifier.resolver import IssuerKeyResolver
from shc_verifier.vaccine_codes import VaccineCodeRegistry

_logger = logging.getLogger(__name__)


class CredentialVerifier:
    def __init__(self, resolver: IssuerKeyResolver, vaccine_codes: VaccineCodeRegistry) -> None:
        self._resolver = resolver
        self._vaccine_codes = vaccine_codes

    def verify(self, credential: str, progress: list[VerificationState] | None = None) -> VerifiedPayload:
        """
        Verifies the credential and returns its decoded payload.

        Args:
            credential (str): compact JWS or numeric shc:/ content
            progress (list, optional): receives every state entered, for tracing where a rejection happened

        Raises:
            VerificationError: the credential is rejected, see the error for the reason and whether to retry
        """
        progress = progress if progress is not None else []
        progress.append(VerificationState.received)
        card = shc.SmartHealthCard.from_str(credential)

        progress.append(VerificationState.issuer_resolving)
        issuer = self._resolver.canonical_issuer(card.iss)

        progress.append(VerificationState.key_resolving)
        key = self._resolver.resolve_for(issuer, card.kid)

        progress.append(VerificationState.signature_checking)
        card.verify_signature(key)

        progress.append(VerificationState.payload_decoding)
        immunizations = [Immunization(**immunization) for immunization in card.immunizations()]
        patient_name = card.patient_name()

        progress.append(VerificationState.code_validating)
        warnings = []
        for immunization in immunizations:
            if immunization.system != shc.CVX_SYSTEM:
                continue
            vaccine_code = self._vaccine_codes.lookup(immunization.code)
            if vaccine_code is None:
                _logger.warning(f"Unrecognized vaccine code {immunization.code} in credential of {card.iss}")
                warnings.append(UnrecognizedVaccineCode(code=int(immunization.code) if immunization.code.isdecimal() else immunization.code, system=immunization.system))
            else:
                immunization.vaccine = vaccine_code.short_description

        progress.append(VerificationState.verified)
        return VerifiedPayload(
            iss=card.iss,
            canonical_iss=issuer.iss,
            issuer_name=issuer.name,
            kid=card.kid,
            issued_at=card.issued_at,
            patient_name=patient_name,
            immunizations=immunizations,
            payload=card.payload,
            warnings=warnings,
        )

    def evaluate(self, credential: str) -> VerificationResult:
        """Verifies the credential, returning the terminal state instead of raising on rejection."""
        progress: list[VerificationState] = []
        try:
            payload = self.verify(credential, progress)
        except VerificationError as e:
            _logger.info(LogEntry(
                message=f"Credential rejected in {progress[-1].value}",
                status=LogEntry.Status.error,
                operation=LogEntry.Operation.verification,
                step=LogEntry.Step.verification_evaluation,
                issuer=e.identifier if progress[-1] == VerificationState.issuer_resolving else None,
                error_code=e.error,
            ))
            return VerificationResult(state=VerificationState.rejected, reason=RejectionReason.from_error(e), rejected_in=progress[-1])

        _logger.info(LogEntry(
            message=f"Credential verified with {len(payload.warnings)} warnings",
            status=LogEntry.Status.success,
            operation=LogEntry.Operation.verification,
            step=LogEntry.Step.verification_evaluation,
            issuer=payload.canonical_iss,
        ))
        return VerificationResult(state=VerificationState.verified, payload=payload)
