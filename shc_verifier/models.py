# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import datetime
from enum import Enum
from typing import Self

from pydantic import BaseModel, ConfigDict

from common.model.ietf import JSONWebKey
from shc_verifier.exception import VerificationError, ErrorCategory


class IssuerRecord(BaseModel):
    """
    Snapshot of a trusted issuer, detached from the database session
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    iss: str
    name: str
    website: str | None = None
    canonical_iss: str | None = None
    """iss of the issuer this one is an alias of"""
    updated_at: datetime.datetime
    error: bool = False
    """True if the last key set fetch failed"""


class IssuerKeyRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    key_id: str
    data: str
    """Serialized JSON Web Key"""

    def as_jwk(self) -> JSONWebKey:
        return JSONWebKey.model_validate_json(self.data)


class VaccineCode(BaseModel):
    """CVX code as published by the CDC"""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    code: int
    short_description: str
    full_name: str
    vaccine_status: str
    last_updated: datetime.date
    notes: str | None = None


###############
# FHIR bundle #
###############


class FhirElement(BaseModel):
    """Only the read fields are modelled, everything else of the resource is kept as is."""

    model_config = ConfigDict(extra="allow")


class FhirCoding(FhirElement):
    system: str | None = None
    code: str | int | None = None


class FhirCodeableConcept(FhirElement):
    coding: list[FhirCoding] | None = None


class FhirReference(FhirElement):
    display: str | None = None


class FhirImmunizationPerformer(FhirElement):
    actor: FhirReference | None = None


class FhirImmunization(FhirElement):
    """
    https://hl7.org/fhir/R4/immunization.html
    """

    vaccineCode: FhirCodeableConcept | None = None
    occurrenceDateTime: str | None = None
    lotNumber: str | None = None
    performer: list[FhirImmunizationPerformer] | None = None


class FhirHumanName(FhirElement):
    family: str | None = None
    given: list[str] | None = None


class FhirPatient(FhirElement):
    """
    https://hl7.org/fhir/R4/patient.html
    """

    name: list[FhirHumanName] | None = None


#######################
# Verification result #
#######################


class VerificationState(Enum):
    received = "RECEIVED"
    issuer_resolving = "ISSUER_RESOLVING"
    key_resolving = "KEY_RESOLVING"
    signature_checking = "SIGNATURE_CHECKING"
    payload_decoding = "PAYLOAD_DECODING"
    code_validating = "CODE_VALIDATING"
    verified = "VERIFIED"
    """Terminal, the credential is authentic"""
    rejected = "REJECTED"
    """Terminal, see the rejection reason"""


class UnrecognizedVaccineCode(BaseModel):
    """Non fatal warning, the vaccine code is not (yet) part of the registry."""

    warning: str = "unrecognized_vaccine_code"
    code: int | str
    system: str | None = None


class Immunization(BaseModel):
    code: str
    system: str | None = None
    occurrence_date_time: str | None = None
    lot_number: str | None = None
    performer: str | None = None
    vaccine: str | None = None
    """Short description from the registry, if the code is known"""


class VerifiedPayload(BaseModel):
    """Decoded, authenticated credential payload"""

    iss: str
    """Issuer url as presented in the credential"""
    canonical_iss: str
    """Issuer url the credential was trusted through"""
    issuer_name: str
    kid: str
    issued_at: int | None = None
    patient_name: str
    immunizations: list[Immunization] = []
    payload: dict
    warnings: list[UnrecognizedVaccineCode] = []


class RejectionReason(BaseModel):
    error: str
    error_category: ErrorCategory
    retryable: bool
    identifier: str | None = None
    error_description: str | None = None

    @classmethod
    def from_error(cls, error: VerificationError) -> Self:
        return cls(
            error=error.error,
            error_category=error.category,
            retryable=error.retryable,
            identifier=error.identifier,
            error_description=str(error),
        )


class VerificationResult(BaseModel):
    """Terminal state of a verification, either verified with its payload or rejected with its reason"""

    state: VerificationState
    payload: VerifiedPayload | None = None
    reason: RejectionReason | None = None
    rejected_in: VerificationState | None = None
    """State the verification was in when it got rejected"""

    @property
    def warnings(self) -> list[UnrecognizedVaccineCode]:
        return self.payload.warnings if self.payload else []


class VerifyRequest(BaseModel):
    credential: str
    """Compact JWS or numeric shc:/ QR content"""
