# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Reading of the SMART Health Card envelope.

A card is a compact JWS `header.payload.signature`, either as is or in the numeric QR form
`shc:/<digits>`. The payload is raw DEFLATE compressed if the header has `zip: DEF`.
Nothing read here is trusted before the signature has been verified.

https://spec.smarthealth.cards/#health-cards-are-encoded-as-compact-serialization-json-web-signatures-jws
"""

import binascii
import json
import zlib
from typing import Self, TypeVar

from jwcrypto import jws
from jwcrypto.common import JWException
from pydantic import ValidationError

from common import parsing as prs
from common.model.ietf import JSONWebKey
from shc_verifier.exception import MalformedCredentialError, SignatureInvalidError
from shc_verifier.models import FhirCoding, FhirElement, FhirImmunization, FhirPatient

SHC_PREFIX = "shc:/"
SIGNING_ALGORITHM = "ES256"
CVX_SYSTEM = "http://hl7.org/fhir/sid/cvx"

ResourceModel = TypeVar("ResourceModel", bound=FhirElement)


def decode_numeric(qr_data: str) -> str:
    """Decodes the numeric QR content, every two digits encode one character offset by 45."""
    data = qr_data.strip()
    if not data.startswith(SHC_PREFIX):
        raise MalformedCredentialError(additional_error_description="Missing shc:/ prefix")
    data = data[len(SHC_PREFIX) :]
    if len(data) % 2 != 0:
        raise MalformedCredentialError(additional_error_description="Numeric data length must be even")
    if not data.isdigit():
        raise MalformedCredentialError(additional_error_description="Numeric data contains non digits")
    return "".join(chr(int(data[pos : pos + 2]) + 45) for pos in range(0, len(data), 2))


def _inflate(data: bytes) -> bytes:
    # Raw DEFLATE without zlib header
    decompressor = zlib.decompressobj(wbits=-zlib.MAX_WBITS)
    return decompressor.decompress(data) + decompressor.flush()


class SmartHealthCard:
    def __init__(self, token: str, header: dict, payload: dict) -> None:
        self.token = token
        self.header = header
        self.payload = payload

    @classmethod
    def from_str(cls, credential: str) -> Self:
        """
        Reads the envelope without verifying it.

        Raises:
            MalformedCredentialError: the envelope, header or payload can not be read or misses kid / iss
        """
        token = credential.strip()
        if token.startswith(SHC_PREFIX):
            token = decode_numeric(token)

        parts = token.split(".")
        if len(parts) != 3:
            raise MalformedCredentialError(additional_error_description="Credential should have exactly three parts")

        try:
            header = prs.object_from_url_safe(parts[0])
            raw_payload = prs.bytes_from_url_safe(parts[1])
            if isinstance(header, dict) and header.get("zip") == "DEF":
                raw_payload = _inflate(raw_payload)
            payload = json.loads(raw_payload)
        except (binascii.Error, zlib.error, UnicodeDecodeError, ValueError) as e:
            raise MalformedCredentialError(additional_error_description=f"{type(e).__name__}: {e}") from e

        if not isinstance(header, dict) or not isinstance(payload, dict):
            raise MalformedCredentialError(additional_error_description="Header and payload must be JSON objects")
        if not isinstance(header.get("kid"), str) or not header["kid"]:
            raise MalformedCredentialError(additional_error_description="Header is missing kid")
        if header.get("alg") != SIGNING_ALGORITHM:
            raise MalformedCredentialError(additional_error_description=f"Unsupported alg {header.get('alg')}, expected {SIGNING_ALGORITHM}")
        if not isinstance(payload.get("iss"), str) or not payload["iss"]:
            raise MalformedCredentialError(additional_error_description="Payload is missing iss")
        return cls(token, header, payload)

    @property
    def kid(self) -> str:
        return self.header["kid"]

    @property
    def iss(self) -> str:
        return self.payload["iss"]

    @property
    def issued_at(self) -> int | None:
        nbf = self.payload.get("nbf")
        return int(nbf) if isinstance(nbf, (int, float)) else None

    def verify_signature(self, key: JSONWebKey) -> None:
        """
        Raises:
            SignatureInvalidError: the signature was not created by the key
        """
        try:
            token = jws.JWS()
            token.deserialize(self.token)
            token.verify(key.as_crypto_jwk(), alg=SIGNING_ALGORITHM)
        except (JWException, ValueError) as e:
            raise SignatureInvalidError(identifier=self.kid, additional_error_description=f"{type(e).__name__}: {e}") from e

    def _bundle_resources(self) -> list[dict]:
        try:
            entries = self.payload["vc"]["credentialSubject"]["fhirBundle"]["entry"]
        except (KeyError, TypeError) as e:
            raise MalformedCredentialError(identifier=self.iss, additional_error_description="Payload is missing the FHIR bundle") from e
        if not isinstance(entries, list):
            raise MalformedCredentialError(identifier=self.iss, additional_error_description="FHIR bundle entries must be a list")
        return [entry["resource"] for entry in entries if isinstance(entry, dict) and isinstance(entry.get("resource"), dict)]

    def _resources(self, resource_type: str, model: type[ResourceModel]) -> list[ResourceModel]:
        """
        Raises:
            MalformedCredentialError: a resource of the type does not have the expected shape
        """
        try:
            return [model.model_validate(resource) for resource in self._bundle_resources() if resource.get("resourceType") == resource_type]
        except ValidationError as e:
            raise MalformedCredentialError(identifier=self.iss, additional_error_description=f"Invalid {resource_type} resource with {e.error_count()} errors") from e

    def immunizations(self) -> list[dict]:
        """Immunization entries of the bundle, flattened to one entry per vaccine coding."""
        immunizations = []
        for immunization in self._resources("Immunization", FhirImmunization):
            codings = (immunization.vaccineCode.coding if immunization.vaccineCode else None) or [FhirCoding()]
            actor = immunization.performer[0].actor if immunization.performer else None
            for coding in codings:
                immunizations.append(
                    {
                        "code": "" if coding.code is None else str(coding.code),
                        "system": coding.system,
                        "occurrence_date_time": immunization.occurrenceDateTime,
                        "lot_number": immunization.lotNumber,
                        "performer": actor.display if actor else None,
                    }
                )
        return immunizations

    def patient_name(self) -> str:
        names = [patient.name[0] for patient in self._resources("Patient", FhirPatient) if patient.name]
        match names:
            case [name]:
                return " ".join([*(name.given or []), name.family or ""]).strip()
            case []:
                return "No Patients"
        return "Multiple Patients"
