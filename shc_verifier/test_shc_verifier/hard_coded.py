# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Issuer keys, SMART Health Cards and key set fetchers for the tests
"""

import datetime
import json
import threading
import zlib

from jwcrypto import jwk, jws
from jwcrypto.common import json_encode
from sqlalchemy.orm import sessionmaker

from common.model.ietf import JSONWebKey, JSONWebKeySet
from shc_verifier.db import models as db_models
from shc_verifier.exception import IssuerUnreachableError

ISSUER = "https://issuer.example"
CVX = "http://hl7.org/fhir/sid/cvx"


class TestIssuerKey:
    """EC P-256 signing key of a test issuer"""

    __test__ = False

    def __init__(self, kid: str) -> None:
        self.kid = kid
        self.private_key = jwk.JWK.generate(kty="EC", crv="P-256", kid=kid)

    def jwk(self) -> dict:
        public_jwk = self.private_key.export_public(as_dict=True)
        public_jwk.update({"kid": self.kid, "use": "sig", "alg": "ES256"})
        return public_jwk

    def as_json_web_key(self) -> JSONWebKey:
        return JSONWebKey.model_validate(self.jwk())


def key_set(*keys: TestIssuerKey) -> JSONWebKeySet:
    return JSONWebKeySet.model_validate({"keys": [key.jwk() for key in keys]})


def _raw_deflate(data: bytes) -> bytes:
    compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    return compressor.compress(data) + compressor.flush()


def build_payload(iss: str = ISSUER, codes: list[str] = ("207", "207"), patients: list[tuple[list[str], str]] = ((["Jane", "C."], "Anyperson"),)) -> dict:
    entries = [
        {
            "fullUrl": f"resource:{index}",
            "resource": {"resourceType": "Patient", "name": [{"family": family, "given": given}], "birthDate": "1961-01-20"},
        }
        for index, (given, family) in enumerate(patients)
    ]
    entries += [
        {
            "fullUrl": f"resource:{len(entries) + index}",
            "resource": {
                "resourceType": "Immunization",
                "status": "completed",
                "vaccineCode": {"coding": [{"system": CVX, "code": code}]},
                "patient": {"reference": "resource:0"},
                "occurrenceDateTime": f"2021-0{index + 1}-01",
                "performer": [{"actor": {"display": "ABC General Hospital"}}],
                "lotNumber": f"000{index}",
            },
        }
        for index, code in enumerate(codes)
    ]
    return {
        "iss": iss,
        "nbf": 1610000000,
        "vc": {
            "type": ["https://smarthealth.cards#health-card"],
            "credentialSubject": {
                "fhirVersion": "4.0.1",
                "fhirBundle": {"resourceType": "Bundle", "type": "collection", "entry": entries},
            },
        },
    }


def sign_card(payload: dict, key: TestIssuerKey, compress: bool = True) -> str:
    """Signs the payload the way issuers do, as compact JWS with a raw DEFLATE payload"""
    data = json.dumps(payload, separators=(",", ":")).encode()
    headers = {"alg": "ES256", "kid": key.kid}
    if compress:
        data = _raw_deflate(data)
        headers["zip"] = "DEF"
    token = jws.JWS(data)
    token.add_signature(key.private_key, protected=json_encode(headers))
    return token.serialize(compact=True)


def to_numeric(token: str) -> str:
    return "shc:/" + "".join(f"{ord(char) - 45:02d}" for char in token)


class FakeFetcher:
    """Key set fetcher counting its calls, optionally blocking until released or failing"""

    def __init__(self, key_sets: dict[str, JSONWebKeySet] | None = None) -> None:
        self.key_sets = key_sets or {}
        self.calls: list[str] = []
        self.release = threading.Event()
        self.release.set()
        self._lock = threading.Lock()

    def __call__(self, iss: str) -> JSONWebKeySet:
        with self._lock:
            self.calls.append(iss)
        self.release.wait(timeout=5)
        if iss not in self.key_sets:
            raise IssuerUnreachableError(identifier=iss, additional_error_description="unreachable in test")
        return self.key_sets[iss]


def backdate_issuer(session_factory: sessionmaker, issuer_id: int, updated_at: datetime.datetime) -> None:
    with session_factory() as session, session.begin():
        session.get(db_models.VciIssuer, issuer_id).updated_at = updated_at
