# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import json

import pytest
from jwcrypto.common import base64url_encode

from shc_verifier.credential import SmartHealthCard, decode_numeric
from shc_verifier.exception import MalformedCredentialError
from shc_verifier.test_shc_verifier.hard_coded import ISSUER, TestIssuerKey, build_payload, sign_card, to_numeric


def _token(header: dict, payload: dict) -> str:
    return ".".join([base64url_encode(json.dumps(header).encode()), base64url_encode(json.dumps(payload).encode()), "c2ln"])


def test_decode_numeric():
    # "-" is 0, "Z" is 45
    assert decode_numeric("shc:/0045") == "-Z"
    assert decode_numeric("  shc:/5676  ") == "ey"


@pytest.mark.parametrize("qr", ["0045", "shc:/004", "shc:/00a5"])
def test_decode_numeric_malformed(qr):
    with pytest.raises(MalformedCredentialError):
        decode_numeric(qr)


def test_from_str_reads_compressed_card():
    key = TestIssuerKey("k1")
    card = SmartHealthCard.from_str(sign_card(build_payload(), key))
    assert card.kid == "k1"
    assert card.iss == ISSUER
    assert card.header["zip"] == "DEF"
    assert card.issued_at == 1610000000


def test_from_str_numeric_equals_compact():
    token = sign_card(build_payload(), TestIssuerKey("k1"))
    assert SmartHealthCard.from_str(to_numeric(token)).payload == SmartHealthCard.from_str(token).payload


def test_signature_verifies_with_issuer_key():
    key = TestIssuerKey("k1")
    card = SmartHealthCard.from_str(sign_card(build_payload(), key))
    card.verify_signature(key.as_json_web_key())


@pytest.mark.parametrize(
    "credential",
    [
        "",
        "a.b",
        "a.b.c.d",
        "!!!.???.sig",
        _token({"alg": "ES256"}, {"iss": ISSUER}),
        _token({"alg": "ES256", "kid": "k1"}, {"nbf": 1}),
        _token({"alg": "HS256", "kid": "k1"}, {"iss": ISSUER}),
        _token({"alg": "ES256", "kid": "k1", "zip": "DEF"}, {"iss": ISSUER}),
        _token({"alg": "ES256", "kid": "k1"}, ["not", "an", "object"]),
    ],
)
def test_from_str_malformed(credential):
    with pytest.raises(MalformedCredentialError) as exc_info:
        SmartHealthCard.from_str(credential)
    assert not exc_info.value.retryable


def test_patient_name():
    key = TestIssuerKey("k1")
    single = SmartHealthCard.from_str(sign_card(build_payload(), key))
    assert single.patient_name() == "Jane C. Anyperson"
    multiple = SmartHealthCard.from_str(sign_card(build_payload(patients=[(["A"], "B"), (["C"], "D")]), key))
    assert multiple.patient_name() == "Multiple Patients"
    none = SmartHealthCard.from_str(sign_card(build_payload(patients=[]), key))
    assert none.patient_name() == "No Patients"


def test_immunizations():
    card = SmartHealthCard.from_str(sign_card(build_payload(codes=["207", "208"]), TestIssuerKey("k1")))
    immunizations = card.immunizations()
    assert [immunization["code"] for immunization in immunizations] == ["207", "208"]
    assert immunizations[1] == {
        "code": "208",
        "system": "http://hl7.org/fhir/sid/cvx",
        "occurrence_date_time": "2021-02-01",
        "lot_number": "0001",
        "performer": "ABC General Hospital",
    }


def test_missing_bundle_is_malformed():
    card = SmartHealthCard.from_str(sign_card({"iss": ISSUER}, TestIssuerKey("k1")))
    with pytest.raises(MalformedCredentialError):
        card.immunizations()


def test_invalid_immunization_shape_is_malformed():
    payload = build_payload(codes=["207"])
    payload["vc"]["credentialSubject"]["fhirBundle"]["entry"][1]["resource"]["vaccineCode"] = {"coding": [None]}
    card = SmartHealthCard.from_str(sign_card(payload, TestIssuerKey("k1")))
    with pytest.raises(MalformedCredentialError) as exc_info:
        card.immunizations()
    assert exc_info.value.identifier == ISSUER
    assert card.patient_name() == "Jane C. Anyperson"
