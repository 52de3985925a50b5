# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
End to end verification of SMART Health Cards against the trust store, key resolver and CVX registry
"""

import datetime
from unittest import mock

import httpx
import pytest
from jwcrypto.common import base64url_decode, base64url_encode

from shc_verifier import exception as err
from shc_verifier.context import VerificationContext
from shc_verifier.models import VerificationState
from shc_verifier.test_shc_verifier.hard_coded import ISSUER, TestIssuerKey, backdate_issuer, build_payload, sign_card, to_numeric


def _corrupt_signature(token: str) -> str:
    header, payload, signature = token.split(".")
    raw = bytearray(base64url_decode(signature))
    raw[0] ^= 0xFF
    return ".".join([header, payload, base64url_encode(bytes(raw))])


def test_verified_without_warnings(context, known_issuer, issuer_key):
    result = context.verifier.evaluate(sign_card(build_payload(), issuer_key))
    assert result.state == VerificationState.verified
    assert result.reason is None
    assert result.warnings == []
    payload = result.payload
    assert payload.iss == ISSUER
    assert payload.canonical_iss == ISSUER
    assert payload.issuer_name == "Example Issuer"
    assert payload.kid == "k1"
    assert payload.patient_name == "Jane C. Anyperson"
    assert [immunization.code for immunization in payload.immunizations] == ["207", "207"]
    assert payload.immunizations[0].vaccine.startswith("COVID-19")
    assert payload.immunizations[0].performer == "ABC General Hospital"


def test_unknown_issuer_rejected(context, issuer_key, fetcher):
    result = context.verifier.evaluate(sign_card(build_payload(), issuer_key))
    assert result.state == VerificationState.rejected
    assert result.reason.error == err.UnknownIssuerError.error
    assert result.reason.identifier == ISSUER
    assert not result.reason.retryable
    assert result.rejected_in == VerificationState.issuer_resolving
    assert fetcher.calls == []


def test_corrupted_signature_rejected(context, known_issuer, issuer_key):
    result = context.verifier.evaluate(_corrupt_signature(sign_card(build_payload(), issuer_key)))
    assert result.state == VerificationState.rejected
    assert result.reason.error == err.SignatureInvalidError.error
    assert result.reason.error_category == err.ErrorCategory.integrity
    assert not result.reason.retryable
    assert result.rejected_in == VerificationState.signature_checking


def test_signature_of_other_key_rejected(context, known_issuer):
    # Same kid, different key material
    impostor = TestIssuerKey("k1")
    with pytest.raises(err.SignatureInvalidError):
        context.verifier.verify(sign_card(build_payload(), impostor))


def test_unrecognized_vaccine_code_is_warning(context, known_issuer, issuer_key):
    result = context.verifier.evaluate(sign_card(build_payload(codes=["207", "99999"]), issuer_key))
    assert result.state == VerificationState.verified
    assert len(result.warnings) == 1
    assert result.warnings[0].code == 99999
    assert result.warnings[0].warning == "unrecognized_vaccine_code"


def test_non_cvx_codings_are_not_checked(context, known_issuer, issuer_key):
    payload = build_payload(codes=["207"])
    payload["vc"]["credentialSubject"]["fhirBundle"]["entry"][1]["resource"]["vaccineCode"]["coding"].append({"system": "http://snomed.info/sct", "code": "28581000087106"})
    result = context.verifier.evaluate(sign_card(payload, issuer_key))
    assert result.state == VerificationState.verified
    assert result.warnings == []
    assert len(result.payload.immunizations) == 2


def test_fetch_timeout_rejected_as_unreachable(config, session_factory, trust_store, known_issuer, issuer_key):
    # The default fetcher, going over http
    context = VerificationContext(config, session_factory)
    before = datetime.datetime(2020, 1, 1)
    backdate_issuer(session_factory, known_issuer.id, before)

    with mock.patch("httpx.get", side_effect=httpx.ReadTimeout("timed out")):
        result = context.verifier.evaluate(sign_card(build_payload(), issuer_key))

    assert result.state == VerificationState.rejected
    assert result.reason.error == err.IssuerUnreachableError.error
    assert result.reason.error_category == err.ErrorCategory.transient
    assert result.reason.retryable
    assert result.rejected_in == VerificationState.key_resolving
    issuer = trust_store.lookup(ISSUER)
    assert issuer.error
    assert issuer.updated_at > before
    context.close()


def test_verify_through_alias(context, known_issuer, trust_store, issuer_key):
    trust_store.upsert_issuer("https://alias.example", "Alias", canonical_iss=ISSUER)
    payload = context.verifier.verify(sign_card(build_payload(iss="https://alias.example"), issuer_key))
    assert payload.iss == "https://alias.example"
    assert payload.canonical_iss == ISSUER


def test_verify_numeric_qr(context, known_issuer, issuer_key):
    payload = context.verifier.verify(to_numeric(sign_card(build_payload(), issuer_key)))
    assert payload.iss == ISSUER


def test_verify_uncompressed(context, known_issuer, issuer_key):
    payload = context.verifier.verify(sign_card(build_payload(), issuer_key, compress=False))
    assert payload.issued_at == 1610000000


def test_malformed_credential_rejected(context):
    result = context.verifier.evaluate("not-a-credential")
    assert result.state == VerificationState.rejected
    assert result.reason.error == err.MalformedCredentialError.error
    assert result.rejected_in == VerificationState.received


def test_verify_raises_with_identifier(context, known_issuer, issuer_key):
    with pytest.raises(err.UnknownKeyIdError) as exc_info:
        context.verifier.verify(sign_card(build_payload(), TestIssuerKey("k7")))
    assert exc_info.value.identifier == "k7"


def _with_resource(index: int, **fields) -> dict:
    payload = build_payload(codes=["207"])
    payload["vc"]["credentialSubject"]["fhirBundle"]["entry"][index]["resource"].update(fields)
    return payload


@pytest.mark.parametrize(
    "payload",
    [
        _with_resource(1, vaccineCode={"coding": ["207"]}),
        _with_resource(1, vaccineCode="207"),
        _with_resource(1, performer=["ABC General Hospital"]),
        _with_resource(1, performer=[{"actor": "ABC General Hospital"}]),
        _with_resource(0, name=[None]),
        _with_resource(0, name=[{"family": "Anyperson", "given": "Jane"}]),
    ],
)
def test_unexpected_fhir_shape_rejected(context, known_issuer, issuer_key, payload):
    result = context.verifier.evaluate(sign_card(payload, issuer_key))
    assert result.state == VerificationState.rejected
    assert result.reason.error == err.MalformedCredentialError.error
    assert result.reason.identifier == ISSUER
    assert not result.reason.retryable
    assert result.rejected_in == VerificationState.payload_decoding


def test_missing_optional_fhir_fields_verified(context, known_issuer, issuer_key):
    payload = _with_resource(1, vaccineCode=None, performer=None, lotNumber=None)
    payload["vc"]["credentialSubject"]["fhirBundle"]["entry"][0]["resource"]["name"] = [{"family": None, "given": None}]
    result = context.verifier.evaluate(sign_card(payload, issuer_key))
    assert result.state == VerificationState.verified
    assert result.payload.patient_name == ""
    immunization = result.payload.immunizations[0]
    assert immunization.code == ""
    assert immunization.system is None
    assert immunization.performer is None
    assert result.warnings == []


@pytest.mark.parametrize("code", ["²", "2O7", "٢٠٧٠"])
def test_non_numeric_vaccine_code_is_warning(context, known_issuer, issuer_key, code):
    result = context.verifier.evaluate(sign_card(build_payload(codes=[code]), issuer_key))
    assert result.state == VerificationState.verified
    assert len(result.warnings) == 1
    assert str(result.warnings[0].code) in (code, "2070")
