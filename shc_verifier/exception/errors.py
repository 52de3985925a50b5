# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Errors of the verification pipeline.

Every error carries a machine readable `error` code, the `category` it belongs to and the
offending `identifier` (issuer url, key id, ...), so callers can decide between a retry and
a permanent rejection. Audit logs distinguish "not trusted" (trust) from "could not check" (transient).
"""

from enum import Enum


class ErrorCategory(Enum):
    input = "INPUT"
    """Malformed credential, never retried"""
    trust = "TRUST"
    """Issuer or key not trusted, fail closed"""
    transient = "TRANSIENT"
    """Could not check, eligible for a caller driven retry"""
    integrity = "INTEGRITY"
    """Cryptographic mismatch, never retried"""


class VerificationError(Exception):
    """Base class for all errors rejecting a credential."""

    error: str = "verification_failed"
    """Machine readable code identifieng the exception."""

    error_description: str = "The credential could not be verified."
    """Human readable error description for the error type."""

    category: ErrorCategory = ErrorCategory.input

    status_code: int = 400
    """Status code when rendered as http response."""

    def __init__(self, identifier: str | None = None, additional_error_description: str | None = None) -> None:
        """
        Args:
            identifier (str, optional): The offending identifier, eg. the issuer url or key id.
            additional_error_description (str, optional): Additional, human readable data, to identify the issue resulting in this exception.
        """
        super().__init__(self.error_description if additional_error_description is None else f"{self.error_description} {additional_error_description}")
        self.identifier = identifier
        self.additional_error_description = additional_error_description

    @property
    def retryable(self) -> bool:
        return self.category == ErrorCategory.transient

    def __repr__(self) -> str:
        return f"{type(self).__name__}(error={self.error!r}, identifier={self.identifier!r})"


class MalformedCredentialError(VerificationError):
    """The credential envelope or one of its header fields is missing or can not be parsed."""

    error = "malformed_credential"
    error_description = "The credential is malformed or misses required header fields."
    category = ErrorCategory.input
    status_code = 400


class UnknownIssuerError(VerificationError):
    """The issuer is not part of the trust store. Unknown issuers are never trusted."""

    error = "unknown_issuer"
    error_description = "The issuer of the credential is not trusted."
    category = ErrorCategory.trust
    status_code = 422


class UnresolvedAliasError(UnknownIssuerError):
    """The issuer is an alias whose canonical issuer does not exist or is an alias itself."""

    error = "unresolved_alias"
    error_description = "The issuer is an alias which can not be resolved to a trusted issuer."


class UnknownKeyIdError(VerificationError):
    """The current key set of the issuer does not contain the key id."""

    error = "unknown_key_id"
    error_description = "The key used to sign the credential is not published by the issuer."
    category = ErrorCategory.trust
    status_code = 422


class IssuerUnreachableError(VerificationError):
    """The key set of the issuer could not be fetched in time or was invalid."""

    error = "issuer_unreachable"
    error_description = "The key set of the issuer could not be retrieved."
    category = ErrorCategory.transient
    status_code = 503


class CacheUnavailable(VerificationError):
    """The expiring cache storage failed. Treated as a cache miss by the key resolver."""

    error = "cache_unavailable"
    error_description = "The key cache is not available."
    category = ErrorCategory.transient
    status_code = 503


class SignatureInvalidError(VerificationError):
    """The signature does not match the credential. Retrying can not change the outcome."""

    error = "signature_invalid"
    error_description = "The signature of the credential is invalid."
    category = ErrorCategory.integrity
    status_code = 422


######################
# Trust store errors #
######################


class TrustStoreError(Exception):
    """Storage level conditions of the issuer trust store, not verification verdicts."""


class IssuerNotFoundError(TrustStoreError):
    def __init__(self, iss: str) -> None:
        super().__init__(f"Issuer {iss} not found")
        self.iss = iss


class PartialWriteFailure(TrustStoreError):
    """Replacing the key set failed, the previous key set is still in place."""

    def __init__(self, issuer_id: int, detail: str) -> None:
        super().__init__(f"Replacing the keys of issuer {issuer_id} failed: {detail}")
        self.issuer_id = issuer_id
        self.detail = detail
