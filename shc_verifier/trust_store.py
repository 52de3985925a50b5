# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Trusted issuers, their canonical identity and their key sets.

An issuer may be a known alias of another issuer (scheme or trailing slash variants,
organizational renames). Aliasing is exactly one hop: an alias pointing to a missing issuer,
to itself or to another alias is unresolved and never trusted.
"""

import logging
from enum import Enum
from typing import Iterable, NamedTuple

import sqlalchemy.exc
from sqlalchemy import select, delete
from sqlalchemy.orm import Session, sessionmaker

from shc_verifier.db.models import VciIssuer, VciIssuerKey, utc_now
from shc_verifier.exception import IssuerNotFoundError, PartialWriteFailure, UnresolvedAliasError
from shc_verifier.models import IssuerRecord, IssuerKeyRecord

_logger = logging.getLogger(__name__)


class Canonicalization(Enum):
    direct = "DIRECT"
    """Issuer is not an alias"""
    aliased = "ALIASED"
    """Issuer is an alias of an existing, non aliased issuer"""
    unresolved_alias = "UNRESOLVED_ALIAS"
    not_found = "NOT_FOUND"


class CanonicalResolution(NamedTuple):
    kind: Canonicalization
    issuer: IssuerRecord | None = None
    """The canonical issuer, only set for direct and aliased results"""
    alias: IssuerRecord | None = None
    """The record looked up, if it differs from the canonical issuer"""


class IssuerTrustStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _get_by_iss(session: Session, iss: str) -> VciIssuer | None:
        return session.execute(select(VciIssuer).where(VciIssuer.iss == iss)).scalar_one_or_none()

    def lookup(self, iss: str) -> IssuerRecord | None:
        """Exact match on iss, no canonicalization."""
        with self._session_factory() as session:
            issuer = self._get_by_iss(session, iss)
            return IssuerRecord.model_validate(issuer) if issuer else None

    def canonicalize(self, iss: str) -> CanonicalResolution:
        with self._session_factory() as session:
            issuer = self._get_by_iss(session, iss)
            if issuer is None:
                return CanonicalResolution(Canonicalization.not_found)
            record = IssuerRecord.model_validate(issuer)
            if issuer.canonical_iss is None:
                return CanonicalResolution(Canonicalization.direct, issuer=record)
            if issuer.canonical_iss == issuer.iss:
                return CanonicalResolution(Canonicalization.unresolved_alias, alias=record)
            # Exactly one additional lookup, chains are never followed
            canonical = self._get_by_iss(session, issuer.canonical_iss)
            if canonical is None or canonical.canonical_iss is not None:
                return CanonicalResolution(Canonicalization.unresolved_alias, alias=record)
            return CanonicalResolution(Canonicalization.aliased, issuer=IssuerRecord.model_validate(canonical), alias=record)

    def resolve_canonical(self, iss: str) -> IssuerRecord:
        """
        Returns the issuer the iss is trusted through.

        Raises:
            IssuerNotFoundError: iss is not known
            UnresolvedAliasError: iss is an alias which can not be resolved in one hop
        """
        resolution = self.canonicalize(iss)
        match resolution.kind:
            case Canonicalization.not_found:
                raise IssuerNotFoundError(iss)
            case Canonicalization.unresolved_alias:
                _logger.warning(f"Issuer {iss} is an alias of {resolution.alias.canonical_iss} which can not be resolved")
                raise UnresolvedAliasError(identifier=iss, additional_error_description=f"Canonical issuer: {resolution.alias.canonical_iss}")
        return resolution.issuer

    def record_fetch_result(self, issuer_id: int, success: bool) -> None:
        with self._session_factory() as session, session.begin():
            issuer = session.get(VciIssuer, issuer_id)
            if issuer is None:
                raise IssuerNotFoundError(str(issuer_id))
            issuer.error = not success
            issuer.updated_at = utc_now()

    def replace_keys(self, issuer_id: int, keys: Iterable[tuple[str, str]]) -> None:
        """
        Replaces the key set of the issuer with the (key_id, data) pairs in a single transaction.
        Concurrent readers see either the previous or the new key set.

        Raises:
            PartialWriteFailure: nothing was written, the previous key set is still in place
        """
        try:
            with self._session_factory() as session, session.begin():
                if session.get(VciIssuer, issuer_id) is None:
                    raise IssuerNotFoundError(str(issuer_id))
                session.execute(delete(VciIssuerKey).where(VciIssuerKey.vci_issuer_id == issuer_id))
                session.add_all([VciIssuerKey(vci_issuer_id=issuer_id, key_id=key_id, data=data) for key_id, data in keys])
        except sqlalchemy.exc.SQLAlchemyError as e:
            _logger.exception(f"Replacing keys of issuer {issuer_id} failed, previous key set is kept")
            raise PartialWriteFailure(issuer_id, str(e)) from e

    def get_keys(self, issuer_id: int) -> list[IssuerKeyRecord]:
        with self._session_factory() as session:
            keys = session.execute(select(VciIssuerKey).where(VciIssuerKey.vci_issuer_id == issuer_id).order_by(VciIssuerKey.key_id)).scalars()
            return [IssuerKeyRecord.model_validate(key) for key in keys]

    def get_key(self, issuer_id: int, key_id: str) -> IssuerKeyRecord | None:
        with self._session_factory() as session:
            key = session.execute(select(VciIssuerKey).where(VciIssuerKey.vci_issuer_id == issuer_id, VciIssuerKey.key_id == key_id)).scalar_one_or_none()
            return IssuerKeyRecord.model_validate(key) if key else None

    def upsert_issuer(self, iss: str, name: str, website: str | None = None, canonical_iss: str | None = None) -> IssuerRecord:
        """Creates the issuer on first sight of the iss, otherwise updates its metadata. The iss itself never changes."""
        with self._session_factory() as session, session.begin():
            issuer = self._get_by_iss(session, iss)
            if issuer is None:
                issuer = VciIssuer(iss=iss, name=name, website=website, canonical_iss=canonical_iss, error=False)
                session.add(issuer)
            else:
                issuer.name = name
                issuer.website = website
                issuer.canonical_iss = canonical_iss
            session.flush()
            return IssuerRecord.model_validate(issuer)

    def list_issuers(self) -> list[IssuerRecord]:
        with self._session_factory() as session:
            return [IssuerRecord.model_validate(issuer) for issuer in session.execute(select(VciIssuer).order_by(VciIssuer.iss)).scalars()]

    def purge_issuer(self, iss: str) -> bool:
        """Administrative removal of the issuer and its keys. Aliases of it become unresolved."""
        with self._session_factory() as session, session.begin():
            issuer = self._get_by_iss(session, iss)
            if issuer is None:
                return False
            session.delete(issuer)
        _logger.info(f"Purged issuer {iss}")
        return True
