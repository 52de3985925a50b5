# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Resolution of the signing key of an issuer.

The issuer is canonicalized through the trust store, its key set is read from the expiring cache
and on a miss fetched from `{iss}/.well-known/jwks.json`. For each canonical issuer at most one
fetch is in flight, concurrent callers wait for and share its result.
"""

import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Callable

import pydantic

from common import httpx_wrapper
from common.model.ietf import JSONWebKey, JSONWebKeySet
from shc_verifier.cache.expiring_cache import ExpiringCache, CacheNamespace
from shc_verifier.config import VerifierConfig
from shc_verifier.exception import (
    CacheUnavailable,
    IssuerNotFoundError,
    IssuerUnreachableError,
    PartialWriteFailure,
    UnknownIssuerError,
    UnknownKeyIdError,
)
from shc_verifier.logging import VerifierOperationsLogEntry as LogEntry
from shc_verifier.models import IssuerRecord
from shc_verifier.trust_store import IssuerTrustStore

_logger = logging.getLogger(__name__)

KEY_SET_CACHE_NAMESPACE = "issuer_key_set"

KeySetFetcher = Callable[[str], JSONWebKeySet]
"""Fetches the key set of the issuer url, raises IssuerUnreachableError on failure"""


def key_set_url(iss: str) -> str:
    return f"{iss.rstrip('/')}/.well-known/jwks.json"


def fetch_key_set(iss: str, config: VerifierConfig) -> JSONWebKeySet:
    """
    Fetches the published key set of the issuer.

    Raises:
        IssuerUnreachableError: on timeout, connection error, non 2xx response or an invalid key set document
    """
    url = key_set_url(iss)
    try:
        response = httpx_wrapper.get(url, config, timeout=config.key_fetch_timeout)
        response.raise_for_status()
        return JSONWebKeySet.model_validate_json(response.content)
    except httpx_wrapper.HTTPError as e:
        raise IssuerUnreachableError(identifier=iss, additional_error_description=f"{type(e).__name__} fetching {url}") from e
    except pydantic.ValidationError as e:
        raise IssuerUnreachableError(identifier=iss, additional_error_description=f"Invalid key set at {url}") from e


class IssuerKeyResolver:
    def __init__(
        self,
        trust_store: IssuerTrustStore,
        cache: ExpiringCache,
        config: VerifierConfig,
        fetcher: KeySetFetcher | None = None,
    ) -> None:
        self._trust_store = trust_store
        self._key_sets = CacheNamespace(cache, KEY_SET_CACHE_NAMESPACE)
        self._config = config
        self._fetcher = fetcher or (lambda iss: fetch_key_set(iss, config))
        self._in_flight: dict[int, Future] = {}
        self._in_flight_lock = threading.Lock()

    def canonical_issuer(self, iss: str) -> IssuerRecord:
        """
        Raises:
            UnknownIssuerError: iss is not trusted
            UnresolvedAliasError: iss is an alias which can not be resolved
        """
        try:
            return self._trust_store.resolve_canonical(iss)
        except IssuerNotFoundError as e:
            raise UnknownIssuerError(identifier=iss) from e

    def resolve(self, iss: str, key_id: str) -> JSONWebKey:
        """Returns the signing key of the issuer with the key id."""
        return self.resolve_for(self.canonical_issuer(iss), key_id)

    def resolve_for(self, issuer: IssuerRecord, key_id: str) -> JSONWebKey:
        """Returns the key with the key id of the already canonicalized issuer."""
        cached = self._cached_key_set(issuer)
        if cached is not None:
            if key := cached.find(key_id):
                return key
            # Issuers rotate keys, a cached set without the key id is refreshed before rejecting
            _logger.info(f"Key {key_id} not in cached key set of {issuer.iss}, refreshing")

        try:
            key_set = self._fetch_coalesced(issuer)
        except IssuerUnreachableError:
            if stale_key := self._stale_key(issuer, key_id):
                return stale_key
            raise

        if key := key_set.find(key_id):
            return key
        raise UnknownKeyIdError(identifier=key_id, additional_error_description=f"Issuer {issuer.iss} publishes {key_set.key_ids()}")

    def refresh(self, issuer: IssuerRecord) -> JSONWebKeySet:
        """
        Fetches the key set of the issuer bypassing the cache, joining the fetch in flight if there is one.

        Raises:
            IssuerUnreachableError: the key set could not be fetched, recorded as error on the issuer
        """
        return self._fetch_coalesced(issuer)

    def _cached_key_set(self, issuer: IssuerRecord) -> JSONWebKeySet | None:
        try:
            raw = self._key_sets.get(issuer.id)
        except CacheUnavailable as e:
            _logger.warning(LogEntry(
                message="Expiring cache unavailable, treated as miss",
                status=LogEntry.Status.error,
                operation=LogEntry.Operation.key_resolution,
                step=LogEntry.Step.key_resolution_cache,
                issuer=issuer.iss,
                error_code=e.error,
            ))
            return None
        if raw is None:
            return None
        try:
            return JSONWebKeySet.model_validate_json(raw)
        except pydantic.ValidationError:
            _logger.exception(f"Cached key set of {issuer.iss} is invalid, treated as miss")
            return None

    def _fetch_coalesced(self, issuer: IssuerRecord) -> JSONWebKeySet:
        """Fetches the key set, joining the fetch already in flight for the issuer if there is one."""
        with self._in_flight_lock:
            future = self._in_flight.get(issuer.id)
            leader = future is None
            if leader:
                future = Future()
                self._in_flight[issuer.id] = future

        if not leader:
            try:
                return future.result(timeout=2 * self._config.key_fetch_timeout)
            except FutureTimeoutError as e:
                raise IssuerUnreachableError(identifier=issuer.iss, additional_error_description="Timed out waiting for the key set fetch") from e

        try:
            key_set = self._refresh(issuer)
            future.set_result(key_set)
            return key_set
        except BaseException as e:
            future.set_exception(e)
            raise
        finally:
            with self._in_flight_lock:
                self._in_flight.pop(issuer.id, None)

    def _refresh(self, issuer: IssuerRecord) -> JSONWebKeySet:
        """Fetches the key set and persists it into the trust store and the cache."""
        try:
            key_set = self._fetcher(issuer.iss)
        except IssuerUnreachableError as e:
            self._trust_store.record_fetch_result(issuer.id, success=False)
            _logger.error(LogEntry(
                message=f"Fetching key set failed: {e}",
                status=LogEntry.Status.error,
                operation=LogEntry.Operation.key_resolution,
                step=LogEntry.Step.key_resolution_fetch,
                issuer=issuer.iss,
                error_code=e.error,
            ))
            raise

        keys = {(key.kid, key.model_dump_json(exclude_none=True)) for key in key_set.keys if key.kid}
        try:
            self._trust_store.replace_keys(issuer.id, keys)
        except PartialWriteFailure:
            # The fetched key set is still served from the cache, the trust store keeps the previous set
            _logger.warning(f"Key set of {issuer.iss} not persisted in the trust store")
        try:
            self._key_sets.put(issuer.id, key_set.model_dump_json(exclude_none=True), self._config.key_cache_ttl)
        except CacheUnavailable:
            _logger.warning(f"Key set of {issuer.iss} not cached, cache unavailable")
        self._trust_store.record_fetch_result(issuer.id, success=True)

        _logger.info(LogEntry(
            message=f"Fetched key set with {len(keys)} keys",
            status=LogEntry.Status.success,
            operation=LogEntry.Operation.key_resolution,
            step=LogEntry.Step.key_resolution_fetch,
            issuer=issuer.iss,
        ))
        return key_set

    def _stale_key(self, issuer: IssuerRecord, key_id: str) -> JSONWebKey | None:
        """Key retained from an earlier refresh, only if serving stale keys is enabled."""
        if not self._config.serve_stale_keys:
            return None
        stored = self._trust_store.get_key(issuer.id, key_id)
        if stored is None:
            return None
        _logger.warning(LogEntry(
            message=f"Issuer unreachable, serving stale key {key_id}",
            status=LogEntry.Status.success,
            operation=LogEntry.Operation.key_resolution,
            step=LogEntry.Step.key_resolution_stale,
            issuer=issuer.iss,
        ))
        return stored.as_jwk()
