# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Synchronisation of the known issuers with the VCI directory
https://github.com/the-commons-project/vci-directory

Besides the issuer metadata the key sets of the canonical issuers are prefetched, so an issuer
which can not be reached is flagged before the first credential of it is verified.
"""

import datetime
import logging
from concurrent.futures import ThreadPoolExecutor

from pydantic import BaseModel, ValidationError

from common import httpx_wrapper
from shc_verifier.config import VerifierConfig
from shc_verifier.db.models import utc_now
from shc_verifier.exception import IssuerUnreachableError
from shc_verifier.logging import VerifierOperationsLogEntry as LogEntry
from shc_verifier.models import IssuerRecord
from shc_verifier.resolver import IssuerKeyResolver
from shc_verifier.trust_store import IssuerTrustStore

_logger = logging.getLogger(__name__)

KEY_SET_MAX_AGE = datetime.timedelta(days=7)
"""Issuers updated within this time are not prefetched again unless forced"""
PREFETCH_WORKERS = 4


class VciDirectoryIssuer(BaseModel):
    iss: str
    name: str
    website: str | None = None
    canonical_iss: str | None = None


class VciDirectory(BaseModel):
    participating_issuers: list[VciDirectoryIssuer]


class SyncSummary(BaseModel):
    count: int
    """Issuers of the directory"""
    refreshed: int = 0
    """Key sets fetched"""
    failed: int = 0
    """Key set fetches failed, the issuer is flagged with error"""
    skipped: int = 0
    """Issuers updated within the last 7 days and aliases"""


class DirectorySyncError(Exception):
    """The directory could not be fetched or is not valid"""


def fetch_directory(config: VerifierConfig) -> VciDirectory:
    try:
        response = httpx_wrapper.get(config.vci_directory_url, config)
        response.raise_for_status()
        return VciDirectory.model_validate_json(response.content)
    except (httpx_wrapper.HTTPError, ValidationError) as e:
        _logger.error(LogEntry(
            message=f"Fetching VCI directory failed: {type(e).__name__}",
            status=LogEntry.Status.error,
            operation=LogEntry.Operation.directory_sync,
            step=LogEntry.Step.directory_sync_fetch,
        ))
        raise DirectorySyncError(f"Could not load VCI directory from {config.vci_directory_url}") from e


def _needs_refresh(known: IssuerRecord | None, force: bool) -> bool:
    # New issuers have never been fetched
    return force or known is None or utc_now() - known.updated_at > KEY_SET_MAX_AGE


def prefetch_key_sets(resolver: IssuerKeyResolver, issuers: list[IssuerRecord]) -> tuple[int, int]:
    """
    Fetches the key sets of the issuers, at most PREFETCH_WORKERS at once.
    Failures are recorded on the issuer by the resolver. Returns the number of (refreshed, failed) issuers.
    """

    def refresh(issuer: IssuerRecord) -> bool:
        try:
            resolver.refresh(issuer)
            return True
        except IssuerUnreachableError:
            return False

    with ThreadPoolExecutor(max_workers=PREFETCH_WORKERS, thread_name_prefix="key_prefetch") as executor:
        results = list(executor.map(refresh, issuers))
    refreshed = sum(results)
    return refreshed, len(results) - refreshed


def sync_directory(trust_store: IssuerTrustStore, config: VerifierConfig, resolver: IssuerKeyResolver | None = None, force: bool = False) -> SyncSummary:
    """
    Upserts all participating issuers of the directory.
    With a resolver the key sets of new issuers and of issuers not updated within KEY_SET_MAX_AGE are prefetched,
    force prefetches all of them. Aliases are not prefetched, their keys are the ones of the canonical issuer.
    """
    directory = fetch_directory(config)
    to_refresh = []
    for entry in directory.participating_issuers:
        known = trust_store.lookup(entry.iss)
        issuer = trust_store.upsert_issuer(entry.iss, entry.name, website=entry.website, canonical_iss=entry.canonical_iss)
        if issuer.canonical_iss is None and _needs_refresh(known, force):
            to_refresh.append(issuer)

    summary = SyncSummary(count=len(directory.participating_issuers))
    if resolver is not None:
        summary.refreshed, summary.failed = prefetch_key_sets(resolver, to_refresh)
        summary.skipped = summary.count - len(to_refresh)

    _logger.info(LogEntry(
        message=f"Synchronised {summary.count} issuers, prefetched {summary.refreshed} key sets, {summary.failed} failed",
        status=LogEntry.Status.success if summary.failed == 0 else LogEntry.Status.error,
        operation=LogEntry.Operation.directory_sync,
        step=LogEntry.Step.directory_sync_prefetch if resolver is not None else LogEntry.Step.directory_sync_fetch,
    ))
    return summary
