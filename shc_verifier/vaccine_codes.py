# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Registry of the CVX vaccine codes and its ingestion from the CDC feed.

The verification only reads the registry. Codes are never reused by the CDC,
an update replaces the metadata of a code but never its identity.
"""

import datetime
import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from common import httpx_wrapper
from shc_verifier.cache.expiring_cache import ExpiringCache
from shc_verifier.config import VerifierConfig
from shc_verifier.db.models import CvxCode
from shc_verifier.exception import CacheUnavailable
from shc_verifier.logging import VerifierOperationsLogEntry as LogEntry
from shc_verifier.models import VaccineCode

_logger = logging.getLogger(__name__)

CVX_CACHE_KEY = "cvx_codes"
CVX_DATE_FORMAT = "%Y/%m/%d"


class VaccineCodeRegistry:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def lookup(self, code: int | str) -> VaccineCode | None:
        try:
            code = int(code)
        except (TypeError, ValueError):
            return None
        with self._session_factory() as session:
            cvx_code = session.get(CvxCode, code)
            return VaccineCode.model_validate(cvx_code) if cvx_code else None

    def list_codes(self) -> list[VaccineCode]:
        with self._session_factory() as session:
            return [VaccineCode.model_validate(code) for code in session.execute(select(CvxCode).order_by(CvxCode.code)).scalars()]

    def upsert_codes(self, codes: Iterable[VaccineCode]) -> int:
        """Inserts new codes and replaces the metadata of known ones. Returns the number of written codes."""
        count = 0
        with self._session_factory() as session, session.begin():
            for code in codes:
                session.merge(CvxCode(**code.model_dump()))
                count += 1
        return count


def parse_cvx_feed(text: str) -> list[VaccineCode]:
    """
    Parses the pipe delimited CDC feed
    `code|short description|full name|notes|status|nonvaccine|last updated (YYYY/MM/DD)`
    """
    codes = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        parts = [part.strip() for part in line.split("|")]
        try:
            codes.append(
                VaccineCode(
                    code=int(parts[0]),
                    short_description=parts[1],
                    full_name=parts[2],
                    notes=parts[3] or None,
                    vaccine_status=parts[4],
                    last_updated=datetime.datetime.strptime(parts[6], CVX_DATE_FORMAT).date(),
                )
            )
        except (IndexError, ValueError):
            _logger.warning(f"Skipping unparseable CVX line {line_number}: {line!r}")
    return codes


def refresh_from_feed(registry: VaccineCodeRegistry, cache: ExpiringCache, config: VerifierConfig) -> int:
    """
    Reads the CVX feed, from the expiring cache if it was fetched within the cache ttl,
    and upserts the codes into the registry.
    """
    try:
        data = cache.get(CVX_CACHE_KEY)
    except CacheUnavailable:
        _logger.warning("Expiring cache unavailable, fetching CVX codes")
        data = None

    if data is None:
        _logger.debug("Updating CVX code cache")
        try:
            response = httpx_wrapper.get(config.cvx_codes_url, config)
            response.raise_for_status()
        except httpx_wrapper.HTTPError as e:
            _logger.error(LogEntry(
                message=f"Fetching CVX codes failed: {e}",
                status=LogEntry.Status.error,
                operation=LogEntry.Operation.cvx_import,
                step=LogEntry.Step.cvx_import_fetch,
            ))
            raise
        data = response.text
        try:
            cache.put(CVX_CACHE_KEY, data, config.cvx_cache_ttl)
        except CacheUnavailable:
            _logger.warning("CVX codes not cached, cache unavailable")
    else:
        _logger.debug("Using cached CVX codes")

    count = registry.upsert_codes(parse_cvx_feed(data))
    _logger.info(LogEntry(
        message=f"Imported {count} CVX codes",
        status=LogEntry.Status.success,
        operation=LogEntry.Operation.cvx_import,
        step=LogEntry.Step.cvx_import_fetch,
    ))
    return count
