# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Shared state of the verifications: trust store, expiring cache and key resolver.
Created on application startup and closed on shutdown, handed to the routes by dependency injection.
"""

import contextlib
import logging
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker

import common.config
import common.db.database as db
from shc_verifier.cache.eviction import eviction_lifespan
from shc_verifier.cache.expiring_cache import create_cache
from shc_verifier.config import VerifierConfig
from shc_verifier.resolver import IssuerKeyResolver, KeySetFetcher
from shc_verifier.trust_store import IssuerTrustStore
from shc_verifier.vaccine_codes import VaccineCodeRegistry
from shc_verifier.verification import CredentialVerifier

_logger = logging.getLogger(__name__)


class VerificationContext:
    def __init__(self, config: VerifierConfig, session_factory: sessionmaker, fetcher: KeySetFetcher | None = None) -> None:
        self.config = config
        self.session_factory = session_factory
        self.cache = create_cache(config, session_factory)
        self.trust_store = IssuerTrustStore(session_factory)
        self.vaccine_codes = VaccineCodeRegistry(session_factory)
        self.resolver = IssuerKeyResolver(self.trust_store, self.cache, config, fetcher)
        self.verifier = CredentialVerifier(self.resolver, self.vaccine_codes)

    def close(self) -> None:
        self.cache.close()


@contextlib.contextmanager
def verification_context_lifespan(app) -> contextlib.AbstractContextManager:
    """Lifespan creating the verification context and running the cache eviction next to it."""
    db_config = common.config.DBConfig()
    session_factory = db.session_factory(db_config.SQLALCHEMY_DATABASE_URL, db_config.SQLALCHEMY_DATABASE_SCHEMA)
    context = VerificationContext(app.config_instance, session_factory)
    app.state.verification_context = context
    try:
        with eviction_lifespan(context.cache, context.config.cache_eviction_interval):
            yield context
    finally:
        context.close()
        _logger.info("Verification context closed")


def get_context(request: Request) -> VerificationContext:
    return request.app.state.verification_context


inject = Annotated[VerificationContext, Depends(get_context)]
