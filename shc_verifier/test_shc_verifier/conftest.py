# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import common.db.database as db
from shc_verifier.cache.expiring_cache import DatabaseExpiringCache
from shc_verifier.config import VerifierConfig
from shc_verifier.context import VerificationContext
from shc_verifier.models import VaccineCode
from shc_verifier.trust_store import IssuerTrustStore
import shc_verifier.db.models  # noqa: F401 registers the tables on the metadata
from shc_verifier.test_shc_verifier.hard_coded import ISSUER, FakeFetcher, TestIssuerKey, key_set


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker:
    # File based, every thread gets its own connection
    engine = create_engine(f"sqlite:///{tmp_path / 'shc_verifier.db'}")
    db.Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def config() -> VerifierConfig:
    config = VerifierConfig()
    config.key_fetch_timeout = 1
    config.key_cache_ttl = 60
    config.serve_stale_keys = False
    config.cache_backend = "database"
    config.enable_splunk_log = False
    return config


@pytest.fixture
def cache(session_factory) -> DatabaseExpiringCache:
    return DatabaseExpiringCache(session_factory)


@pytest.fixture
def trust_store(session_factory) -> IssuerTrustStore:
    return IssuerTrustStore(session_factory)


@pytest.fixture
def issuer_key() -> TestIssuerKey:
    return TestIssuerKey("k1")


@pytest.fixture
def fetcher(issuer_key) -> FakeFetcher:
    return FakeFetcher({ISSUER: key_set(issuer_key)})


@pytest.fixture
def context(config, session_factory, fetcher) -> VerificationContext:
    ctx = VerificationContext(config, session_factory, fetcher)
    ctx.vaccine_codes.upsert_codes(
        [
            VaccineCode(
                code=207,
                short_description="COVID-19, mRNA, LNP-S, PF, 100 mcg/0.5mL dose or 50 mcg/0.25mL dose",
                full_name="SARS-COV-2 (COVID-19) vaccine, mRNA, spike protein, LNP, preservative free, 100 mcg/0.5mL dose",
                vaccine_status="Active",
                last_updated=datetime.date(2023, 9, 12),
            ),
            VaccineCode(
                code=208,
                short_description="COVID-19, mRNA, LNP-S, PF, 30 mcg/0.3 mL dose",
                full_name="SARS-COV-2 (COVID-19) vaccine, mRNA, spike protein, LNP, preservative free, 30 mcg/0.3mL dose",
                vaccine_status="Active",
                last_updated=datetime.date(2023, 9, 12),
            ),
        ]
    )
    yield ctx
    ctx.close()


@pytest.fixture
def known_issuer(trust_store):
    return trust_store.upsert_issuer(ISSUER, "Example Issuer", website="https://issuer.example/about")

