# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import os
from types import SimpleNamespace

from sqlalchemy import create_engine, inspect

import common.db.database as db
import shc_verifier
from shc_verifier.cache.expiring_cache import DatabaseExpiringCache
from shc_verifier.context import verification_context_lifespan

ALEMBIC_CONFIG_FILE = os.path.join(os.path.dirname(shc_verifier.__file__), "alembic.ini")


def test_migration_creates_schema(tmp_path):
    db_connection = f"sqlite:///{tmp_path / 'migrated.db'}"
    db.alembic_upgrade(ALEMBIC_CONFIG_FILE, db_connection)

    engine = create_engine(db_connection)
    inspector = inspect(engine)
    assert {"vci_issuer", "vci_issuer_key", "cvx_code", "expiring_cache"} <= set(inspector.get_table_names())
    assert [index["name"] for index in inspector.get_indexes("expiring_cache")] == ["expiring_cache_key_idx"]
    assert [constraint["column_names"] for constraint in inspector.get_unique_constraints("vci_issuer_key")] == [["vci_issuer_id", "key_id"]]
    engine.dispose()


def test_context_lifespan(tmp_path, monkeypatch, config):
    db_connection = f"sqlite:///{tmp_path / 'lifespan.db'}"
    monkeypatch.setenv("DB_CONNECTION", db_connection)
    db.alembic_upgrade(ALEMBIC_CONFIG_FILE, db_connection)
    app = SimpleNamespace(config_instance=config, state=SimpleNamespace())

    with verification_context_lifespan(app) as context:
        assert app.state.verification_context is context
        assert isinstance(context.cache, DatabaseExpiringCache)
        context.cache.put("k", "v", 60)
        assert context.cache.get("k") == "v"
        assert context.trust_store.list_issuers() == []
