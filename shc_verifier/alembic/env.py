# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from sqlalchemy.schema import CreateSchema
from alembic import context

import common.config
import common.db.database as db
import shc_verifier.db.models  # noqa: F401 registers the tables on the metadata

config = context.config

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = db.Base.metadata


def run_migrations_offline() -> None:
    """Emits the migration as SQL script without a database connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Runs the migration, on PostgreSQL in the configured schema."""
    db_config = common.config.DBConfig()
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        if connection.dialect.name == "postgresql":
            connection.execute(CreateSchema(db_config.SQLALCHEMY_DATABASE_SCHEMA, if_not_exists=True))
            connection.exec_driver_sql(f"SET search_path TO {db_config.SQLALCHEMY_DATABASE_SCHEMA}")
            connection.commit()
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table_schema=db_config.SQLALCHEMY_DATABASE_SCHEMA if connection.dialect.name == "postgresql" else None,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
