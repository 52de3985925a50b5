# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import os

from functools import cache
import logging

from sqlalchemy import create_engine, inspect, event, Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.schema import CreateSchema

from alembic import command as alembic_command
from alembic.config import Config as AlembicConfig


#################
# DB Definition #
#################

_logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def alembic_upgrade(alembic_config_file: str, db_connection_string: str | None = None):
    if not os.path.exists(alembic_config_file):
        _logger.error(f"{alembic_config_file=} does not exist!")
    alembic_config = AlembicConfig(alembic_config_file)
    alembic_config.set_main_option(
        'script_location',
        os.path.join(os.path.dirname(alembic_config_file), "alembic"),
    )
    if db_connection_string:
        alembic_config.set_main_option("sqlalchemy.url", db_connection_string)
    # Logging is configured by the application
    alembic_config.attributes["configure_logger"] = False
    alembic_command.upgrade(alembic_config, 'head')
    logging.info("Alembic Upgrade Done")


@cache
def _setup_db(db_connection_string: str, db_schema: str) -> tuple[Engine, sessionmaker]:
    """Sets up a DB connection, on PostgreSQL with the schema"""
    engine = create_engine(db_connection_string)

    if engine.dialect.name == "postgresql":

        @event.listens_for(engine, "connect", insert=True)
        def set_search_path(dbapi_connection, connection_record):
            """
            Setting Session search path every time a new connection is made
            https://docs.sqlalchemy.org/en/20/dialects/postgresql.html#setting-alternate-search-paths-on-connect
            """
            existing_autocommit = dbapi_connection.autocommit
            dbapi_connection.autocommit = True
            cursor = dbapi_connection.cursor()
            cursor.execute("SET SESSION search_path TO '%s'" % db_schema)
            cursor.close()
            dbapi_connection.autocommit = existing_autocommit

        inspector = inspect(engine)
        if db_schema not in inspector.get_schema_names():
            with engine.connect() as conn:
                conn.execute(CreateSchema(db_schema, if_not_exists=True))
                conn.commit()

    _session_local = sessionmaker(bind=engine, expire_on_commit=False)
    return engine, _session_local


def session_factory(db_connection_string: str, db_schema: str) -> sessionmaker:
    """Returns the (cached) session factory for the connection."""
    _, _session_local = _setup_db(db_connection_string, db_schema)
    return _session_local
