# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""init

Revision ID: 1.0
Revises: 
Create Date: 2024-03-19 04:52:25.000000

Issuers with their keys, CVX codes and the expiring cache.
Will check if tables already exist before attempting to forcefully create them.

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1.0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())
    existing_tables = inspector.get_table_names()
    if "vci_issuer" not in existing_tables:
        op.create_table(
            "vci_issuer",
            sa.Column("id", sa.INTEGER, primary_key=True),
            sa.Column("iss", sa.TEXT, nullable=False, unique=True),
            sa.Column("name", sa.TEXT, nullable=False),
            sa.Column("website", sa.TEXT, nullable=True),
            sa.Column("canonical_iss", sa.TEXT, nullable=True),
            sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column("error", sa.BOOLEAN, nullable=False),
        )
    if "vci_issuer_key" not in existing_tables:
        op.create_table(
            "vci_issuer_key",
            sa.Column("id", sa.INTEGER, primary_key=True),
            sa.Column("vci_issuer_id", sa.INTEGER, nullable=False),
            sa.Column("key_id", sa.TEXT, nullable=False),
            sa.Column("data", sa.TEXT, nullable=False),
            sa.ForeignKeyConstraint(
                columns=["vci_issuer_id"],
                refcolumns=["vci_issuer.id"],
            ),
            sa.UniqueConstraint("vci_issuer_id", "key_id"),
        )
    if "cvx_code" not in existing_tables:
        op.create_table(
            "cvx_code",
            sa.Column("code", sa.INTEGER, primary_key=True, autoincrement=False),
            sa.Column("short_description", sa.TEXT, nullable=False),
            sa.Column("full_name", sa.TEXT, nullable=False),
            sa.Column("vaccine_status", sa.TEXT, nullable=False),
            sa.Column("last_updated", sa.Date, nullable=False),
            sa.Column("notes", sa.TEXT, nullable=True),
        )
    if "expiring_cache" not in existing_tables:
        op.create_table(
            "expiring_cache",
            sa.Column("key", sa.TEXT, primary_key=True),
            sa.Column("value", sa.TEXT, nullable=False),
            sa.Column("expires_at", sa.DateTime, nullable=False),
        )
        op.create_index("expiring_cache_key_idx", "expiring_cache", ["key", sa.text("expires_at DESC")])


def downgrade() -> None:
    op.drop_index("expiring_cache_key_idx", table_name="expiring_cache")
    op.drop_table("expiring_cache")
    op.drop_table("cvx_code")
    op.drop_table("vci_issuer_key")
    op.drop_table("vci_issuer")
