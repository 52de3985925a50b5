# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Storage for trusted issuers, their keys, the expiring cache and the CVX reference table.
The table layout is shared with the alembic migration 1.0 and must not diverge.
"""

import datetime

import sqlalchemy.orm as sa_orm
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import ForeignKey, Index, UniqueConstraint
from sqlalchemy import Integer, TEXT, BOOLEAN, DateTime, Date, func

import common.db.database as db


def utc_now() -> datetime.datetime:
    """Naive UTC timestamp, the representation used for all DATETIME columns."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class VciIssuer(db.Base):
    """
    Credential issuer, identified by its iss url
    """

    __tablename__ = "vci_issuer"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    iss: Mapped[str] = mapped_column(TEXT, nullable=False, unique=True)
    """Issuer url as presented in the credentials, immutable"""
    name: Mapped[str] = mapped_column(TEXT, nullable=False)
    website: Mapped[str | None] = mapped_column(TEXT, nullable=True)
    canonical_iss: Mapped[str | None] = mapped_column(TEXT, nullable=True)
    """iss of the issuer this issuer is an alias of"""
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=utc_now, server_default=func.current_timestamp())
    """Last refresh attempt"""
    error: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False)
    """True if the last attempt to fetch the key set failed"""

    keys: Mapped[list["VciIssuerKey"]] = sa_orm.relationship(back_populates="issuer", cascade="all, delete-orphan")


class VciIssuerKey(db.Base):
    """
    Public signing key of an issuer
    """

    __tablename__ = "vci_issuer_key"
    __table_args__ = (UniqueConstraint("vci_issuer_id", "key_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vci_issuer_id: Mapped[int] = mapped_column(Integer, ForeignKey(VciIssuer.id), nullable=False)
    issuer: Mapped[VciIssuer] = sa_orm.relationship(back_populates="keys")
    key_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    data: Mapped[str] = mapped_column(TEXT, nullable=False)
    """Serialized JSON Web Key"""


class CvxCode(db.Base):
    """
    CVX vaccine code, maintained by the CDC
    """

    __tablename__ = "cvx_code"
    code: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    short_description: Mapped[str] = mapped_column(TEXT, nullable=False)
    full_name: Mapped[str] = mapped_column(TEXT, nullable=False)
    vaccine_status: Mapped[str] = mapped_column(TEXT, nullable=False)
    last_updated: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(TEXT, nullable=True)


class ExpiringCacheEntry(db.Base):
    """
    Generic key value entry which is logically absent once expires_at passed
    """

    __tablename__ = "expiring_cache"
    key: Mapped[str] = mapped_column(TEXT, primary_key=True)
    value: Mapped[str] = mapped_column(TEXT, nullable=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("expiring_cache_key_idx", "key", expires_at.desc()),)
