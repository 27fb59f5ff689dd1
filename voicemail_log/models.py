"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.sql import expression

from voicemail_log.storage import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Account(Base):
    """
    Identity that scopes a set of voicemails.

    Table: accounts
    Rows are never updated; deleting one cascades to its voicemails.
    """
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=new_id)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())


class Voicemail(Base):
    """
    One logged phone message.

    Table: voicemails
    returned_at is set iff returned is true; every other column except
    returned/returned_at is written once at insert.
    """
    __tablename__ = "voicemails"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(
        String(36),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=True,
    )
    from_name = Column(Text, nullable=False)
    to_name = Column(Text, nullable=False)
    phone_number = Column(Text, nullable=False)
    message_content = Column(Text, nullable=False)
    date_time = Column(DateTime(timezone=True), nullable=False)  # when the call happened
    taken_by = Column(Text, nullable=False)
    returned = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    returned_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        Index("ix_voicemails_owner_active", "owner_id", "returned", "date_time"),
    )
