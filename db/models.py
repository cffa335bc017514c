"""
Database models for deals, messages and the marketplace entities they reference
"""
from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime, Boolean, Index, Numeric, text
from sqlalchemy.sql import func
from db import Base

# BIGINT автоинкремент в SQLite работает только как INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    """Public profile of a marketplace user (owned by the auth platform, read-only here)"""

    __tablename__ = "profiles"

    id = Column(String(255), primary_key=True, default=_uuid_str, comment="User ID issued by the auth platform")
    full_name = Column(String(255), nullable=True, comment="Display name")
    username = Column(String(100), nullable=True, unique=True, index=True, comment="Unique handle")
    avatar_url = Column(Text, nullable=True, comment="Avatar URL in file storage")
    company_name = Column(String(255), nullable=True, comment="Company name (optional)")
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Profile(id={self.id}, username={self.username})>"


class Gig(Base):
    """Service offered by a user"""

    __tablename__ = "gigs"

    id = Column(String(255), primary_key=True, default=_uuid_str, comment="Gig ID")
    user_id = Column(String(255), nullable=False, index=True, comment="Owner profile ID")
    title = Column(String(255), nullable=False, comment="Gig title")
    description = Column(Text, nullable=True, comment="Gig description")
    category = Column(String(100), nullable=True, index=True, comment="Category slug")
    price = Column(Numeric(12, 2), nullable=True, comment="Asking price")
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Gig(id={self.id}, title={self.title[:50] if self.title else None}, user_id={self.user_id})>"


class Demand(Base):
    """Service wanted by a user"""

    __tablename__ = "demands"

    id = Column(String(255), primary_key=True, default=_uuid_str, comment="Demand ID")
    user_id = Column(String(255), nullable=False, index=True, comment="Owner profile ID")
    title = Column(String(255), nullable=False, comment="Demand title")
    description = Column(Text, nullable=True, comment="Demand description")
    category = Column(String(100), nullable=True, index=True, comment="Category slug")
    budget = Column(Numeric(12, 2), nullable=True, comment="Available budget")
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Demand(id={self.id}, title={self.title[:50] if self.title else None}, user_id={self.user_id})>"


class Deal(Base):
    """Negotiation between two users over a gig and a demand"""

    __tablename__ = "deals"

    # Primary key - autoincrement bigint
    pk = Column(BigIntPK, primary_key=True, autoincrement=True, comment="Autoincrement primary key")

    # Base58 UUID identifier (unique, indexed)
    uid = Column(String(255), unique=True, nullable=False, index=True, comment="Base58 UUID identifier (primary identifier)")

    initiator_id = Column(String(255), nullable=False, index=True, comment="Profile ID of the user who proposed the deal")
    recipient_id = Column(String(255), nullable=False, index=True, comment="Profile ID of the owner of the target item")

    initiator_item_type = Column(String(20), nullable=False, comment="gig or demand")
    initiator_item_id = Column(String(255), nullable=False, comment="Item offered by the initiator")
    recipient_item_type = Column(String(20), nullable=False, comment="gig or demand")
    recipient_item_id = Column(String(255), nullable=False, comment="Target item of the recipient")

    # pending -> active -> completed, pending -> rejected
    status = Column(String(20), nullable=False, default="pending", server_default="pending", index=True, comment="Deal status")

    message = Column(Text, nullable=True, comment="Note attached by the initiator at creation")

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, comment="Creation timestamp (UTC)")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False, comment="Last update timestamp (UTC)")

    __table_args__ = (
        # Не больше одной открытой сделки на одну и ту же пару позиций
        Index(
            "uq_deals_open_pair",
            "initiator_id", "recipient_id", "initiator_item_id", "recipient_item_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'active')"),
            sqlite_where=text("status IN ('pending', 'active')"),
        ),
        Index("ix_deals_initiator_created", "initiator_id", "created_at"),
        Index("ix_deals_recipient_created", "recipient_id", "created_at"),
    )

    def __repr__(self):
        return f"<Deal(pk={self.pk}, uid={self.uid}, status={self.status})>"


class Message(Base):
    """Direct message between two users"""

    __tablename__ = "messages"

    # Монотонный ключ, также разрешает равенство created_at
    pk = Column(BigIntPK, primary_key=True, autoincrement=True, comment="Autoincrement primary key")

    uid = Column(String(64), unique=True, nullable=False, index=True, default=_uuid_str, comment="Public UUID4 identifier")

    sender_id = Column(String(255), nullable=False, index=True, comment="Sender profile ID")
    recipient_id = Column(String(255), nullable=False, index=True, comment="Recipient profile ID")
    content = Column(Text, nullable=False, comment="Message body")

    is_read = Column(Boolean, default=False, server_default=text("false"), nullable=False, comment="Read by the recipient")
    read_at = Column(DateTime(timezone=True), nullable=True, comment="When the recipient first read the message")

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True, comment="Creation timestamp (UTC)")

    __table_args__ = (
        Index("ix_messages_pair_created", "sender_id", "recipient_id", "created_at"),
        Index("ix_messages_recipient_unread", "recipient_id", "is_read"),
    )

    def __repr__(self):
        return f"<Message(pk={self.pk}, uid={self.uid}, from={self.sender_id}, to={self.recipient_id})>"
