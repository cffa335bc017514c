"""
Utility functions for identifiers and timestamps
"""
from datetime import datetime, timezone
from typing import Optional
import uuid
import base58


def generate_base58_uuid() -> str:
    """
    Generate a base58-encoded UUID v4

    Returns:
        Base58-encoded UUID string
    """
    # Generate UUID v4
    uuid_obj = uuid.uuid4()

    # Convert to bytes (16 bytes for UUID)
    uuid_bytes = uuid_obj.bytes

    # Encode to base58
    base58_encoded = base58.b58encode(uuid_bytes).decode('utf-8')

    return base58_encoded


def generate_temp_id() -> str:
    """Temporary client-side id for a message that is not persisted yet"""
    return f"temp-{uuid.uuid4()}"


def is_temp_id(value: str) -> bool:
    return value.startswith("temp-")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a timestamp to an aware UTC datetime

    SQLite returns naive datetimes for ``DateTime(timezone=True)`` columns,
    PostgreSQL returns aware ones; naive values are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
