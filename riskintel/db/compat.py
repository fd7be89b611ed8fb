"""
Database compatibility layer.

Provides types that work on both SQLite (dev/test) and PostgreSQL (prod):
- GUID: UUID on PostgreSQL, CHAR(36) on SQLite
- JSONType: JSONB on PostgreSQL, JSON on SQLite

DateTime columns are stored as naive UTC; use ``utcnow()`` for writes.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, String, TypeDecorator
from sqlalchemy.dialects import postgresql


def utcnow() -> datetime:
    """Naive UTC timestamp (the storage convention for every DateTime column)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise CHAR(36).
    """

    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return str(value) if not isinstance(value, uuid.UUID) else value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            return uuid.UUID(str(value))
        return value


class JSONType(TypeDecorator):
    """Platform-independent JSON type.

    Uses JSONB on PostgreSQL, JSON on SQLite.
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB)
        return dialect.type_descriptor(JSON)
