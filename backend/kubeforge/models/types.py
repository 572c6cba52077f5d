"""Custom SQLAlchemy types for cross-database compatibility."""
from sqlalchemy import String, TypeDecorator
from sqlalchemy.dialects.postgresql import UUID
import uuid


class GUID(TypeDecorator):
    """Platform-independent GUID type.

    Uses PostgreSQL's UUID type on Postgres, otherwise uses String(36).
    Values always come back as canonical strings so they compare equal to
    identifiers taken from URLs and cloud API responses.
    """
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(UUID(as_uuid=False))
        else:
            return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        try:
            return str(uuid.UUID(str(value)))
        except ValueError:
            # Never matches a stored row; lookups simply come back empty
            return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return str(value)


def new_uuid() -> str:
    return str(uuid.uuid4())
