"""Base model and portable column types shared by all entities."""
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator

from invoicing.database import Base as DeclarativeBase
from invoicing.utils.clock import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class DecimalString(TypeDecorator):
    """
    Fixed-point decimal persisted as a string.

    Values are written with ``format(value, "f")`` so a quantized
    ``Decimal("275.00")`` is stored as ``"275.00"`` and read back unchanged.
    """

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return format(value, "f")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    """Base model class with common fields."""

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(Uuid, nullable=False, unique=True, default=uuid4, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
