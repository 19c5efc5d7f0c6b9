"""
Declarative base and shared columns for catalog models.

Every table gets an integer key, a UUID for external references and
created/updated timestamps. ``to_dict`` produces JSON-ready values so
product state can be written straight into history rows.
"""

import uuid as uuid_lib
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import declarative_base

from src.utils.datetime_utils import utc_now

Base = declarative_base()


class BaseModel(Base):
    """Abstract model with id, uuid, created_at and updated_at."""

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    # String rather than a UUID type so SQLite and PostgreSQL store it alike
    uuid = Column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid_lib.uuid4()), index=True
    )

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """
        Column values keyed by column name.

        Datetimes become ISO strings, Decimals keep their cents as strings
        ("19.90") and enums become their stored value.
        """
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Decimal):
                value = str(value)
            elif isinstance(value, Enum):
                value = value.value
            result[column.name] = value
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"
