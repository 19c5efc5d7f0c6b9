"""
ProductHistory model - append-only log of product edits.

Every in-place update and every version fork writes one row holding the
before/after state of the product as JSON.
"""

import json

from sqlalchemy import Column, Enum as SQLEnum, ForeignKey, Index, Integer, Text

from .base import BaseModel
from .enums import ProductChangeType


class ProductHistory(BaseModel):
    """Immutable record of one change to a product."""

    __tablename__ = "product_history"

    # The product that was edited (or the old version, for forks)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # The version created by a fork (None for in-place updates)
    new_product_id = Column(
        Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    base_product_id = Column(Integer, nullable=True, index=True)

    change_type = Column(SQLEnum(ProductChangeType), nullable=False)
    change_description = Column(Text, nullable=True)

    # Denormalized JSON snapshots of the product row
    old_data = Column(Text, nullable=False)
    new_data = Column(Text, nullable=False)

    __table_args__ = (Index("idx_product_history_product", "product_id", "created_at"),)

    def get_old_data(self) -> dict:
        """Parse and return old_data JSON."""
        if not self.old_data:
            return {}
        return json.loads(self.old_data)

    def get_new_data(self) -> dict:
        """Parse and return new_data JSON."""
        if not self.new_data:
            return {}
        return json.loads(self.new_data)

    def __repr__(self) -> str:
        return (
            f"ProductHistory(id={self.id}, product_id={self.product_id}, "
            f"change_type={self.change_type})"
        )
