"""
OrderProductUsage model - reverse index of products referenced by orders.

One row per (line item, product) pair for the purchased product (depth 0)
and every component in its frozen tree (depth 1 and 2). Rows are written in
the same transaction as the line item, so "is this product used by any
order?" is a single indexed lookup that is consistent with checkout.
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, UniqueConstraint

from .base import BaseModel


class OrderProductUsage(BaseModel):
    """Index row: product ``product_id`` appears in ``order_line_item_id`` at ``depth``."""

    __tablename__ = "order_product_usage"

    order_line_item_id = Column(
        Integer, ForeignKey("order_line_items.id", ondelete="CASCADE"), nullable=False
    )
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, nullable=False)
    depth = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_order_product_usage_product", "product_id"),
        UniqueConstraint(
            "order_line_item_id", "product_id", "depth", name="uq_order_product_usage_entry"
        ),
        CheckConstraint("depth >= 0 AND depth <= 2", name="ck_order_product_usage_depth"),
    )

    def __repr__(self) -> str:
        return (
            f"OrderProductUsage(product_id={self.product_id}, "
            f"line_item={self.order_line_item_id}, depth={self.depth})"
        )
