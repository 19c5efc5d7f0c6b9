"""
Order and OrderLineItem models.

An order line item is an immutable record created at checkout. Product
identity, pricing and the full component tree are *copied by value* into the
row, so later catalog edits (price changes, new versions, deletions) never
alter historical orders.

Key Features:
- product_id is a plain reporting reference, not an enforced foreign key
- component_tree holds the frozen tree as canonical JSON text
- snapshot_schema_version tags the tree layout
- ORM updates to a line item are rejected
"""

import json

from sqlalchemy import (
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    event,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import OrderStatus


class ImmutableRecordError(Exception):
    """Raised when code attempts to modify a frozen order line item."""

    def __init__(self, line_item_id):
        self.line_item_id = line_item_id
        super().__init__(f"Order line item {line_item_id} is immutable")


class Order(BaseModel):
    """
    Customer order header.

    Attributes:
        order_number: Public identifier (e.g. TPC-LX3K9Q-7FJ2KA)
        status: Order lifecycle status
        customer_email: Optional contact email
        notes: Optional free-form notes
        subtotal: Sum of line totals
        item_count: Sum of line quantities
    """

    __tablename__ = "orders"

    order_number = Column(String(40), nullable=False, unique=True, index=True)
    status = Column(SQLEnum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    customer_email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    item_count = Column(Integer, nullable=False, default=0)

    line_items = relationship(
        "OrderLineItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineItem.id",
    )

    def __repr__(self) -> str:
        return f"Order(id={self.id}, order_number='{self.order_number}')"


class OrderLineItem(BaseModel):
    """
    Frozen snapshot of one purchased product.

    Attributes:
        order_id: Owning order
        product_id: Purchased product version (reporting only, not enforced)
        product_sku / product_name / product_version / product_category: copied
        quantity: Units purchased
        base_price: Product base price at checkout
        included_components_total: Roll-up of included components
        optional_components_total: Roll-up of optional components
        unit_price: base_price + included + optional
        line_total: quantity * unit_price
        component_tree: Canonical JSON of the frozen component tree
        snapshot_schema_version: Layout version of component_tree
    """

    __tablename__ = "order_line_items"

    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Product identity (copied, no live FK)
    product_id = Column(Integer, nullable=False, index=True)
    product_sku = Column(String(16), nullable=False)
    product_name = Column(String(200), nullable=False)
    product_version = Column(Integer, nullable=False)
    product_category = Column(String(4), nullable=False)

    # Pricing breakdown
    quantity = Column(Integer, nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False)
    included_components_total = Column(Numeric(12, 2), nullable=False, default=0)
    optional_components_total = Column(Numeric(12, 2), nullable=False, default=0)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)

    # Frozen tree
    component_tree = Column(Text, nullable=False, default="[]")
    snapshot_schema_version = Column(Integer, nullable=False, default=1)

    order = relationship("Order", back_populates="line_items")

    __table_args__ = (Index("idx_order_line_items_product", "product_id"),)

    def get_component_tree(self) -> list:
        """Parse and return the frozen component tree."""
        if not self.component_tree:
            return []
        return json.loads(self.component_tree)

    def __repr__(self) -> str:
        return (
            f"OrderLineItem(id={self.id}, order_id={self.order_id}, "
            f"sku='{self.product_sku}', qty={self.quantity})"
        )


@event.listens_for(OrderLineItem, "before_update")
def _reject_line_item_update(mapper, connection, target):
    """Line items are written once at checkout and never rewritten."""
    raise ImmutableRecordError(target.id)
