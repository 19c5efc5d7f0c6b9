"""
ProductComponent edge model for the self-referential product graph.

Each row is a directed edge parent -> component between two products, with
the quantity and pricing configuration used when the component is part of
that parent. The edge list (rather than nested object references) keeps the
cycle and depth checks plain graph queries.

Key Features:
- Unique (parent, component) pair
- No self-references
- Cascade on parent delete, restrict on component delete
- Sort ordering for consistent tree presentation
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class ProductComponent(BaseModel):
    """
    Directed edge from a parent product to one of its components.

    Attributes:
        parent_product_id: Product that contains the component
        component_product_id: Product used as the component
        quantity: Units of the component per parent unit
        is_required: Component cannot be removed by the buyer
        is_included: Component is part of the package (vs. an optional add-on)
        price_override: Price for this component in this parent only
        display_name: Name shown in trees instead of the component's own name
        sort_order: Display order (lower = earlier)
        notes: Free-form admin notes
    """

    __tablename__ = "product_components"

    parent_product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    component_product_id = Column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    quantity = Column(Integer, nullable=False, default=1)
    is_required = Column(Boolean, nullable=False, default=True)
    is_included = Column(Boolean, nullable=False, default=True)
    price_override = Column(Numeric(10, 2), nullable=True)
    display_name = Column(String(200), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    parent = relationship(
        "Product", foreign_keys=[parent_product_id], back_populates="components"
    )
    component = relationship(
        "Product", foreign_keys=[component_product_id], back_populates="used_in", lazy="joined"
    )

    __table_args__ = (
        Index("idx_product_components_sort", "parent_product_id", "sort_order"),
        UniqueConstraint(
            "parent_product_id", "component_product_id", name="uq_product_component_pair"
        ),
        CheckConstraint(
            "parent_product_id != component_product_id", name="ck_product_component_no_self_reference"
        ),
        CheckConstraint("quantity >= 1", name="ck_product_component_quantity_positive"),
        CheckConstraint("sort_order >= 0", name="ck_product_component_sort_order_non_negative"),
        CheckConstraint(
            "price_override IS NULL OR price_override >= 0",
            name="ck_product_component_price_override_non_negative",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"ProductComponent(id={self.id}, parent={self.parent_product_id}, "
            f"component={self.component_product_id}, qty={self.quantity})"
        )
