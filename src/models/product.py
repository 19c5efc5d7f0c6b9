"""
Product model for sellable catalog entries and components.

A product can be sold standalone, used as a component of another product,
or both. Each row is one *version* of a product: editing a product that is
referenced by an order forks a new row (version + 1) and sunsets the old one,
so the rows of a lineage share ``base_product_id`` (the V1 ancestor).

Example: "TPC-PUMP-A01-V02" is version 2 of the "TPC-PUMP-A01" pump; its
         ``base_product_id`` points at the V01 row.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import ProductStatus


class Product(BaseModel):
    """
    Product model representing one version of a catalog entry.

    Attributes:
        name: Display name
        description: Optional long description
        sku: Versioned SKU (e.g. TPC-PUMP-A01-V01), unique across all versions
        sku_prefix / sku_category / sku_product_code / sku_version: SKU parts
        base_price: Price when sold standalone
        component_price: Optional price used when sold as a sub-part
        can_be_component: May be attached under another product
        can_have_components: May have components attached under it
        stock_quantity: Units on hand; None means stock is not tracked
        is_available_for_purchase: False once sunset or discontinued
        version: Positive integer, increases by one per fork
        base_product_id: The V1 ancestor (None on V1 itself)
        previous_version_id: The version this one was forked from
        replaced_by: The version that superseded this one
        status: active / sunset / discontinued
    """

    __tablename__ = "products"

    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)

    # SKU (PREFIX-CATEGORY-CODE-VNN) and its parts
    sku = Column(String(16), nullable=False, unique=True, index=True)
    sku_prefix = Column(String(3), nullable=False)
    sku_category = Column(String(4), nullable=False)
    sku_product_code = Column(String(3), nullable=False)
    sku_version = Column(String(3), nullable=False)

    # Pricing
    base_price = Column(Numeric(10, 2), nullable=False)
    component_price = Column(Numeric(10, 2), nullable=True)

    # Graph roles
    can_be_component = Column(Boolean, nullable=False, default=True)
    can_have_components = Column(Boolean, nullable=False, default=True)

    # Inventory
    stock_quantity = Column(Integer, nullable=True)
    is_available_for_purchase = Column(Boolean, nullable=False, default=True)

    # Versioning
    version = Column(Integer, nullable=False, default=1)
    base_product_id = Column(
        Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    previous_version_id = Column(
        Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    replaced_by = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    # Lifecycle
    status = Column(SQLEnum(ProductStatus), nullable=False, default=ProductStatus.ACTIVE)
    sunset_date = Column(DateTime, nullable=True)
    discontinued_date = Column(DateTime, nullable=True)
    sunset_reason = Column(Text, nullable=True)

    # Outgoing edges (this product as parent); deleted with the product
    components = relationship(
        "ProductComponent",
        foreign_keys="ProductComponent.parent_product_id",
        back_populates="parent",
        cascade="all, delete-orphan",
        order_by="ProductComponent.sort_order",
    )

    # Incoming edges (this product as component); never cascaded
    used_in = relationship(
        "ProductComponent",
        foreign_keys="ProductComponent.component_product_id",
        back_populates="component",
        passive_deletes="all",
    )

    __table_args__ = (
        Index("idx_products_sku_parts", "sku_prefix", "sku_category", "sku_product_code"),
        Index("idx_products_status", "status"),
        CheckConstraint("version >= 1 AND version <= 99", name="ck_product_version_range"),
        CheckConstraint("base_price >= 0", name="ck_product_base_price_non_negative"),
        CheckConstraint(
            "component_price IS NULL OR component_price >= 0",
            name="ck_product_component_price_non_negative",
        ),
    )

    @property
    def lineage_id(self) -> int:
        """ID of the V1 ancestor (self for V1)."""
        return self.base_product_id if self.base_product_id is not None else self.id

    @property
    def is_active(self) -> bool:
        """True if this is the current, purchasable version."""
        return self.status == ProductStatus.ACTIVE

    def get_component_unit_price(self, price_override: Optional[Decimal] = None) -> Decimal:
        """
        Effective price of this product when used as a component.

        Resolution order: edge override, component price, base price.
        """
        if price_override is not None:
            return Decimal(price_override)
        if self.component_price is not None:
            return Decimal(self.component_price)
        return Decimal(self.base_price)

    def __repr__(self) -> str:
        return f"Product(id={self.id}, sku='{self.sku}', status={self.status})"
