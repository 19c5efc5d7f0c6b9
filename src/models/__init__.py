"""
Database models package.

This package contains all SQLAlchemy ORM models for the catalog core.
"""

from .base import Base, BaseModel
from .enums import OrderStatus, ProductChangeType, ProductStatus
from .product import Product
from .product_component import ProductComponent
from .product_history import ProductHistory
from .order import ImmutableRecordError, Order, OrderLineItem
from .order_product_usage import OrderProductUsage

__all__ = [
    "Base",
    "BaseModel",
    # Catalog
    "Product",
    "ProductComponent",
    "ProductHistory",
    # Orders
    "Order",
    "OrderLineItem",
    "OrderProductUsage",
    "ImmutableRecordError",
    # Enums
    "ProductStatus",
    "OrderStatus",
    "ProductChangeType",
]
