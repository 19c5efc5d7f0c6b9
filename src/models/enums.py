"""
Enumerations for the catalog and order models.

- ProductStatus: lifecycle of a product version
- OrderStatus: lifecycle of an order
- ProductChangeType: kind of change recorded in product history
"""

from enum import Enum


class ProductStatus(str, Enum):
    """
    Lifecycle status of a product version.

    Transitions only move forward: ACTIVE -> SUNSET -> DISCONTINUED.

    Values:
        ACTIVE: Current version, purchasable and editable
        SUNSET: Superseded or retired; kept for historical orders
        DISCONTINUED: Permanently withdrawn; kept for historical orders
    """

    ACTIVE = "active"
    SUNSET = "sunset"
    DISCONTINUED = "discontinued"

    @property
    def rank(self) -> int:
        """Position in the forward-only lifecycle."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    ProductStatus.ACTIVE: 0,
    ProductStatus.SUNSET: 1,
    ProductStatus.DISCONTINUED: 2,
}


class OrderStatus(str, Enum):
    """Order lifecycle status (checkout creates orders as PENDING)."""

    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class ProductChangeType(str, Enum):
    """
    Kind of change recorded in ProductHistory.

    Values:
        UPDATE: Product row mutated in place (no orders referenced it)
        VERSION: New version forked; old version sunset
    """

    UPDATE = "update"
    VERSION = "version"
