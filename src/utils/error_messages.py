"""Centralized mapping of service exceptions to user-facing messages.

Used by the command line interface and by any admin or checkout front end.
Catalog edit conflicts get actionable messages naming the product and the
constraint; checkout failures stay generic so shoppers never see internal
graph structure. Technical details go to the log.
"""

import logging
from typing import Tuple

from src.services.exceptions import (
    CatalogUnavailableError,
    CheckoutError,
    CircularReferenceError,
    ComponentInUseError,
    DatabaseError,
    DuplicateEdgeError,
    EdgeNotFoundError,
    InvalidStatusTransitionError,
    MaxDepthExceededError,
    OrderNotFoundError,
    ProductInOrdersError,
    ProductNotFoundError,
    SelfReferenceError,
    ServiceError,
    SKUError,
    StaleVersionError,
    ValidationError,
    VersionLimitReached,
    VersioningNotRequiredError,
)
from src.utils.constants import CHECKOUT_UNAVAILABLE_MESSAGE

logger = logging.getLogger(__name__)


def handle_error(exception: Exception, operation: str = "Operation") -> Tuple[str, str]:
    """Log an exception and return its user-facing (title, message).

    Example:
        try:
            catalog_service.add_component(parent_id, component_id)
        except ServiceError as e:
            title, message = handle_error(e, operation="Add component")
    """
    title, message = get_user_message(exception, operation)
    _log_error(exception, operation)
    return title, message


def get_user_message(exception: Exception, operation: str = "Operation") -> Tuple[str, str]:
    """Convert exception to user-friendly title and message.

    Args:
        exception: The exception to convert
        operation: Description of what was being attempted

    Returns:
        Tuple of (title, message) suitable for user display
    """
    # === Checkout (always generic) ===
    if isinstance(exception, CheckoutError):
        return "Checkout Failed", CHECKOUT_UNAVAILABLE_MESSAGE

    # === Not Found ===
    if isinstance(exception, ProductNotFoundError):
        return "Not Found", f"Product {exception.product_id} not found."

    if isinstance(exception, EdgeNotFoundError):
        return "Not Found", (
            f"Product {exception.component_id} is not a component of product {exception.parent_id}."
        )

    if isinstance(exception, OrderNotFoundError):
        return "Not Found", f"Order '{exception.identifier}' not found."

    # === Structural violations ===
    if isinstance(exception, SelfReferenceError):
        return "Invalid Component", "A product cannot be a component of itself."

    if isinstance(exception, CircularReferenceError):
        return "Invalid Component", (
            f"Adding product {exception.component_id} to product {exception.parent_id} "
            f"would create a circular reference."
        )

    if isinstance(exception, MaxDepthExceededError):
        return "Invalid Component", (
            f"Adding product {exception.component_id} to product {exception.parent_id} would nest "
            f"components {exception.depth} levels deep; the maximum is {exception.max_depth}."
        )

    if isinstance(exception, DuplicateEdgeError):
        return "Duplicate", (
            f"Product {exception.component_id} is already a component of product {exception.parent_id}."
        )

    # === SKU ===
    if isinstance(exception, VersionLimitReached):
        return "Version Limit", (
            f"{exception.sku} is at the last version ({exception.maximum}); create a new product instead."
        )

    if isinstance(exception, SKUError):
        return "Invalid SKU", str(exception)

    # === Conflicts ===
    if isinstance(exception, ComponentInUseError):
        parents = ", ".join(str(p) for p in exception.parent_ids)
        return "Cannot Delete", (
            f"This product is a component of product(s) {parents}. Remove it from them first."
        )

    if isinstance(exception, ProductInOrdersError):
        return "Cannot Delete", (
            f"This product is used in {exception.order_count} order(s). Sunset it instead."
        )

    if isinstance(exception, StaleVersionError):
        if exception.replaced_by is not None:
            return "Out of Date", (
                f"This product was replaced by product {exception.replaced_by}. "
                f"Reload and edit the current version."
            )
        return "Out of Date", "This product changed since you loaded it. Reload and try again."

    if isinstance(exception, VersioningNotRequiredError):
        return "Not Needed", "This product is not used by any order. Edit it directly instead."

    if isinstance(exception, InvalidStatusTransitionError):
        return "Invalid Operation", str(exception)

    # Generic validation - check AFTER more specific subtypes
    if isinstance(exception, ValidationError):
        return "Validation Error", f"Validation failed: {'; '.join(exception.errors)}"

    # === Infrastructure ===
    if isinstance(exception, CatalogUnavailableError):
        return "Unavailable", "The catalog is temporarily unavailable. Please try again."

    if isinstance(exception, DatabaseError):
        return "Database Error", "A database error occurred. Please try again."

    if isinstance(exception, ServiceError):
        return "Error", f"{operation} failed: {exception}"

    return "Unexpected Error", "An unexpected error occurred. Please contact support."


def _log_error(exception: Exception, operation: str) -> None:
    """Log technical error details; full stack trace for unexpected exceptions."""
    if isinstance(exception, CheckoutError):
        logger.warning(f"{operation} failed: {exception.__class__.__name__}: {exception.detail}")
    elif isinstance(exception, ServiceError):
        logger.error(
            f"{operation} failed: {exception.__class__.__name__}: {exception}",
            extra={"error_data": {"operation": operation, "exception_type": exception.__class__.__name__}},
        )
    else:
        logger.exception(f"{operation} failed with unexpected error: {exception.__class__.__name__}")
