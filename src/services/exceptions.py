"""Service layer exception classes for the storefront catalog.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application. Structural and referential
violations are raised before any write, with enough detail (which edge, which
constraint) for the caller to fix the request.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── StructuralViolationError
    │   ├── SelfReferenceError
    │   ├── CircularReferenceError
    │   ├── MaxDepthExceededError
    │   └── DuplicateEdgeError
    ├── SKUError
    │   ├── InvalidFieldLength
    │   ├── MalformedSKU
    │   ├── VersionOutOfRange
    │   └── VersionLimitReached
    ├── ReferentialViolationError
    │   ├── ProductNotFoundError
    │   ├── EdgeNotFoundError
    │   ├── ComponentInUseError
    │   └── ProductInOrdersError
    ├── ConcurrencyConflictError
    │   └── StaleVersionError
    ├── LifecycleError
    │   ├── InvalidStatusTransitionError
    │   └── VersioningNotRequiredError
    ├── CheckoutError
    │   ├── ProductUnavailableError
    │   └── InsufficientStockError
    ├── OrderNotFoundError
    ├── DatabaseError
    └── CatalogUnavailableError
"""

from typing import Iterable, List, Optional

from src.models.order import ImmutableRecordError  # noqa: F401  (re-exported)
from src.utils.constants import CHECKOUT_UNAVAILABLE_MESSAGE


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions inherit from this class.
    """

    pass


class ValidationError(ServiceError):
    """Raised when input data validation fails.

    Args:
        errors: List of error messages (a single string is accepted)

    Example:
        >>> raise ValidationError(["quantity must be at least 1"])
        ValidationError: Validation failed: quantity must be at least 1
    """

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(f"Validation failed: {'; '.join(self.errors)}")


# =============================================================================
# Structural violations (component graph)
# =============================================================================


class StructuralViolationError(ServiceError):
    """Base for component graph invariant violations.

    Attributes:
        parent_id: Parent side of the rejected edge
        component_id: Component side of the rejected edge
    """

    def __init__(self, parent_id: int, component_id: int, message: str):
        self.parent_id = parent_id
        self.component_id = component_id
        super().__init__(message)


class SelfReferenceError(StructuralViolationError):
    """Raised when a product would become its own component."""

    def __init__(self, product_id: int):
        super().__init__(
            product_id,
            product_id,
            f"Product {product_id} cannot be a component of itself",
        )


class CircularReferenceError(StructuralViolationError):
    """Raised when an edge would close a cycle in the component graph.

    Args:
        parent_id: Parent side of the rejected edge
        component_id: Component side of the rejected edge
        path: Existing path component -> ... -> parent that the edge would close
    """

    def __init__(self, parent_id: int, component_id: int, path: Optional[List[int]] = None):
        self.path = list(path or [])
        path_str = " -> ".join(str(p) for p in self.path) if self.path else f"{component_id} -> {parent_id}"
        super().__init__(
            parent_id,
            component_id,
            f"Adding component {component_id} to product {parent_id} would create a "
            f"circular reference ({path_str})",
        )


class MaxDepthExceededError(StructuralViolationError):
    """Raised when an edge would create a path longer than the depth bound.

    Args:
        parent_id: Parent side of the rejected edge
        component_id: Component side of the rejected edge
        depth: Length of the longest path the edge would create
        max_depth: Allowed maximum
    """

    def __init__(self, parent_id: int, component_id: int, depth: int, max_depth: int):
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            parent_id,
            component_id,
            f"Adding component {component_id} to product {parent_id} would create "
            f"nesting depth {depth} (maximum {max_depth})",
        )


class DuplicateEdgeError(StructuralViolationError):
    """Raised when the (parent, component) edge already exists."""

    def __init__(self, parent_id: int, component_id: int):
        super().__init__(
            parent_id,
            component_id,
            f"Product {component_id} is already a component of product {parent_id}",
        )


# =============================================================================
# SKU errors
# =============================================================================


class SKUError(ServiceError):
    """Base for SKU encode/decode failures."""

    pass


class InvalidFieldLength(SKUError):
    """Raised when an SKU field has the wrong width.

    Args:
        field: Field name (prefix, category, code)
        value: Offending value
        expected: Required width
    """

    def __init__(self, field: str, value: str, expected: int):
        self.field = field
        self.value = value
        self.expected = expected
        super().__init__(f"SKU {field} must be {expected} characters, got: '{value}'")


class MalformedSKU(SKUError):
    """Raised when a string does not match the SKU pattern."""

    def __init__(self, sku: str, reason: Optional[str] = None):
        self.sku = sku
        message = f"Invalid SKU format: '{sku}'. Expected format: XXX-XXXX-XXX-VNN"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class VersionOutOfRange(SKUError):
    """Raised when an SKU version is outside 1..99."""

    def __init__(self, version, minimum: int, maximum: int):
        self.version = version
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(f"SKU version must be between {minimum} and {maximum}, got: {version}")


class VersionLimitReached(SKUError):
    """Raised when incrementing an SKU already at the last version."""

    def __init__(self, sku: str, maximum: int):
        self.sku = sku
        self.maximum = maximum
        super().__init__(f"SKU '{sku}' is already at version {maximum}; cannot increment")


# =============================================================================
# Referential violations
# =============================================================================


class ReferentialViolationError(ServiceError):
    """Base for missing or still-referenced records."""

    pass


class ProductNotFoundError(ReferentialViolationError):
    """Raised when a product cannot be found by ID.

    Example:
        >>> raise ProductNotFoundError(123)
        ProductNotFoundError: Product with ID 123 not found
    """

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product with ID {product_id} not found")


class EdgeNotFoundError(ReferentialViolationError):
    """Raised when a (parent, component) edge does not exist."""

    def __init__(self, parent_id: int, component_id: int):
        self.parent_id = parent_id
        self.component_id = component_id
        super().__init__(f"Product {component_id} is not a component of product {parent_id}")


class ComponentInUseError(ReferentialViolationError):
    """Raised when deleting a product that is still a component of others.

    Args:
        product_id: Product being deleted
        parent_ids: Products that still reference it as a component
    """

    def __init__(self, product_id: int, parent_ids: Iterable[int]):
        self.product_id = product_id
        self.parent_ids = sorted(parent_ids)
        parents = ", ".join(str(p) for p in self.parent_ids)
        super().__init__(
            f"Cannot delete product {product_id}: it is a component of product(s) {parents}"
        )


class ProductInOrdersError(ReferentialViolationError):
    """Raised when hard-deleting a product that existing orders reference.

    Args:
        product_id: Product being deleted
        order_count: Number of orders referencing it
    """

    def __init__(self, product_id: int, order_count: int):
        self.product_id = product_id
        self.order_count = order_count
        super().__init__(
            f"Cannot delete product {product_id}: it is used in {order_count} order(s). "
            f"Use sunset instead."
        )


class OrderNotFoundError(ServiceError):
    """Raised when an order cannot be found by ID or number."""

    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"Order '{identifier}' not found")


# =============================================================================
# Concurrency and lifecycle
# =============================================================================


class ConcurrencyConflictError(ServiceError):
    """Base for optimistic concurrency failures; callers may retry."""

    pass


class StaleVersionError(ConcurrencyConflictError):
    """Raised when an update targets an outdated product version.

    Args:
        product_id: Product the caller tried to update
        expected_version: Version the caller last read (None if not supplied)
        current_version: Version currently stored
        replaced_by: Newer version ID, if the product was superseded
    """

    def __init__(
        self,
        product_id: int,
        expected_version: Optional[int],
        current_version: int,
        replaced_by: Optional[int] = None,
    ):
        self.product_id = product_id
        self.expected_version = expected_version
        self.current_version = current_version
        self.replaced_by = replaced_by
        if replaced_by is not None:
            message = (
                f"Product {product_id} has been superseded by product {replaced_by}; "
                f"reload and retry"
            )
        else:
            message = (
                f"Product {product_id} is at version {current_version}, "
                f"expected {expected_version}; reload and retry"
            )
        super().__init__(message)


class LifecycleError(ServiceError):
    """Base for product lifecycle rule violations."""

    pass


class InvalidStatusTransitionError(LifecycleError):
    """Raised when a status change would move backwards or stay in place."""

    def __init__(self, product_id: int, current_status, requested_status):
        self.product_id = product_id
        self.current_status = current_status
        self.requested_status = requested_status
        current = getattr(current_status, "value", current_status)
        requested = getattr(requested_status, "value", requested_status)
        super().__init__(
            f"Product {product_id} cannot move from '{current}' to '{requested}'"
        )


class VersioningNotRequiredError(LifecycleError):
    """Raised when an explicit fork is requested for a product no order uses."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(
            f"Product {product_id} has no orders. Modify it directly instead of versioning."
        )


# =============================================================================
# Checkout
# =============================================================================


class CheckoutError(ServiceError):
    """Base for checkout failures.

    The message is always generic; ``detail`` keeps the internal reason for
    logs and must not be shown to shoppers.
    """

    def __init__(self, product_id: Optional[int], detail: str):
        self.product_id = product_id
        self.detail = detail
        super().__init__(CHECKOUT_UNAVAILABLE_MESSAGE)


class ProductUnavailableError(CheckoutError):
    """Raised when a cart item is missing, sunset or not purchasable."""

    pass


class InsufficientStockError(CheckoutError):
    """Raised when tracked stock cannot cover the requested quantity."""

    def __init__(self, product_id: int, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            product_id,
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}",
        )


# =============================================================================
# Infrastructure
# =============================================================================


class DatabaseError(ServiceError):
    """Raised when a database operation fails for a non-retryable reason."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")


class CatalogUnavailableError(ServiceError):
    """Raised when a transaction keeps failing after all retries."""

    def __init__(self, attempts: int, original_error: Exception = None):
        self.attempts = attempts
        self.original_error = original_error
        super().__init__(f"Catalog unavailable after {attempts} attempt(s)")
