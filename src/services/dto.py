"""Data Transfer Objects for the service layer.

Result containers returned by catalog operations, plus pagination
parameters for list operations.
"""

from dataclasses import dataclass
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass
class PaginationParams:
    """Pagination parameters for list operations.

    Attributes:
        page: Page number (1-indexed, default 1)
        per_page: Items per page (default 50, max 1000)

    Examples:
        params = PaginationParams(page=2, per_page=25)
        result = catalog_service.list_products(pagination=params)

    Raises:
        ValueError: If page < 1, per_page < 1, or per_page > 1000
    """

    page: int = 1
    per_page: int = 50

    def __post_init__(self) -> None:
        """Validate pagination parameters."""
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.per_page < 1:
            raise ValueError("per_page must be >= 1")
        if self.per_page > 1000:
            raise ValueError("per_page must be <= 1000")

    def offset(self) -> int:
        """SQL OFFSET value: (page - 1) * per_page.

        Examples:
            >>> PaginationParams(page=3, per_page=25).offset()
            50
        """
        return (self.page - 1) * self.per_page


@dataclass
class PaginatedResult(Generic[T]):
    """Generic paginated result container.

    Attributes:
        items: List of items for this page
        total: Total number of items across all pages
        page: Current page number (1-indexed)
        per_page: Items per page
    """

    items: List[T]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        """Total number of pages (minimum 1, even for empty results)."""
        if self.total == 0:
            return 1
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_next(self) -> bool:
        """True if current page is not the last page."""
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        """True if current page is not the first page."""
        return self.page > 1


@dataclass
class UpdateResult:
    """Outcome of a product update.

    Attributes:
        versioned: True if a new version was forked instead of editing in place
        product: The product now carrying the changes (new version when forked)
        previous_product_id: The sunset version when forked, else None
        order_count: Orders referencing the original product
        message: Human-readable summary suitable for the admin UI
    """

    versioned: bool
    product: object
    previous_product_id: Optional[int] = None
    order_count: int = 0
    message: str = ""


@dataclass
class DiscontinueResult:
    """Outcome of discontinuing a product.

    Attributes:
        product_id: Product that was discontinued
        deleted: True if the product was physically removed (no orders used it)
        status: Final status value when kept ("discontinued"), None when deleted
    """

    product_id: int
    deleted: bool
    status: Optional[str] = None
