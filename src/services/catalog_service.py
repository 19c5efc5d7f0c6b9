"""
Catalog Service - the public entry point for admin edits and checkout.

Orchestrates the SKU codec, component graph, version policy, snapshot
builder and order usage index. Every write runs in one transaction through
``database.run_in_transaction`` so infrastructure failures (lost
connections, deadlocks, serialization failures) are retried a bounded number
of times before CatalogUnavailableError is raised. Validation, structural
and referential errors are raised before any write and never retried.

Isolation:
- graph edits and product updates run at SERIALIZABLE
- checkout (snapshot + order insert + usage index + stock decrement) runs at
  REPEATABLE READ so the snapshot reflects a single catalog state

Session Management Pattern:
- All public functions accept session=None parameter
- If session provided, use it directly (caller owns the transaction)
- If session is None, the function runs in its own transaction
"""

import logging
import secrets
import string
import time
from collections import OrderedDict
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from src.models import Order, OrderStatus, Product, ProductComponent, ProductStatus
from src.services import (
    component_graph_service,
    order_usage_service,
    sku_codec,
    snapshot_service,
    version_service,
)
from src.services.database import REPEATABLE_READ, SERIALIZABLE, run_in_transaction, session_scope
from src.services.dto import DiscontinueResult, PaginatedResult, PaginationParams, UpdateResult
from src.services.exceptions import (
    InsufficientStockError,
    OrderNotFoundError,
    ProductInOrdersError,
    ProductNotFoundError,
    ProductUnavailableError,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.config import get_config
from src.utils.constants import MUTABLE_PRODUCT_FIELDS, ORDER_NUMBER_PREFIX, SKU_MIN_VERSION
from src.utils.validators import parse_money, validate_product_data

logger = get_service_logger(__name__)

_BASE36_DIGITS = string.digits + string.ascii_uppercase
ORDER_NUMBER_RANDOM_LENGTH = 6


def _run(work, session: Optional[Session], operation: str, isolation_level: Optional[str] = None):
    """Join the caller's session, or run ``work`` in its own retried transaction."""
    if session is not None:
        return work(session)
    return run_in_transaction(work, isolation_level=isolation_level, operation=operation)


# =============================================================================
# Products
# =============================================================================


def create_product(data: dict, session: Session = None) -> Product:
    """
    Create version 1 of a new product.

    Args:
        data: Dictionary with product fields:
            - name (required)
            - base_price (required)
            - sku_category + sku_product_code (required unless sku given)
            - sku_prefix (optional, defaults to the configured prefix)
            - sku (optional, full V01 SKU instead of the parts)
            - component_price, description, can_be_component,
              can_have_components, stock_quantity,
              is_available_for_purchase (optional)
        session: Optional session for transaction sharing

    Returns:
        The created Product

    Raises:
        ValidationError: Missing/invalid fields or SKU already in use
        SKUError: SKU fields have the wrong width or characters
    """
    return _run(lambda s: _create_product_impl(data, s), session, "create_product")


def _create_product_impl(data: dict, session: Session) -> Product:
    """Internal implementation of create_product."""
    is_valid, errors = validate_product_data(data)
    if not is_valid:
        raise ValidationError(errors)

    if data.get("sku"):
        sku = data["sku"]
    else:
        prefix = data.get("sku_prefix") or get_config().sku_prefix
        sku = sku_codec.encode(
            prefix, data.get("sku_category"), data.get("sku_product_code"), SKU_MIN_VERSION
        )
    parts = sku_codec.decode(sku)
    if parts.version != SKU_MIN_VERSION:
        raise ValidationError(f"New products start at V01, got SKU {sku}")

    existing = (
        session.query(Product)
        .filter(
            Product.sku_prefix == parts.prefix,
            Product.sku_category == parts.category,
            Product.sku_product_code == parts.code,
        )
        .first()
    )
    if existing is not None:
        raise ValidationError(
            f"SKU {sku_codec.get_base_sku(sku)} is already used by product {existing.id} ({existing.sku})"
        )

    fields = {key: data[key] for key in MUTABLE_PRODUCT_FIELDS if key in data}
    fields["name"] = data["name"].strip()
    fields["base_price"] = parse_money(data["base_price"])
    if fields.get("component_price") is not None:
        fields["component_price"] = parse_money(fields["component_price"])

    product = Product(
        sku=sku,
        sku_prefix=parts.prefix,
        sku_category=parts.category,
        sku_product_code=parts.code,
        sku_version=sku_codec.format_version(parts.version),
        version=parts.version,
        status=ProductStatus.ACTIVE,
        **fields,
    )
    session.add(product)
    session.flush()

    log_operation(logger, "create_product", "success", product_id=product.id, sku=product.sku)
    return product


def get_product(product_id: int, session: Session = None) -> Product:
    """
    Retrieve a product by ID.

    Raises:
        ProductNotFoundError: If product doesn't exist
    """
    if session is not None:
        return _get_product_impl(product_id, session)

    with session_scope() as session:
        return _get_product_impl(product_id, session)


def _get_product_impl(product_id: int, session: Session) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def get_product_by_sku(sku: str, session: Session = None) -> Optional[Product]:
    """Product carrying exactly ``sku``, or None."""
    if session is not None:
        return session.query(Product).filter(Product.sku == sku).first()

    with session_scope() as session:
        return session.query(Product).filter(Product.sku == sku).first()


def list_products(
    status: Optional[ProductStatus] = None,
    pagination: Optional[PaginationParams] = None,
    session: Session = None,
) -> PaginatedResult[Product]:
    """
    List products ordered by SKU.

    Args:
        status: Only products in this status (all statuses when None)
        pagination: Page and page size (first 50 when None)
    """
    if pagination is None:
        pagination = PaginationParams()

    if session is not None:
        return _list_products_impl(status, pagination, session)

    with session_scope() as session:
        return _list_products_impl(status, pagination, session)


def _list_products_impl(
    status: Optional[ProductStatus], pagination: PaginationParams, session: Session
) -> PaginatedResult[Product]:
    query = session.query(Product)
    if status is not None:
        query = query.filter(Product.status == ProductStatus(status))

    total = query.count()
    items = query.order_by(Product.sku).offset(pagination.offset()).limit(pagination.per_page).all()
    return PaginatedResult(items=items, total=total, page=pagination.page, per_page=pagination.per_page)


def update_product(
    product_id: int,
    changes: dict,
    expected_version: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Session = None,
) -> UpdateResult:
    """
    Update a product, forking a new version when orders already reference it.

    Returns:
        UpdateResult with ``versioned`` and an admin-facing ``message``
    """
    return _run(
        lambda s: version_service.apply_update(
            product_id, changes, expected_version, change_description, session=s
        ),
        session,
        "update_product",
        SERIALIZABLE,
    )


def create_version(
    product_id: int,
    changes: Optional[dict] = None,
    change_description: Optional[str] = None,
    session: Session = None,
) -> Product:
    """Explicitly fork a new version of a product that orders reference."""
    return _run(
        lambda s: version_service.create_version(product_id, changes, change_description, session=s),
        session,
        "create_version",
        SERIALIZABLE,
    )


def delete_product(product_id: int, session: Session = None) -> None:
    """
    Hard-delete a product.

    Raises:
        ProductNotFoundError: No such product
        ProductInOrdersError: Orders reference it (sunset it instead)
        ComponentInUseError: It is still another product's component
    """
    return _run(lambda s: _delete_product_impl(product_id, s), session, "delete_product", SERIALIZABLE)


def _delete_product_impl(product_id: int, session: Session) -> None:
    order_count = order_usage_service.count_orders_using_product(product_id, session=session)
    if order_count:
        log_operation(
            logger,
            "delete_product",
            "product_in_orders",
            level=logging.WARNING,
            product_id=product_id,
            order_count=order_count,
        )
        raise ProductInOrdersError(product_id, order_count)
    component_graph_service.delete_product(product_id, session=session)


def sunset_product(
    product_id: int,
    reason: str,
    replacement_product_id: Optional[int] = None,
    session: Session = None,
) -> Product:
    """Retire a product from sale, optionally naming its replacement."""
    return _run(
        lambda s: version_service.sunset_product(product_id, reason, replacement_product_id, session=s),
        session,
        "sunset_product",
    )


def discontinue_product(product_id: int, reason: str, session: Session = None) -> DiscontinueResult:
    """Withdraw a product; deleted when unused, kept as discontinued otherwise."""
    return _run(
        lambda s: version_service.discontinue(product_id, reason, session=s),
        session,
        "discontinue_product",
        SERIALIZABLE,
    )


def get_product_versions(product_id: int, session: Session = None) -> List[Product]:
    return version_service.get_product_versions(product_id, session=session)


def get_product_history(product_id: int, session: Session = None):
    return version_service.get_product_history(product_id, session=session)


# =============================================================================
# Components
# =============================================================================


def add_component(parent_id: int, component_id: int, session: Session = None, **config) -> ProductComponent:
    """
    Attach a component to a product.

    ``config`` accepts quantity, is_required, is_included, price_override,
    display_name, sort_order and notes.
    """
    return _run(
        lambda s: component_graph_service.add_edge(parent_id, component_id, session=s, **config),
        session,
        "add_component",
        SERIALIZABLE,
    )


def remove_component(parent_id: int, component_id: int, session: Session = None) -> bool:
    """Detach a component; returns False when no such edge existed."""
    return _run(
        lambda s: component_graph_service.remove_edge(parent_id, component_id, session=s),
        session,
        "remove_component",
        SERIALIZABLE,
    )


def update_component(parent_id: int, component_id: int, session: Session = None, **updates) -> ProductComponent:
    """Edit quantity, flags, override, display name, sort order or notes of an edge."""
    return _run(
        lambda s: component_graph_service.update_edge(parent_id, component_id, session=s, **updates),
        session,
        "update_component",
    )


def get_product_tree(product_id: int, session: Session = None) -> dict:
    """Live component tree with pricing, for admin preview (not frozen)."""
    return snapshot_service.build_product_tree(product_id, session=session)


def audit_graph(session: Session = None) -> List[dict]:
    return component_graph_service.audit_graph(session=session)


def rebuild_usage_index(session: Session = None) -> int:
    return _run(order_usage_service.rebuild_usage_index, session, "rebuild_usage_index")


# =============================================================================
# Orders
# =============================================================================


def generate_order_number(now: Optional[float] = None) -> str:
    """
    Public order number: PREFIX-<base36 milliseconds>-<6 random chars>.

    Example: TPC-LX3K9QAB-7FJ2KA
    """
    if now is None:
        now = time.time()
    millis = int(now * 1000)
    encoded = ""
    while millis:
        millis, remainder = divmod(millis, 36)
        encoded = _BASE36_DIGITS[remainder] + encoded
    suffix = "".join(secrets.choice(_BASE36_DIGITS) for _ in range(ORDER_NUMBER_RANDOM_LENGTH))
    return f"{ORDER_NUMBER_PREFIX}-{encoded or '0'}-{suffix}"


def _normalize_items(items: Iterable) -> "OrderedDict[int, int]":
    """
    Merge cart items into product_id -> total quantity, keeping first-seen order.

    Items may be dicts with product_id and quantity, or (product_id, quantity) pairs.
    """
    merged: "OrderedDict[int, int]" = OrderedDict()
    errors = []
    for index, item in enumerate(items or []):
        if isinstance(item, dict):
            product_id, quantity = item.get("product_id"), item.get("quantity", 1)
        else:
            product_id, quantity = item
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            errors.append(f"Item {index + 1}: product_id must be an integer")
            continue
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            errors.append(f"Item {index + 1}: quantity must be a whole number of at least 1")
            continue
        merged[product_id] = merged.get(product_id, 0) + quantity

    if errors:
        raise ValidationError(errors)
    if not merged:
        raise ValidationError("An order needs at least one item")
    return merged


def _check_purchasable(product: Optional[Product], product_id: int, quantity: int) -> None:
    if product is None:
        raise ProductUnavailableError(product_id, f"Product {product_id} not found")
    if product.status != ProductStatus.ACTIVE or not product.is_available_for_purchase:
        raise ProductUnavailableError(
            product_id, f"Product {product.sku} is {product.status.value} and not purchasable"
        )
    if product.stock_quantity is not None and product.stock_quantity < quantity:
        raise InsufficientStockError(product_id, quantity, product.stock_quantity)


def validate_products_available(items: Iterable, session: Session = None) -> List[int]:
    """
    Check a cart without placing an order.

    Returns:
        IDs of products that are missing, not purchasable or short of stock
        (empty when the whole cart can be ordered)
    """
    merged = _normalize_items(items)

    def _check(session: Session) -> List[int]:
        unavailable = []
        for product_id, quantity in merged.items():
            try:
                _check_purchasable(session.get(Product, product_id), product_id, quantity)
            except (ProductUnavailableError, InsufficientStockError):
                unavailable.append(product_id)
        return unavailable

    if session is not None:
        return _check(session)

    with session_scope() as session:
        return _check(session)


def create_order(
    items: Iterable,
    customer_email: Optional[str] = None,
    notes: Optional[str] = None,
    session: Session = None,
) -> Order:
    """
    Place an order, freezing a snapshot of every purchased product.

    Availability checks, snapshots, the order and its line items, the usage
    index rows and stock decrements are one REPEATABLE READ transaction; any
    failure aborts the whole order.

    Args:
        items: [{"product_id": int, "quantity": int}, ...] (duplicates merged)
        customer_email: Optional contact email
        notes: Optional order notes
        session: Optional session for transaction sharing

    Returns:
        The Order with its line items loaded

    Raises:
        ValidationError: Empty cart or bad quantities
        ProductUnavailableError / InsufficientStockError: Item cannot be sold
    """
    merged = _normalize_items(items)
    return _run(
        lambda s: _create_order_impl(merged, customer_email, notes, s),
        session,
        "create_order",
        REPEATABLE_READ,
    )


def _create_order_impl(
    merged: "OrderedDict[int, int]",
    customer_email: Optional[str],
    notes: Optional[str],
    session: Session,
) -> Order:
    """Internal implementation of create_order."""
    products = {}
    for product_id, quantity in merged.items():
        product = session.query(Product).filter(Product.id == product_id).with_for_update().first()
        try:
            _check_purchasable(product, product_id, quantity)
        except (ProductUnavailableError, InsufficientStockError) as e:
            log_operation(
                logger,
                "create_order",
                "item_unavailable",
                level=logging.WARNING,
                product_id=product_id,
                detail=e.detail,
            )
            raise
        products[product_id] = product

    snapshots = [
        snapshot_service.build_snapshot(product_id, quantity, session=session)
        for product_id, quantity in merged.items()
    ]
    subtotal, item_count = snapshot_service.calculate_order_totals(snapshots)

    order = Order(
        order_number=generate_order_number(),
        status=OrderStatus.PENDING,
        customer_email=customer_email,
        notes=notes,
        subtotal=subtotal,
        item_count=item_count,
    )
    session.add(order)
    for snapshot in snapshots:
        order.line_items.append(snapshot.to_line_item())
    session.flush()

    for line_item in order.line_items:
        order_usage_service.record_line_item_usage(line_item, session)

    for product_id, quantity in merged.items():
        product = products[product_id]
        if product.stock_quantity is not None:
            product.stock_quantity -= quantity
    session.flush()

    log_operation(
        logger,
        "create_order",
        "success",
        order_number=order.order_number,
        lines=len(order.line_items),
        subtotal=subtotal,
    )
    return order


def get_order(order_id: int, session: Session = None) -> Order:
    """
    Retrieve an order with its line items.

    Raises:
        OrderNotFoundError: If order doesn't exist
    """
    if session is not None:
        return _get_order_impl(Order.id == order_id, order_id, session)

    with session_scope() as session:
        return _get_order_impl(Order.id == order_id, order_id, session)


def get_order_by_number(order_number: str, session: Session = None) -> Order:
    """Retrieve an order by its public number."""
    if session is not None:
        return _get_order_impl(Order.order_number == order_number, order_number, session)

    with session_scope() as session:
        return _get_order_impl(Order.order_number == order_number, order_number, session)


def _get_order_impl(criterion, identifier, session: Session) -> Order:
    order = session.query(Order).options(joinedload(Order.line_items)).filter(criterion).first()
    if order is None:
        raise OrderNotFoundError(identifier)
    return order


def get_line_item_snapshots(order_id: int, session: Session = None) -> List[snapshot_service.LineItemSnapshot]:
    """The frozen snapshots of an order's line items."""
    order = get_order(order_id, session=session)
    return [snapshot_service.LineItemSnapshot.from_line_item(item) for item in order.line_items]


__all__ = [
    "create_product",
    "get_product",
    "get_product_by_sku",
    "list_products",
    "update_product",
    "create_version",
    "delete_product",
    "sunset_product",
    "discontinue_product",
    "get_product_versions",
    "get_product_history",
    "add_component",
    "remove_component",
    "update_component",
    "get_product_tree",
    "audit_graph",
    "rebuild_usage_index",
    "generate_order_number",
    "validate_products_available",
    "create_order",
    "get_order",
    "get_order_by_number",
    "get_line_item_snapshots",
]
