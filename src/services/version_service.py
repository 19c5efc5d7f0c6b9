"""
Version Service - decides between editing a product in place and forking a
new version, and drives the product lifecycle.

Policy:
- A product that no stored order references (at any depth) is edited in place.
- A product referenced by any order is never edited: a new row is forked with
  version + 1 and the next SKU, its outgoing component edges are copied, and
  the old row is sunset with ``replaced_by`` pointing at the new one.
- Incoming edges are never touched by a fork; parents that used the old
  version keep it until they are themselves updated.
- Status moves forward only: active -> sunset -> discontinued.

Every edit appends a ProductHistory row with the before and after state.

Session Management Pattern:
- All public functions accept session=None parameter
- If session provided, use it directly (caller owns the transaction)
- If session is None, create a new session via session_scope()
"""

import json
import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from src.models import Product, ProductChangeType, ProductHistory, ProductStatus
from src.services import component_graph_service, order_usage_service, sku_codec
from src.services.database import SERIALIZABLE, session_scope
from src.services.dto import DiscontinueResult, UpdateResult
from src.services.exceptions import (
    InvalidStatusTransitionError,
    ProductNotFoundError,
    StaleVersionError,
    ValidationError,
    VersioningNotRequiredError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import IMMUTABLE_PRODUCT_FIELDS, MUTABLE_PRODUCT_FIELDS
from src.utils.datetime_utils import utc_now
from src.utils.validators import parse_money, validate_product_data

logger = get_service_logger(__name__)

MONEY_FIELDS = ("base_price", "component_price")


# =============================================================================
# Policy
# =============================================================================


def should_version(product_id: int, session: Session = None) -> bool:
    """
    True if editing the product must fork a new version.

    A product must be versioned once any order references it, either as the
    purchased product or anywhere in a purchased product's component tree.
    """
    return order_usage_service.is_product_in_orders(product_id, session=session)


def apply_update(
    product_id: int,
    changes: dict,
    expected_version: Optional[int] = None,
    change_description: Optional[str] = None,
    session: Session = None,
) -> UpdateResult:
    """
    Apply ``changes`` to a product, in place or by forking a new version.

    Args:
        product_id: Product to update (must be the active version)
        changes: Field -> new value for any of MUTABLE_PRODUCT_FIELDS
        expected_version: Version the caller last read, for the optimistic check
        change_description: Free text stored in the history row
        session: Optional session for transaction sharing

    Returns:
        UpdateResult; ``product`` is the same row when edited in place, the
        new version when forked

    Raises:
        ValidationError: Unknown, immutable or invalid fields, or a role flag
            turned off while edges still depend on it
        ProductNotFoundError: No such product
        StaleVersionError: Product was superseded or expected_version differs
        VersionLimitReached: Product is already at V99 and must be forked
    """
    if session is not None:
        return _apply_update_impl(product_id, changes, expected_version, change_description, session)

    with session_scope(isolation_level=SERIALIZABLE) as session:
        return _apply_update_impl(product_id, changes, expected_version, change_description, session)


def _apply_update_impl(
    product_id: int,
    changes: dict,
    expected_version: Optional[int],
    change_description: Optional[str],
    session: Session,
) -> UpdateResult:
    """Internal implementation of apply_update."""
    normalized = normalize_product_changes(changes)
    product = _lock_product(product_id, session)
    _check_current(product, expected_version)

    order_count = order_usage_service.count_orders_using_product(product_id, session=session)
    _check_role_changes(product, normalized, session, forking=order_count > 0)

    if order_count == 0:
        old_state = _product_state(product)
        for field, value in normalized.items():
            setattr(product, field, value)
        product.updated_at = utc_now()
        session.flush()

        _record_history(
            session,
            product,
            None,
            ProductChangeType.UPDATE,
            old_state,
            _product_state(product),
            change_description or f"Updated {', '.join(sorted(normalized))}",
        )
        log_operation(
            logger,
            "apply_update",
            "updated_in_place",
            product_id=product.id,
            sku=product.sku,
            fields=",".join(sorted(normalized)),
        )
        return UpdateResult(
            versioned=False,
            product=product,
            message=f"Product {product.sku} updated.",
        )

    new_product = _fork_impl(product, normalized, change_description, session)
    return UpdateResult(
        versioned=True,
        product=new_product,
        previous_product_id=product.id,
        order_count=order_count,
        message=(
            f"This product is used in {order_count} order(s); a new version "
            f"{new_product.sku} was created instead of modifying {product.sku}."
        ),
    )


def create_version(
    product_id: int,
    changes: Optional[dict] = None,
    change_description: Optional[str] = None,
    session: Session = None,
) -> Product:
    """
    Explicitly fork a new version of a product referenced by orders.

    Raises:
        VersioningNotRequiredError: No order uses the product; edit it directly
        StaleVersionError: Product is not the active version
    """
    if session is not None:
        return _create_version_impl(product_id, changes or {}, change_description, session)

    with session_scope(isolation_level=SERIALIZABLE) as session:
        return _create_version_impl(product_id, changes or {}, change_description, session)


def _create_version_impl(
    product_id: int, changes: dict, change_description: Optional[str], session: Session
) -> Product:
    """Internal implementation of create_version."""
    normalized = normalize_product_changes(changes, allow_empty=True)
    product = _lock_product(product_id, session)
    _check_current(product, None)

    if not should_version(product_id, session=session):
        raise VersioningNotRequiredError(product_id)
    _check_role_changes(product, normalized, session, forking=True)

    return _fork_impl(product, normalized, change_description, session)


def _fork_impl(
    old: Product, changes: dict, change_description: Optional[str], session: Session
) -> Product:
    """
    Fork ``old`` into a new active version carrying ``changes``.

    Row copy, edge copy, sunset of the old row and history insert all happen
    in the caller's transaction.
    """
    new_sku = sku_codec.increment_version(old.sku)
    parts = sku_codec.decode(new_sku)
    old_state = _product_state(old)

    fields = {field: getattr(old, field) for field in MUTABLE_PRODUCT_FIELDS}
    fields["is_available_for_purchase"] = True
    fields.update(changes)

    new_product = Product(
        sku=new_sku,
        sku_prefix=parts.prefix,
        sku_category=parts.category,
        sku_product_code=parts.code,
        sku_version=sku_codec.format_version(parts.version),
        version=old.version + 1,
        base_product_id=old.base_product_id if old.base_product_id is not None else old.id,
        previous_version_id=old.id,
        status=ProductStatus.ACTIVE,
        **fields,
    )
    session.add(new_product)
    session.flush()

    copied = component_graph_service.copy_outgoing_edges(old.id, new_product.id, session)

    now = utc_now()
    old.status = ProductStatus.SUNSET
    old.replaced_by = new_product.id
    old.is_available_for_purchase = False
    old.sunset_date = now
    old.sunset_reason = f"Replaced by {new_sku}"
    old.updated_at = now
    session.flush()

    _record_history(
        session,
        old,
        new_product,
        ProductChangeType.VERSION,
        old_state,
        _product_state(new_product),
        change_description or f"New version {new_sku} replaces {old.sku}",
    )
    log_operation(
        logger,
        "fork_product",
        "success",
        product_id=old.id,
        new_product_id=new_product.id,
        old_sku=old.sku,
        new_sku=new_sku,
        edges_copied=len(copied),
    )
    return new_product


# =============================================================================
# Lifecycle
# =============================================================================


def sunset_product(
    product_id: int,
    reason: str,
    replacement_product_id: Optional[int] = None,
    session: Session = None,
) -> Product:
    """
    Move a product from active to sunset (no longer purchasable).

    Args:
        product_id: Product to sunset
        reason: Why it is being retired
        replacement_product_id: Optional product that replaces it

    Raises:
        ProductNotFoundError: Product or replacement does not exist
        InvalidStatusTransitionError: Product is not active
        ValidationError: Replacement is the product itself
    """
    if session is not None:
        return _sunset_product_impl(product_id, reason, replacement_product_id, session)

    with session_scope() as session:
        return _sunset_product_impl(product_id, reason, replacement_product_id, session)


def _sunset_product_impl(
    product_id: int, reason: str, replacement_product_id: Optional[int], session: Session
) -> Product:
    """Internal implementation of sunset_product."""
    product = _lock_product(product_id, session)
    _transition(product, ProductStatus.SUNSET)

    if replacement_product_id is not None:
        if replacement_product_id == product_id:
            raise ValidationError("A product cannot replace itself")
        if session.get(Product, replacement_product_id) is None:
            raise ProductNotFoundError(replacement_product_id)
        product.replaced_by = replacement_product_id

    now = utc_now()
    product.status = ProductStatus.SUNSET
    product.is_available_for_purchase = False
    product.sunset_date = now
    product.sunset_reason = reason
    product.updated_at = now
    session.flush()

    log_operation(
        logger,
        "sunset_product",
        "success",
        product_id=product_id,
        sku=product.sku,
        replaced_by=replacement_product_id,
    )
    return product


def discontinue(product_id: int, reason: str, session: Session = None) -> DiscontinueResult:
    """
    Withdraw a product permanently.

    A product referenced by orders is kept and marked discontinued. A product
    no order references is physically deleted from the graph store (which
    still rejects the delete while it is another product's component).

    Raises:
        ProductNotFoundError: No such product
        InvalidStatusTransitionError: Product is already discontinued
        ComponentInUseError: Unused product is still someone's component
    """
    if session is not None:
        return _discontinue_impl(product_id, reason, session)

    with session_scope(isolation_level=SERIALIZABLE) as session:
        return _discontinue_impl(product_id, reason, session)


def _discontinue_impl(product_id: int, reason: str, session: Session) -> DiscontinueResult:
    """Internal implementation of discontinue."""
    product = _lock_product(product_id, session)
    _transition(product, ProductStatus.DISCONTINUED)

    if not should_version(product_id, session=session):
        component_graph_service.delete_product(product_id, session=session)
        log_operation(logger, "discontinue", "deleted", product_id=product_id, reason=reason)
        return DiscontinueResult(product_id=product_id, deleted=True)

    now = utc_now()
    product.status = ProductStatus.DISCONTINUED
    product.is_available_for_purchase = False
    product.discontinued_date = now
    product.sunset_reason = reason
    product.updated_at = now
    session.flush()

    log_operation(
        logger, "discontinue", "retained_for_orders", product_id=product_id, sku=product.sku
    )
    return DiscontinueResult(
        product_id=product_id, deleted=False, status=ProductStatus.DISCONTINUED.value
    )


# =============================================================================
# Version queries
# =============================================================================


def get_product_versions(product_id: int, session: Session = None) -> List[Product]:
    """
    All versions in the lineage of ``product_id``, ordered by version.

    Any version's id may be passed; the lineage is resolved through
    ``base_product_id``.
    """
    if session is not None:
        return _get_product_versions_impl(product_id, session)

    with session_scope() as session:
        return _get_product_versions_impl(product_id, session)


def _get_product_versions_impl(product_id: int, session: Session) -> List[Product]:
    """Internal implementation of get_product_versions."""
    product = session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)

    lineage_id = product.lineage_id
    return (
        session.query(Product)
        .filter(or_(Product.id == lineage_id, Product.base_product_id == lineage_id))
        .order_by(Product.version)
        .all()
    )


def get_latest_version(product_id: int, session: Session = None) -> Product:
    """Highest version in the lineage of ``product_id``."""
    return get_product_versions(product_id, session=session)[-1]


def get_product_history(product_id: int, session: Session = None) -> List[ProductHistory]:
    """History rows where the product was edited or was created by a fork, oldest first."""
    if session is not None:
        return _get_product_history_impl(product_id, session)

    with session_scope() as session:
        return _get_product_history_impl(product_id, session)


def _get_product_history_impl(product_id: int, session: Session) -> List[ProductHistory]:
    """Internal implementation of get_product_history."""
    return (
        session.query(ProductHistory)
        .filter(
            or_(
                ProductHistory.product_id == product_id,
                ProductHistory.new_product_id == product_id,
            )
        )
        .order_by(ProductHistory.created_at, ProductHistory.id)
        .all()
    )


# =============================================================================
# Helpers
# =============================================================================


def normalize_product_changes(changes: dict, allow_empty: bool = False) -> dict:
    """
    Validate an update payload and coerce money fields to Decimal.

    Raises:
        ValidationError: Empty payload, immutable or unknown fields, bad values
    """
    if not changes:
        if allow_empty:
            return {}
        raise ValidationError("No changes supplied")

    immutable = sorted(set(changes) & IMMUTABLE_PRODUCT_FIELDS)
    unknown = sorted(set(changes) - IMMUTABLE_PRODUCT_FIELDS - MUTABLE_PRODUCT_FIELDS)
    errors = [f"{field}: Cannot be changed by an update" for field in immutable]
    errors.extend(f"{field}: Unknown product field" for field in unknown)
    if errors:
        raise ValidationError(errors)

    is_valid, errors = validate_product_data(changes, partial=True)
    if not is_valid:
        raise ValidationError(errors)

    normalized = dict(changes)
    for field in MONEY_FIELDS:
        if normalized.get(field) is not None:
            normalized[field] = parse_money(normalized[field])
    if "name" in normalized:
        normalized["name"] = normalized["name"].strip()
    return normalized


def _check_role_changes(product: Product, changes: dict, session: Session, forking: bool) -> None:
    """
    Refuse role flag changes that would leave edges add_edge would reject.

    A fork copies outgoing edges but not incoming ones, so a forked version
    may stop being a component even while parents still use the old row.
    """
    errors = []
    if changes.get("can_have_components") is False:
        children = component_graph_service.get_direct_children(product.id, session=session)
        if children:
            errors.append(
                f"Product {product.id} ({product.sku}) still has {len(children)} component(s); "
                "remove them before turning off can_have_components"
            )
    if changes.get("can_be_component") is False and not forking:
        parents = component_graph_service.get_parent_products(product.id, session=session)
        if parents:
            parent_ids = ", ".join(str(parent.id) for parent in parents)
            errors.append(
                f"Product {product.id} ({product.sku}) is a component of product(s) {parent_ids}; "
                "remove it from them before turning off can_be_component"
            )
    if errors:
        raise ValidationError(errors)


def _check_current(product: Product, expected_version: Optional[int]) -> None:
    """Reject updates to superseded rows and to versions the caller did not read."""
    if product.status != ProductStatus.ACTIVE:
        log_operation(
            logger,
            "apply_update",
            "stale_version",
            level=logging.WARNING,
            product_id=product.id,
            status=product.status.value,
        )
        raise StaleVersionError(product.id, expected_version, product.version, product.replaced_by)
    if expected_version is not None and expected_version != product.version:
        log_operation(
            logger,
            "apply_update",
            "stale_version",
            level=logging.WARNING,
            product_id=product.id,
            expected=expected_version,
            current=product.version,
        )
        raise StaleVersionError(product.id, expected_version, product.version)


def _transition(product: Product, new_status: ProductStatus) -> None:
    """Allow forward status moves only."""
    if new_status.rank <= product.status.rank:
        raise InvalidStatusTransitionError(product.id, product.status, new_status)


def _lock_product(product_id: int, session: Session) -> Product:
    product = session.query(Product).filter(Product.id == product_id).with_for_update().first()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def _product_state(product: Product) -> dict:
    state = product.to_dict()
    state.pop("updated_at", None)
    return state


def _record_history(
    session: Session,
    product: Product,
    new_product: Optional[Product],
    change_type: ProductChangeType,
    old_state: dict,
    new_state: dict,
    description: str,
) -> ProductHistory:
    entry = ProductHistory(
        product_id=product.id,
        new_product_id=new_product.id if new_product is not None else None,
        base_product_id=product.lineage_id,
        change_type=change_type,
        change_description=description,
        old_data=json.dumps(old_state, sort_keys=True),
        new_data=json.dumps(new_state, sort_keys=True),
    )
    session.add(entry)
    session.flush()
    return entry
