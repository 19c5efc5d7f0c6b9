"""
Order Usage Service - answers "does any stored order reference product X?"

Backed by the ``order_product_usage`` reverse index: one row per product
appearing in a line item, either as the purchased product (depth 0) or
inside its frozen component tree (depth 1 and 2). Rows are written by
``record_line_item_usage`` in the same transaction that inserts the line
item, so the answer is consistent with checkout at the checkout isolation
level.

``rebuild_usage_index`` regenerates the table by scanning the frozen trees
stored on line items, for recovery after manual data repair.
"""

from typing import Iterator, List, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.models import OrderLineItem, OrderProductUsage
from src.services.database import session_scope
from src.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def iter_tree_products(tree: List[dict], depth: int = 1) -> Iterator[Tuple[int, int]]:
    """
    Walk a frozen component tree, yielding (product_id, depth) per node.

    Args:
        tree: List of component dicts as stored on a line item
        depth: Depth of the nodes in ``tree`` (1 for a line item's top level)
    """
    for node in tree:
        yield node["component_id"], depth
        yield from iter_tree_products(node.get("components") or [], depth + 1)


def record_line_item_usage(line_item: OrderLineItem, session: Session) -> List[OrderProductUsage]:
    """
    Index every product referenced by a persisted line item.

    Must be called inside the transaction that created the line item (the
    line item needs its id, so it must already be flushed).

    Returns:
        The usage rows written
    """
    entries = {(line_item.product_id, 0)}
    entries.update(iter_tree_products(line_item.get_component_tree()))

    rows = []
    for product_id, depth in sorted(entries, key=lambda entry: (entry[1], entry[0])):
        row = OrderProductUsage(
            order_line_item_id=line_item.id,
            order_id=line_item.order_id,
            product_id=product_id,
            depth=depth,
        )
        session.add(row)
        rows.append(row)
    session.flush()

    logger.debug(f"Indexed {len(rows)} product reference(s) for line item {line_item.id}")
    return rows


def is_product_in_orders(product_id: int, session: Session = None) -> bool:
    """True if the product appears at any depth in any stored order."""
    if session is not None:
        return _is_product_in_orders_impl(product_id, session)

    with session_scope() as session:
        return _is_product_in_orders_impl(product_id, session)


def _is_product_in_orders_impl(product_id: int, session: Session) -> bool:
    """Internal implementation of is_product_in_orders."""
    hit = (
        session.query(OrderProductUsage.id)
        .filter(OrderProductUsage.product_id == product_id)
        .first()
    )
    return hit is not None


def count_orders_using_product(product_id: int, session: Session = None) -> int:
    """Number of distinct orders referencing the product at any depth."""
    if session is not None:
        return _count_orders_impl(product_id, session)

    with session_scope() as session:
        return _count_orders_impl(product_id, session)


def _count_orders_impl(product_id: int, session: Session, root_only=None) -> int:
    query = session.query(func.count(func.distinct(OrderProductUsage.order_id))).filter(
        OrderProductUsage.product_id == product_id
    )
    if root_only is True:
        query = query.filter(OrderProductUsage.depth == 0)
    elif root_only is False:
        query = query.filter(OrderProductUsage.depth > 0)
    return query.scalar() or 0


def get_usage_summary(product_id: int, session: Session = None) -> dict:
    """
    Break down how orders reference a product.

    Returns:
        {"orders": distinct orders at any depth,
         "as_root": orders that purchased it directly,
         "as_component": orders containing it inside a component tree}
    """
    if session is not None:
        return _get_usage_summary_impl(product_id, session)

    with session_scope() as session:
        return _get_usage_summary_impl(product_id, session)


def _get_usage_summary_impl(product_id: int, session: Session) -> dict:
    """Internal implementation of get_usage_summary."""
    return {
        "orders": _count_orders_impl(product_id, session),
        "as_root": _count_orders_impl(product_id, session, root_only=True),
        "as_component": _count_orders_impl(product_id, session, root_only=False),
    }


def rebuild_usage_index(session: Session = None) -> int:
    """
    Regenerate the usage index from the frozen trees on every line item.

    Returns:
        Number of index rows written
    """
    if session is not None:
        return _rebuild_usage_index_impl(session)

    with session_scope() as session:
        return _rebuild_usage_index_impl(session)


def _rebuild_usage_index_impl(session: Session) -> int:
    """Internal implementation of rebuild_usage_index."""
    removed = session.query(OrderProductUsage).delete(synchronize_session=False)

    written = 0
    line_item_count = 0
    for line_item in session.query(OrderLineItem).order_by(OrderLineItem.id).all():
        written += len(record_line_item_usage(line_item, session))
        line_item_count += 1

    log_operation(
        logger,
        "rebuild_usage_index",
        "success",
        removed=removed,
        written=written,
        line_items=line_item_count,
    )
    return written
