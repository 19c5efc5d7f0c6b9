"""
Component Graph Service - the product -> component edge store.

Products form a self-referential many-to-many graph through the
``product_components`` edge table. This service is the only writer of that
table and enforces its structural invariants before every write:

- no self-references
- no cycles
- no path longer than MAX_COMPONENT_DEPTH (root -> component -> sub-component)
- at most one edge per (parent, component) pair

Deleting a product cascades to its outgoing edges but is restricted while any
other product still uses it as a component.

Session Management Pattern:
- All public functions accept session=None parameter
- If session provided, use it directly (caller owns the transaction)
- If session is None, create a new session via session_scope(); graph writes
  run at SERIALIZABLE isolation so checks and write see one state
"""

import logging
from collections import deque
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.models import Product, ProductComponent
from src.services.database import SERIALIZABLE, session_scope
from src.services.exceptions import (
    CircularReferenceError,
    ComponentInUseError,
    DatabaseError,
    DuplicateEdgeError,
    EdgeNotFoundError,
    MaxDepthExceededError,
    ProductNotFoundError,
    SelfReferenceError,
    ServiceError,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import DEFAULT_COMPONENT_QUANTITY, MAX_COMPONENT_DEPTH
from src.utils.validators import parse_money, validate_non_negative_money

logger = get_service_logger(__name__)

EDITABLE_EDGE_FIELDS = frozenset(
    {"quantity", "is_required", "is_included", "price_override", "display_name", "sort_order", "notes"}
)


# =============================================================================
# Edge writes
# =============================================================================


def add_edge(
    parent_id: int,
    component_id: int,
    quantity: int = DEFAULT_COMPONENT_QUANTITY,
    is_required: bool = True,
    is_included: bool = True,
    price_override: Optional[Decimal] = None,
    display_name: Optional[str] = None,
    sort_order: int = 0,
    notes: Optional[str] = None,
    session: Session = None,
) -> ProductComponent:
    """
    Attach ``component_id`` under ``parent_id``.

    Checks run in this order, all before any write:
    1. parent == component -> SelfReferenceError
    2. component already reaches parent -> CircularReferenceError
    3. longest resulting path > MAX_COMPONENT_DEPTH -> MaxDepthExceededError
    4. edge already exists -> DuplicateEdgeError

    Args:
        parent_id: Product receiving the component
        component_id: Product being attached
        quantity: Units of the component per parent unit (>= 1)
        is_required: Component cannot be deselected
        is_included: Component is part of the package price
        price_override: Price for this component in this parent only
        display_name: Name shown instead of the component's name
        sort_order: Display order (>= 0)
        notes: Admin notes
        session: Optional session for transaction sharing

    Returns:
        The created ProductComponent

    Raises:
        ValidationError: Bad config or product roles
        ProductNotFoundError: Either product does not exist
        SelfReferenceError, CircularReferenceError, MaxDepthExceededError,
        DuplicateEdgeError: Structural violations
    """
    config = {
        "quantity": quantity,
        "is_required": is_required,
        "is_included": is_included,
        "price_override": price_override,
        "display_name": display_name,
        "sort_order": sort_order,
        "notes": notes,
    }
    if session is not None:
        return _add_edge_impl(parent_id, component_id, config, session)

    try:
        with session_scope(isolation_level=SERIALIZABLE) as session:
            return _add_edge_impl(parent_id, component_id, config, session)
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Database error adding component {component_id} to {parent_id}: {e}")
        raise DatabaseError(f"Failed to add component: {e}", original_error=e)


def _add_edge_impl(parent_id: int, component_id: int, config: dict, session: Session) -> ProductComponent:
    """Internal implementation of add_edge."""
    config = _normalize_edge_config(config)

    if parent_id == component_id:
        log_operation(
            logger, "add_edge", "self_reference", level=logging.WARNING, parent_id=parent_id
        )
        raise SelfReferenceError(parent_id)

    parent = _lock_product(parent_id, session)
    component = _lock_product(component_id, session)

    role_errors = []
    if not parent.can_have_components:
        role_errors.append(f"Product {parent_id} ({parent.sku}) cannot have components")
    if not component.can_be_component:
        role_errors.append(f"Product {component_id} ({component.sku}) cannot be used as a component")
    if role_errors:
        raise ValidationError(role_errors)

    cycle_path = find_path(component_id, parent_id, session=session)
    if cycle_path:
        log_operation(
            logger,
            "add_edge",
            "circular_reference",
            level=logging.WARNING,
            parent_id=parent_id,
            component_id=component_id,
        )
        raise CircularReferenceError(parent_id, component_id, cycle_path)

    resulting_depth = (
        get_depth_above(parent_id, session=session)
        + 1
        + get_subtree_height(component_id, session=session)
    )
    if resulting_depth > MAX_COMPONENT_DEPTH:
        log_operation(
            logger,
            "add_edge",
            "max_depth_exceeded",
            level=logging.WARNING,
            parent_id=parent_id,
            component_id=component_id,
            depth=resulting_depth,
        )
        raise MaxDepthExceededError(parent_id, component_id, resulting_depth, MAX_COMPONENT_DEPTH)

    if _find_edge(parent_id, component_id, session) is not None:
        raise DuplicateEdgeError(parent_id, component_id)

    edge = ProductComponent(
        parent_product_id=parent_id,
        component_product_id=component_id,
        **config,
    )
    session.add(edge)
    try:
        # The unique constraint is the backstop for concurrent writers
        session.flush()
    except IntegrityError as e:
        logger.warning(f"Edge {parent_id} -> {component_id} rejected by unique constraint: {e}")
        raise DuplicateEdgeError(parent_id, component_id)

    log_operation(
        logger,
        "add_edge",
        "success",
        parent_id=parent_id,
        component_id=component_id,
        quantity=edge.quantity,
    )
    return edge


def remove_edge(parent_id: int, component_id: int, session: Session = None) -> bool:
    """
    Detach ``component_id`` from ``parent_id``.

    Removing an edge cannot violate a structural invariant, so this is
    unconditional.

    Returns:
        True if an edge was deleted, False if none existed
    """
    if session is not None:
        return _remove_edge_impl(parent_id, component_id, session)

    try:
        with session_scope(isolation_level=SERIALIZABLE) as session:
            return _remove_edge_impl(parent_id, component_id, session)
    except SQLAlchemyError as e:
        logger.error(f"Database error removing component {component_id} from {parent_id}: {e}")
        raise DatabaseError(f"Failed to remove component: {e}", original_error=e)


def _remove_edge_impl(parent_id: int, component_id: int, session: Session) -> bool:
    """Internal implementation of remove_edge."""
    edge = _find_edge(parent_id, component_id, session, for_update=True)
    if edge is None:
        logger.debug(f"No edge {parent_id} -> {component_id} to remove")
        return False

    session.delete(edge)
    session.flush()
    log_operation(logger, "remove_edge", "success", parent_id=parent_id, component_id=component_id)
    return True


def update_edge(parent_id: int, component_id: int, session: Session = None, **updates) -> ProductComponent:
    """
    Edit the configuration of an existing edge.

    Only quantity, flags, price override, display name, sort order and notes
    can change; the endpoints cannot, so no graph checks are needed.

    Raises:
        ValidationError: Unknown field or invalid value
        EdgeNotFoundError: No such edge
    """
    if session is not None:
        return _update_edge_impl(parent_id, component_id, updates, session)

    with session_scope() as session:
        return _update_edge_impl(parent_id, component_id, updates, session)


def _update_edge_impl(parent_id: int, component_id: int, updates: dict, session: Session) -> ProductComponent:
    """Internal implementation of update_edge."""
    unknown = sorted(set(updates) - EDITABLE_EDGE_FIELDS)
    if unknown:
        raise ValidationError([f"Cannot update edge field '{field}'" for field in unknown])

    edge = _find_edge(parent_id, component_id, session, for_update=True)
    if edge is None:
        raise EdgeNotFoundError(parent_id, component_id)

    merged = {field: getattr(edge, field) for field in EDITABLE_EDGE_FIELDS}
    merged.update(updates)
    normalized = _normalize_edge_config(merged)

    for field in updates:
        setattr(edge, field, normalized[field])
    session.flush()

    log_operation(
        logger,
        "update_edge",
        "success",
        parent_id=parent_id,
        component_id=component_id,
        fields=",".join(sorted(updates)),
    )
    return edge


def copy_outgoing_edges(source_id: int, target_id: int, session: Session) -> List[ProductComponent]:
    """
    Duplicate every outgoing edge of ``source_id`` onto ``target_id``.

    Used when a product version is forked: the new version starts with the
    same components, quantities and overrides. The target is a fresh version
    with no incoming edges, so its depth profile equals the source's and no
    graph checks are needed. Incoming edges of the source are not touched.

    Returns:
        The new edges
    """
    copies = []
    for edge in get_direct_children(source_id, session=session):
        copy = ProductComponent(
            parent_product_id=target_id,
            component_product_id=edge.component_product_id,
            quantity=edge.quantity,
            is_required=edge.is_required,
            is_included=edge.is_included,
            price_override=edge.price_override,
            display_name=edge.display_name,
            sort_order=edge.sort_order,
            notes=edge.notes,
        )
        session.add(copy)
        copies.append(copy)
    session.flush()
    logger.debug(f"Copied {len(copies)} component edge(s) from product {source_id} to {target_id}")
    return copies


# =============================================================================
# Product deletion (restrict / cascade)
# =============================================================================


def delete_product(product_id: int, session: Session = None) -> None:
    """
    Physically delete a product from the graph store.

    Outgoing edges (the product's own components) are deleted with it.
    If any other product still uses it as a component the delete is rejected.

    Raises:
        ProductNotFoundError: No such product
        ComponentInUseError: Product is still someone's component
    """
    if session is not None:
        return _delete_product_impl(product_id, session)

    with session_scope(isolation_level=SERIALIZABLE) as session:
        return _delete_product_impl(product_id, session)


def _delete_product_impl(product_id: int, session: Session) -> None:
    """Internal implementation of delete_product."""
    product = _lock_product(product_id, session)

    parent_ids = [p.id for p in get_parent_products(product_id, session=session)]
    if parent_ids:
        log_operation(
            logger,
            "delete_product",
            "component_in_use",
            level=logging.WARNING,
            product_id=product_id,
            parent_ids=parent_ids,
        )
        raise ComponentInUseError(product_id, parent_ids)

    sku = product.sku
    session.delete(product)
    session.flush()
    log_operation(logger, "delete_product", "success", product_id=product_id, sku=sku)


# =============================================================================
# Graph queries
# =============================================================================


def get_direct_children(product_id: int, session: Session = None) -> List[ProductComponent]:
    """
    Outgoing edges of a product, ordered by sort_order then creation.

    Each edge has its ``component`` product loaded.
    """
    if session is not None:
        return _get_direct_children_impl(product_id, session)

    with session_scope() as session:
        return _get_direct_children_impl(product_id, session)


def _get_direct_children_impl(product_id: int, session: Session) -> List[ProductComponent]:
    """Internal implementation of get_direct_children."""
    return (
        session.query(ProductComponent)
        .filter(ProductComponent.parent_product_id == product_id)
        .order_by(ProductComponent.sort_order, ProductComponent.id)
        .all()
    )


def get_edge(parent_id: int, component_id: int, session: Session = None) -> Optional[ProductComponent]:
    """The (parent, component) edge, or None."""
    if session is not None:
        return _find_edge(parent_id, component_id, session)

    with session_scope() as session:
        return _find_edge(parent_id, component_id, session)


def get_parent_products(component_id: int, session: Session = None) -> List[Product]:
    """Products that use ``component_id`` as a direct component."""
    if session is not None:
        return _get_parent_products_impl(component_id, session)

    with session_scope() as session:
        return _get_parent_products_impl(component_id, session)


def _get_parent_products_impl(component_id: int, session: Session) -> List[Product]:
    """Internal implementation of get_parent_products."""
    return (
        session.query(Product)
        .join(ProductComponent, ProductComponent.parent_product_id == Product.id)
        .filter(ProductComponent.component_product_id == component_id)
        .order_by(Product.id)
        .all()
    )


def has_path(from_id: int, to_id: int, session: Session = None) -> bool:
    """
    True if a path of one or more edges leads from ``from_id`` to ``to_id``.

    ``has_path(x, x)`` is True only if x lies on a cycle.
    """
    return bool(find_path(from_id, to_id, session=session))


def find_path(from_id: int, to_id: int, session: Session = None) -> List[int]:
    """
    Shortest path of one or more edges from ``from_id`` to ``to_id``.

    Returns:
        Product IDs [from_id, ..., to_id], or [] if unreachable
    """
    if session is not None:
        return _find_path_impl(from_id, to_id, session)

    with session_scope() as session:
        return _find_path_impl(from_id, to_id, session)


def _find_path_impl(from_id: int, to_id: int, session: Session) -> List[int]:
    """Breadth-first search over outgoing edges."""
    previous: Dict[int, int] = {}
    queue = deque([from_id])
    visited: Set[int] = set()

    while queue:
        node = queue.popleft()
        if node in visited:
            continue
        visited.add(node)

        for child_id in _child_ids(node, session):
            if child_id not in previous:
                previous[child_id] = node
            if child_id == to_id:
                path = [to_id]
                step = node
                while step != from_id:
                    path.append(step)
                    step = previous[step]
                path.append(from_id)
                path.reverse()
                return path
            if child_id not in visited:
                queue.append(child_id)

    return []


def get_subtree_height(product_id: int, session: Session = None) -> int:
    """
    Length of the longest path from ``product_id`` down to a leaf (leaf = 0).
    """
    if session is not None:
        return _longest_path(product_id, session, _child_ids, set())

    with session_scope() as session:
        return _longest_path(product_id, session, _child_ids, set())


def get_depth_above(product_id: int, session: Session = None) -> int:
    """
    Length of the longest path from any root down to ``product_id`` (root = 0).
    """
    if session is not None:
        return _longest_path(product_id, session, _parent_ids, set())

    with session_scope() as session:
        return _longest_path(product_id, session, _parent_ids, set())


def _longest_path(product_id: int, session: Session, neighbours, _path: Set[int]) -> int:
    """
    Longest walk from product_id following ``neighbours``.

    Uses path-based cycle detection so corrupt data fails loudly instead of
    recursing forever.
    """
    if product_id in _path:
        raise CircularReferenceError(product_id, product_id, sorted(_path))

    _path.add(product_id)
    try:
        longest = 0
        for next_id in neighbours(product_id, session):
            longest = max(longest, 1 + _longest_path(next_id, session, neighbours, _path))
        return longest
    finally:
        _path.discard(product_id)


# =============================================================================
# Integrity audit
# =============================================================================


def audit_graph(session: Session = None) -> List[dict]:
    """
    Check the whole edge table against the structural invariants.

    Returns:
        List of violation dicts (empty when the graph is healthy). Each has a
        "type" of "self_reference", "cycle" or "max_depth" plus the product
        IDs involved.
    """
    if session is not None:
        return _audit_graph_impl(session)

    with session_scope() as session:
        return _audit_graph_impl(session)


def _audit_graph_impl(session: Session) -> List[dict]:
    """Internal implementation of audit_graph."""
    edges = session.query(
        ProductComponent.parent_product_id, ProductComponent.component_product_id
    ).all()
    violations = find_graph_violations(edges, MAX_COMPONENT_DEPTH)

    if violations:
        log_operation(
            logger, "audit_graph", "violations_found", level=logging.WARNING, count=len(violations)
        )
    else:
        log_operation(logger, "audit_graph", "healthy", level=logging.DEBUG, edges=len(edges))
    return violations


def find_graph_violations(edges: Iterable[Tuple[int, int]], max_depth: int) -> List[dict]:
    """
    Pure check of an edge list for self-references, cycles and excess depth.

    Args:
        edges: (parent_id, component_id) pairs
        max_depth: Maximum allowed path length

    Returns:
        List of violation dicts
    """
    children: Dict[int, List[int]] = {}
    nodes: Set[int] = set()
    violations: List[dict] = []

    for parent_id, component_id in edges:
        nodes.update((parent_id, component_id))
        if parent_id == component_id:
            violations.append({"type": "self_reference", "product_ids": [parent_id]})
            continue
        children.setdefault(parent_id, []).append(component_id)

    # Iterative DFS with colours: 0 = new, 1 = on stack, 2 = done
    colour: Dict[int, int] = {node: 0 for node in nodes}
    height: Dict[int, int] = {}
    reported_cycles: Set[Tuple[int, ...]] = set()

    for start in sorted(nodes):
        if colour[start] != 0:
            continue
        stack = [(start, iter(children.get(start, [])))]
        trail = [start]
        colour[start] = 1
        while stack:
            node, child_iter = stack[-1]
            advanced = False
            for child in child_iter:
                if colour[child] == 1:
                    cycle = tuple(trail[trail.index(child):])
                    key = tuple(sorted(cycle))
                    if key not in reported_cycles:
                        reported_cycles.add(key)
                        violations.append({"type": "cycle", "product_ids": list(cycle)})
                elif colour[child] == 0:
                    colour[child] = 1
                    stack.append((child, iter(children.get(child, []))))
                    trail.append(child)
                    advanced = True
                    break
            if advanced:
                continue
            stack.pop()
            trail.pop()
            colour[node] = 2
            height[node] = max(
                (1 + height.get(child, 0) for child in children.get(node, []) if colour[child] == 2),
                default=0,
            )

    for node in sorted(nodes):
        if height.get(node, 0) > max_depth:
            violations.append(
                {"type": "max_depth", "product_ids": [node], "depth": height[node], "max_depth": max_depth}
            )

    return violations


# =============================================================================
# Helpers
# =============================================================================


def _child_ids(product_id: int, session: Session) -> List[int]:
    rows = (
        session.query(ProductComponent.component_product_id)
        .filter(ProductComponent.parent_product_id == product_id)
        .all()
    )
    return [row[0] for row in rows]


def _parent_ids(product_id: int, session: Session) -> List[int]:
    rows = (
        session.query(ProductComponent.parent_product_id)
        .filter(ProductComponent.component_product_id == product_id)
        .all()
    )
    return [row[0] for row in rows]


def _find_edge(
    parent_id: int, component_id: int, session: Session, for_update: bool = False
) -> Optional[ProductComponent]:
    query = session.query(ProductComponent).filter(
        ProductComponent.parent_product_id == parent_id,
        ProductComponent.component_product_id == component_id,
    )
    if for_update:
        query = query.with_for_update()
    return query.first()


def _lock_product(product_id: int, session: Session) -> Product:
    """Load a product row with a write lock (FOR UPDATE on PostgreSQL)."""
    product = session.query(Product).filter(Product.id == product_id).with_for_update().first()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def _normalize_edge_config(config: dict) -> dict:
    """Validate edge configuration values and coerce money to Decimal."""
    errors = []
    normalized = dict(config)

    quantity = normalized.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        errors.append(f"quantity must be a whole number of at least 1, got {quantity!r}")

    sort_order = normalized.get("sort_order")
    if isinstance(sort_order, bool) or not isinstance(sort_order, int) or sort_order < 0:
        errors.append(f"sort_order must be a non-negative whole number, got {sort_order!r}")

    price_override = normalized.get("price_override")
    if price_override is not None:
        is_valid, error = validate_non_negative_money(price_override, "price_override")
        if is_valid:
            normalized["price_override"] = parse_money(price_override)
        else:
            errors.append(error)

    for flag in ("is_required", "is_included"):
        if not isinstance(normalized.get(flag), bool):
            errors.append(f"{flag} must be true or false")

    if errors:
        raise ValidationError(errors)
    return normalized
