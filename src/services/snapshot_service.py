"""
Snapshot Service - freezes a product's component tree and pricing at checkout.

``build_snapshot`` reads the live component graph once and returns a
LineItemSnapshot: an immutable value holding the purchased product's
identity, the nested component tree (depth <= 2) and the computed price
breakdown, all copied by value. Nothing in a snapshot points back into the
catalog, so stored orders stay interpretable after any later edit, fork or
delete.

Pricing:
- effective price of a node = edge price override, else the component's
  component_price, else its base_price
- included / optional totals = sum over nodes at any depth of
  effective price x edge quantity, split by the node's is_included flag
- unit price = base price + included total + optional total
- line total = quantity x unit price

Serialization is canonical (sorted keys, compact separators, money as
fixed-point strings) so the same catalog state always yields identical JSON.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from src.models import OrderLineItem, Product
from src.services import component_graph_service
from src.services.database import session_scope
from src.services.exceptions import ProductNotFoundError, ValidationError
from src.services.logging_utils import get_service_logger
from src.utils.constants import MAX_COMPONENT_DEPTH, MONEY_QUANTUM, SNAPSHOT_SCHEMA_VERSION

logger = get_service_logger(__name__)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANTUM)


def canonical_json(value) -> str:
    """Serialize with sorted keys and no whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class ComponentSnapshot:
    """
    One frozen node of a component tree.

    ``price`` is the effective unit price inside this parent; ``components``
    is empty for depth-2 nodes.
    """

    component_id: int
    component_sku: str
    component_name: str
    component_version: int
    quantity: int
    price: Decimal
    is_required: bool
    is_included: bool
    category: str
    components: Tuple["ComponentSnapshot", ...] = ()

    @property
    def extended_price(self) -> Decimal:
        """price x quantity"""
        return _money(self.price * self.quantity)

    def walk(self) -> Iterator["ComponentSnapshot"]:
        """This node, then every descendant depth-first."""
        yield self
        for child in self.components:
            yield from child.walk()

    def to_dict(self) -> dict:
        return {
            "component_id": self.component_id,
            "component_sku": self.component_sku,
            "component_name": self.component_name,
            "component_version": self.component_version,
            "quantity": self.quantity,
            "price": str(_money(self.price)),
            "is_required": self.is_required,
            "is_included": self.is_included,
            "category": self.category,
            "components": [child.to_dict() for child in self.components],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ComponentSnapshot":
        return cls(
            component_id=data["component_id"],
            component_sku=data["component_sku"],
            component_name=data["component_name"],
            component_version=data["component_version"],
            quantity=data["quantity"],
            price=_money(data["price"]),
            is_required=data["is_required"],
            is_included=data["is_included"],
            category=data["category"],
            components=tuple(cls.from_dict(child) for child in data.get("components") or []),
        )


@dataclass(frozen=True)
class LineItemSnapshot:
    """
    Frozen, fully priced copy of one purchased product.

    Attributes:
        product_id / product_sku / product_name / product_version /
        product_category: identity of the purchased version, copied
        quantity: Units purchased
        base_price: Product base price at snapshot time
        included_components_total / optional_components_total: roll-ups
        unit_price: base_price + both roll-ups
        line_total: quantity x unit_price
        components: Depth-1 nodes, each with its depth-2 nodes
        schema_version: Layout version of the serialized tree
    """

    product_id: int
    product_sku: str
    product_name: str
    product_version: int
    product_category: str
    quantity: int
    base_price: Decimal
    included_components_total: Decimal
    optional_components_total: Decimal
    unit_price: Decimal
    line_total: Decimal
    components: Tuple[ComponentSnapshot, ...] = field(default_factory=tuple)
    schema_version: int = SNAPSHOT_SCHEMA_VERSION

    def component_tree(self) -> List[dict]:
        return [node.to_dict() for node in self.components]

    def component_tree_json(self) -> str:
        """Canonical JSON of the component tree, as stored on the line item."""
        return canonical_json(self.component_tree())

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_sku": self.product_sku,
            "product_name": self.product_name,
            "product_version": self.product_version,
            "product_category": self.product_category,
            "quantity": self.quantity,
            "base_price": str(self.base_price),
            "included_components_total": str(self.included_components_total),
            "optional_components_total": str(self.optional_components_total),
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
            "components": self.component_tree(),
            "schema_version": self.schema_version,
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "LineItemSnapshot":
        return cls(
            product_id=data["product_id"],
            product_sku=data["product_sku"],
            product_name=data["product_name"],
            product_version=data["product_version"],
            product_category=data["product_category"],
            quantity=data["quantity"],
            base_price=_money(data["base_price"]),
            included_components_total=_money(data["included_components_total"]),
            optional_components_total=_money(data["optional_components_total"]),
            unit_price=_money(data["unit_price"]),
            line_total=_money(data["line_total"]),
            components=tuple(ComponentSnapshot.from_dict(node) for node in data.get("components") or []),
            schema_version=data.get("schema_version", SNAPSHOT_SCHEMA_VERSION),
        )

    @classmethod
    def from_line_item(cls, line_item: OrderLineItem) -> "LineItemSnapshot":
        """Rebuild the value stored on a persisted line item."""
        return cls(
            product_id=line_item.product_id,
            product_sku=line_item.product_sku,
            product_name=line_item.product_name,
            product_version=line_item.product_version,
            product_category=line_item.product_category,
            quantity=line_item.quantity,
            base_price=_money(line_item.base_price),
            included_components_total=_money(line_item.included_components_total),
            optional_components_total=_money(line_item.optional_components_total),
            unit_price=_money(line_item.unit_price),
            line_total=_money(line_item.line_total),
            components=tuple(
                ComponentSnapshot.from_dict(node) for node in line_item.get_component_tree()
            ),
            schema_version=line_item.snapshot_schema_version,
        )

    def to_line_item(self) -> OrderLineItem:
        """New, unattached OrderLineItem carrying this snapshot."""
        return OrderLineItem(
            product_id=self.product_id,
            product_sku=self.product_sku,
            product_name=self.product_name,
            product_version=self.product_version,
            product_category=self.product_category,
            quantity=self.quantity,
            base_price=self.base_price,
            included_components_total=self.included_components_total,
            optional_components_total=self.optional_components_total,
            unit_price=self.unit_price,
            line_total=self.line_total,
            component_tree=self.component_tree_json(),
            snapshot_schema_version=self.schema_version,
        )


# =============================================================================
# Building
# =============================================================================


def build_snapshot(product_id: int, quantity: int, session: Session = None) -> LineItemSnapshot:
    """
    Freeze the current tree and pricing of a product.

    Read-only; must run in the checkout transaction so the snapshot and the
    line item insert see one catalog state.

    Args:
        product_id: Product being purchased
        quantity: Units purchased (>= 1)
        session: Optional session for transaction sharing

    Returns:
        LineItemSnapshot

    Raises:
        ValidationError: quantity is not a positive whole number
        ProductNotFoundError: No such product
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(f"quantity must be a whole number of at least 1, got {quantity!r}")

    if session is not None:
        return _build_snapshot_impl(product_id, quantity, session)

    with session_scope() as session:
        return _build_snapshot_impl(product_id, quantity, session)


def _build_snapshot_impl(product_id: int, quantity: int, session: Session) -> LineItemSnapshot:
    """Internal implementation of build_snapshot."""
    product = session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)

    components = _build_nodes(product_id, 1, session)
    included_total, optional_total = rollup_totals(components)
    base_price = _money(product.base_price)
    unit_price = base_price + included_total + optional_total

    snapshot = LineItemSnapshot(
        product_id=product.id,
        product_sku=product.sku,
        product_name=product.name,
        product_version=product.version,
        product_category=product.sku_category,
        quantity=quantity,
        base_price=base_price,
        included_components_total=included_total,
        optional_components_total=optional_total,
        unit_price=unit_price,
        line_total=_money(unit_price * quantity),
        components=components,
    )
    logger.debug(
        f"Built snapshot for {product.sku} x{quantity}: "
        f"{sum(1 for node in components for _ in node.walk())} component node(s), "
        f"line total {snapshot.line_total}"
    )
    return snapshot


def _build_nodes(parent_id: int, depth: int, session: Session) -> Tuple[ComponentSnapshot, ...]:
    """Freeze the direct children of ``parent_id``; nodes at the depth bound are leaves."""
    nodes = []
    for edge in component_graph_service.get_direct_children(parent_id, session=session):
        component = edge.component
        children = ()
        if depth < MAX_COMPONENT_DEPTH:
            children = _build_nodes(component.id, depth + 1, session)
        nodes.append(
            ComponentSnapshot(
                component_id=component.id,
                component_sku=component.sku,
                component_name=edge.display_name or component.name,
                component_version=component.version,
                quantity=edge.quantity,
                price=_money(component.get_component_unit_price(edge.price_override)),
                is_required=edge.is_required,
                is_included=edge.is_included,
                category=component.sku_category,
                components=children,
            )
        )
    return tuple(nodes)


def rollup_totals(components: Iterable[ComponentSnapshot]) -> Tuple[Decimal, Decimal]:
    """
    Sum extended prices over every node at any depth.

    Returns:
        (included_total, optional_total)
    """
    included = Decimal("0.00")
    optional = Decimal("0.00")
    for top in components:
        for node in top.walk():
            if node.is_included:
                included += node.extended_price
            else:
                optional += node.extended_price
    return _money(included), _money(optional)


def build_product_tree(product_id: int, session: Session = None) -> dict:
    """
    Live, unfrozen projection of a product's tree for admin preview.

    Same shape as a stored snapshot (for quantity 1) plus the product's
    current status.
    """
    if session is not None:
        return _build_product_tree_impl(product_id, session)

    with session_scope() as session:
        return _build_product_tree_impl(product_id, session)


def _build_product_tree_impl(product_id: int, session: Session) -> dict:
    """Internal implementation of build_product_tree."""
    snapshot = _build_snapshot_impl(product_id, 1, session)
    product = session.get(Product, product_id)
    tree = snapshot.to_dict()
    tree.pop("quantity")
    tree.pop("line_total")
    tree["status"] = product.status.value
    return tree


def calculate_order_totals(snapshots: Iterable[LineItemSnapshot]) -> Tuple[Decimal, int]:
    """
    Order subtotal and item count from its line snapshots.

    Returns:
        (subtotal, item_count)
    """
    subtotal = Decimal("0.00")
    item_count = 0
    for snapshot in snapshots:
        subtotal += snapshot.line_total
        item_count += snapshot.quantity
    return _money(subtotal), item_count


def find_component(snapshot: LineItemSnapshot, component_id: int) -> Optional[ComponentSnapshot]:
    """First node for ``component_id`` anywhere in the snapshot tree, or None."""
    for top in snapshot.components:
        for node in top.walk():
            if node.component_id == component_id:
                return node
    return None
