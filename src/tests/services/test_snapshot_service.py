"""
Tests for the Snapshot Service.

Tests cover:
- Effective price resolution (override, component price, base price)
- Included / optional roll-ups at every depth
- Depth-2 nodes are leaves
- Canonical, byte-stable serialization
- Stored orders are unaffected by later catalog edits
"""

import dataclasses
import json
from decimal import Decimal

import pytest

from src.services import catalog_service, snapshot_service
from src.services.exceptions import ProductNotFoundError, ValidationError
from src.services.snapshot_service import ComponentSnapshot, LineItemSnapshot


@pytest.fixture
def kit(make_product, pump, motor):
    """Kit (200.00) -> 2 x Pump -> 3 x Motor."""
    kit = make_product(name="Cooling Kit", base_price="200.00", category="KITS")
    catalog_service.add_component(kit.id, pump.id, quantity=2)
    catalog_service.add_component(pump.id, motor.id, quantity=3)
    return kit


class TestPricing:
    def test_product_without_components(self, pump):
        snapshot = snapshot_service.build_snapshot(pump.id, 2)

        assert snapshot.components == ()
        assert snapshot.base_price == Decimal("100.00")
        assert snapshot.included_components_total == Decimal("0.00")
        assert snapshot.unit_price == Decimal("100.00")
        assert snapshot.line_total == Decimal("200.00")

    def test_component_price_preferred_over_base(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)

        snapshot = snapshot_service.build_snapshot(pump.id, 1)

        assert snapshot.components[0].price == Decimal("50.00")
        assert snapshot.included_components_total == Decimal("50.00")
        assert snapshot.unit_price == Decimal("150.00")

    def test_edge_override_wins(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id, price_override=Decimal("35.00"))

        snapshot = snapshot_service.build_snapshot(pump.id, 1)
        assert snapshot.components[0].price == Decimal("35.00")
        assert snapshot.unit_price == Decimal("135.00")

    def test_base_price_fallback(self, pump, radiator):
        catalog_service.add_component(pump.id, radiator.id)

        snapshot = snapshot_service.build_snapshot(pump.id, 1)
        assert snapshot.components[0].price == Decimal("40.00")

    def test_optional_components_split(self, pump, motor, radiator):
        catalog_service.add_component(pump.id, motor.id, quantity=2)
        catalog_service.add_component(pump.id, radiator.id, is_included=False, is_required=False)

        snapshot = snapshot_service.build_snapshot(pump.id, 3)

        assert snapshot.included_components_total == Decimal("100.00")
        assert snapshot.optional_components_total == Decimal("40.00")
        assert snapshot.unit_price == Decimal("240.00")
        assert snapshot.line_total == Decimal("720.00")

    def test_nested_rollup_uses_edge_quantities(self, kit):
        snapshot = snapshot_service.build_snapshot(kit.id, 1)

        # 2 x pump (100.00) + 3 x motor (50.00)
        assert snapshot.included_components_total == Decimal("350.00")
        assert snapshot.unit_price == Decimal("550.00")

    def test_unit_price_identity(self, kit, radiator):
        catalog_service.add_component(kit.id, radiator.id, is_included=False)
        snapshot = snapshot_service.build_snapshot(kit.id, 4)

        assert snapshot.unit_price == (
            snapshot.base_price
            + snapshot.included_components_total
            + snapshot.optional_components_total
        )
        assert snapshot.line_total == snapshot.unit_price * 4


class TestTreeShape:
    def test_depth_two_nodes_are_leaves(self, kit, pump, motor):
        snapshot = snapshot_service.build_snapshot(kit.id, 1)

        (pump_node,) = snapshot.components
        (motor_node,) = pump_node.components
        assert pump_node.component_id == pump.id
        assert motor_node.component_id == motor.id
        assert motor_node.components == ()
        assert motor_node.quantity == 3

    def test_identity_copied(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id, display_name="Quiet motor")

        node = snapshot_service.build_snapshot(pump.id, 1).components[0]
        assert node.component_sku == motor.sku
        assert node.component_name == "Quiet motor"
        assert node.component_version == 1
        assert node.category == "MOTR"
        assert node.is_required is True

    def test_name_falls_back_to_product(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)
        node = snapshot_service.build_snapshot(pump.id, 1).components[0]
        assert node.component_name == "Pump Motor"

    def test_children_follow_sort_order(self, pump, motor, radiator):
        catalog_service.add_component(pump.id, motor.id, sort_order=5)
        catalog_service.add_component(pump.id, radiator.id, sort_order=1)

        snapshot = snapshot_service.build_snapshot(pump.id, 1)
        assert [n.component_id for n in snapshot.components] == [radiator.id, motor.id]

    def test_find_component(self, kit, motor):
        snapshot = snapshot_service.build_snapshot(kit.id, 1)

        assert snapshot_service.find_component(snapshot, motor.id).quantity == 3
        assert snapshot_service.find_component(snapshot, 999) is None


class TestValidation:
    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True, None])
    def test_rejects_bad_quantity(self, pump, quantity):
        with pytest.raises(ValidationError):
            snapshot_service.build_snapshot(pump.id, quantity)

    def test_missing_product(self, test_db):
        with pytest.raises(ProductNotFoundError):
            snapshot_service.build_snapshot(4242, 1)


class TestSerialization:
    def test_json_is_byte_stable(self, kit):
        first = snapshot_service.build_snapshot(kit.id, 2).to_json()
        second = snapshot_service.build_snapshot(kit.id, 2).to_json()

        assert first == second
        assert ": " not in first and ", " not in first

    def test_json_keys_sorted_and_money_as_strings(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)
        data = json.loads(snapshot_service.build_snapshot(pump.id, 1).to_json())

        assert list(data) == sorted(data)
        assert data["unit_price"] == "150.00"
        assert data["components"][0]["price"] == "50.00"

    def test_from_dict_restores_value(self, kit):
        snapshot = snapshot_service.build_snapshot(kit.id, 2)
        assert LineItemSnapshot.from_dict(json.loads(snapshot.to_json())) == snapshot

    def test_line_item_conversion(self, kit):
        snapshot = snapshot_service.build_snapshot(kit.id, 1)
        line_item = snapshot.to_line_item()

        assert line_item.component_tree == snapshot.component_tree_json()
        assert LineItemSnapshot.from_line_item(line_item) == snapshot

    def test_snapshot_is_frozen(self, pump):
        snapshot = snapshot_service.build_snapshot(pump.id, 1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.unit_price = Decimal("1.00")

    def test_component_node_extended_price(self):
        node = ComponentSnapshot(
            component_id=1,
            component_sku="TPC-MOTR-M01-V01",
            component_name="Motor",
            component_version=1,
            quantity=3,
            price=Decimal("12.50"),
            is_required=True,
            is_included=True,
            category="MOTR",
        )
        assert node.extended_price == Decimal("37.50")
        assert list(node.walk()) == [node]


class TestOrderImmutability:
    def test_order_keeps_checkout_prices(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)
        order = catalog_service.create_order([{"product_id": pump.id, "quantity": 1}])

        catalog_service.update_product(pump.id, {"base_price": Decimal("200.00")})
        catalog_service.update_product(motor.id, {"component_price": Decimal("80.00")})

        (stored,) = catalog_service.get_line_item_snapshots(order.id)
        assert stored.base_price == Decimal("100.00")
        assert stored.components[0].price == Decimal("50.00")
        assert stored.unit_price == Decimal("150.00")
        assert stored.product_sku == pump.sku

    def test_stored_tree_matches_checkout_snapshot(self, kit):
        expected = snapshot_service.build_snapshot(kit.id, 1)
        order = catalog_service.create_order([{"product_id": kit.id, "quantity": 1}])

        assert order.line_items[0].component_tree == expected.component_tree_json()

    def test_new_orders_see_new_version(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)
        catalog_service.create_order([{"product_id": pump.id, "quantity": 1}])

        new_pump = catalog_service.update_product(pump.id, {"base_price": Decimal("200.00")}).product
        snapshot = snapshot_service.build_snapshot(new_pump.id, 1)

        assert snapshot.product_version == 2
        assert snapshot.unit_price == Decimal("250.00")


class TestProductTree:
    def test_live_tree_has_status_and_no_quantity(self, kit):
        tree = snapshot_service.build_product_tree(kit.id)

        assert tree["status"] == "active"
        assert "quantity" not in tree
        assert "line_total" not in tree
        assert tree["unit_price"] == "550.00"


class TestOrderTotals:
    def test_totals(self, pump, radiator):
        snapshots = [
            snapshot_service.build_snapshot(pump.id, 2),
            snapshot_service.build_snapshot(radiator.id, 1),
        ]
        assert snapshot_service.calculate_order_totals(snapshots) == (Decimal("240.00"), 3)

    def test_empty(self):
        assert snapshot_service.calculate_order_totals([]) == (Decimal("0.00"), 0)
