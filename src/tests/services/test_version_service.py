"""
Tests for the Version Service.

Tests cover:
- should_version() follows order usage at any depth
- apply_update() in place vs. fork, history rows, validation
- Fork details: SKU, lineage pointers, edge copy, incoming edges untouched
- Optimistic checks (StaleVersionError)
- create_version(), sunset_product(), discontinue() lifecycle rules
- Version queries
"""

from decimal import Decimal

import pytest

from src.models import Product, ProductChangeType, ProductStatus
from src.services import catalog_service, component_graph_service, version_service
from src.services.exceptions import (
    ComponentInUseError,
    InvalidStatusTransitionError,
    ProductNotFoundError,
    StaleVersionError,
    ValidationError,
    VersionLimitReached,
    VersioningNotRequiredError,
)


def _order(product_id, quantity=1):
    return catalog_service.create_order([{"product_id": product_id, "quantity": quantity}])


class TestShouldVersion:
    def test_unused_product(self, pump):
        assert version_service.should_version(pump.id) is False

    def test_root_usage(self, pump):
        _order(pump.id)
        assert version_service.should_version(pump.id) is True

    def test_component_usage(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)
        _order(pump.id)
        assert version_service.should_version(motor.id) is True


class TestApplyUpdateInPlace:
    def test_update_in_place_keeps_identity(self, pump):
        result = version_service.apply_update(pump.id, {"base_price": Decimal("120.00")})

        assert result.versioned is False
        assert result.product.id == pump.id
        assert result.product.sku == pump.sku
        assert result.product.base_price == Decimal("120.00")
        assert result.product.version == 1

    def test_in_place_update_writes_history(self, pump):
        version_service.apply_update(pump.id, {"name": "D5 Pump Pro"}, change_description="Rename")

        history = version_service.get_product_history(pump.id)
        assert len(history) == 1
        assert history[0].change_type == ProductChangeType.UPDATE
        assert history[0].change_description == "Rename"
        assert history[0].get_old_data()["name"] == "D5 Pump"
        assert history[0].get_new_data()["name"] == "D5 Pump Pro"
        assert history[0].new_product_id is None

    def test_money_strings_are_normalized(self, pump):
        result = version_service.apply_update(pump.id, {"component_price": "12.5"})
        assert result.product.component_price == Decimal("12.50")

    @pytest.mark.parametrize(
        "changes",
        [
            {"sku": "TPC-PUMP-A09-V01"},
            {"version": 5},
            {"status": "sunset"},
            {"base_product_id": 1},
        ],
    )
    def test_immutable_fields_rejected(self, pump, changes):
        with pytest.raises(ValidationError) as exc_info:
            version_service.apply_update(pump.id, changes)
        assert "Cannot be changed" in str(exc_info.value)

    def test_unknown_field_rejected(self, pump):
        with pytest.raises(ValidationError) as exc_info:
            version_service.apply_update(pump.id, {"colour": "red"})
        assert "Unknown product field" in str(exc_info.value)

    def test_invalid_values_rejected(self, pump):
        with pytest.raises(ValidationError):
            version_service.apply_update(pump.id, {"base_price": "-5"})
        with pytest.raises(ValidationError):
            version_service.apply_update(pump.id, {"name": "  "})
        with pytest.raises(ValidationError):
            version_service.apply_update(pump.id, {"stock_quantity": -1})

    def test_empty_changes_rejected(self, pump):
        with pytest.raises(ValidationError):
            version_service.apply_update(pump.id, {})

    def test_missing_product(self, test_db):
        with pytest.raises(ProductNotFoundError):
            version_service.apply_update(31337, {"name": "Ghost"})


class TestFork:
    def test_fork_when_used(self, pump):
        _order(pump.id)

        result = version_service.apply_update(pump.id, {"base_price": Decimal("150.00")})

        assert result.versioned is True
        assert result.previous_product_id == pump.id
        assert result.order_count == 1
        new = result.product
        assert new.id != pump.id
        assert new.sku == "TPC-PUMP-A01-V02"
        assert new.sku_version == "V02"
        assert new.version == pump.version + 1
        assert new.base_product_id == pump.id
        assert new.previous_version_id == pump.id
        assert new.status == ProductStatus.ACTIVE
        assert new.base_price == Decimal("150.00")
        assert new.name == pump.name
        assert "TPC-PUMP-A01-V02" in result.message
        assert "1 order(s)" in result.message

    def test_fork_sunsets_old_version(self, pump):
        _order(pump.id)
        result = version_service.apply_update(pump.id, {"base_price": Decimal("150.00")})

        old = catalog_service.get_product(pump.id)
        assert old.status == ProductStatus.SUNSET
        assert old.replaced_by == result.product.id
        assert old.is_available_for_purchase is False
        assert old.base_price == Decimal("100.00")
        assert old.sunset_date is not None

    def test_fork_keeps_explicit_unavailable(self, pump):
        _order(pump.id)

        result = version_service.apply_update(pump.id, {"is_available_for_purchase": False})

        assert result.versioned is True
        assert result.product.is_available_for_purchase is False
        assert catalog_service.get_product(result.product.id).is_available_for_purchase is False

    def test_fork_copies_outgoing_edges(self, pump, motor, radiator):
        catalog_service.add_component(pump.id, motor.id, quantity=2, price_override=Decimal("45.00"))
        catalog_service.add_component(pump.id, radiator.id, is_included=False, sort_order=1)
        _order(pump.id)

        new = version_service.apply_update(pump.id, {"name": "D5 Pump v2"}).product

        copied = component_graph_service.get_direct_children(new.id)
        assert [e.component_product_id for e in copied] == [motor.id, radiator.id]
        assert copied[0].quantity == 2
        assert copied[0].price_override == Decimal("45.00")
        assert copied[1].is_included is False
        # Old version keeps its own edges
        assert len(component_graph_service.get_direct_children(pump.id)) == 2

    def test_fork_leaves_incoming_edges(self, make_product, pump):
        kit = make_product(name="Kit", category="KITS")
        catalog_service.add_component(kit.id, pump.id)
        _order(kit.id)

        new = version_service.apply_update(pump.id, {"base_price": Decimal("110.00")}).product

        children = component_graph_service.get_direct_children(kit.id)
        assert [e.component_product_id for e in children] == [pump.id]
        assert component_graph_service.get_parent_products(new.id) == []

    def test_fork_writes_version_history(self, pump):
        _order(pump.id)
        new = version_service.apply_update(pump.id, {"base_price": Decimal("150.00")}).product

        history = version_service.get_product_history(new.id)
        assert len(history) == 1
        entry = history[0]
        assert entry.change_type == ProductChangeType.VERSION
        assert entry.product_id == pump.id
        assert entry.new_product_id == new.id
        assert entry.get_old_data()["sku"] == "TPC-PUMP-A01-V01"
        assert entry.get_new_data()["sku"] == "TPC-PUMP-A01-V02"

    def test_second_fork_keeps_lineage_root(self, pump):
        _order(pump.id)
        v2 = version_service.apply_update(pump.id, {"base_price": Decimal("110.00")}).product
        _order(v2.id)
        v3 = version_service.apply_update(v2.id, {"base_price": Decimal("120.00")}).product

        assert v3.sku == "TPC-PUMP-A01-V03"
        assert v3.version == 3
        assert v3.base_product_id == pump.id
        assert v3.previous_version_id == v2.id

    def test_used_only_as_component_forks(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)
        _order(pump.id)

        result = version_service.apply_update(motor.id, {"component_price": Decimal("40.00")})
        assert result.versioned is True

    def test_version_limit(self, test_db, pump):
        session = test_db()
        row = session.get(Product, pump.id)
        row.sku = "TPC-PUMP-A01-V99"
        row.sku_version = "V99"
        row.version = 99
        session.commit()
        _order(pump.id)

        with pytest.raises(VersionLimitReached):
            version_service.apply_update(pump.id, {"base_price": Decimal("1.00")})

        # Nothing changed
        assert catalog_service.get_product(pump.id).status == ProductStatus.ACTIVE


class TestRoleChanges:
    def test_cannot_drop_children_role_in_place(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)

        with pytest.raises(ValidationError) as exc_info:
            version_service.apply_update(pump.id, {"can_have_components": False})
        assert "can_have_components" in str(exc_info.value)
        assert catalog_service.get_product(pump.id).can_have_components is True

    def test_cannot_drop_children_role_on_fork(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)
        _order(pump.id)

        with pytest.raises(ValidationError):
            version_service.apply_update(pump.id, {"can_have_components": False})
        assert len(version_service.get_product_versions(pump.id)) == 1

        with pytest.raises(ValidationError):
            version_service.create_version(pump.id, {"can_have_components": False})

    def test_cannot_drop_component_role_while_used(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)

        with pytest.raises(ValidationError) as exc_info:
            version_service.apply_update(motor.id, {"can_be_component": False})
        assert f"component of product(s) {pump.id}" in str(exc_info.value)

    def test_forked_version_may_drop_component_role(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)
        _order(pump.id)

        result = version_service.apply_update(motor.id, {"can_be_component": False})

        assert result.versioned is True
        assert result.product.can_be_component is False
        # The pump still points at the old motor row
        children = component_graph_service.get_direct_children(pump.id)
        assert [e.component_product_id for e in children] == [motor.id]

    def test_roles_change_freely_without_edges(self, pump):
        result = version_service.apply_update(
            pump.id, {"can_have_components": False, "can_be_component": False}
        )
        assert result.product.can_have_components is False
        assert result.product.can_be_component is False


class TestStaleVersion:
    def test_update_superseded_version(self, pump):
        _order(pump.id)
        new = version_service.apply_update(pump.id, {"base_price": Decimal("150.00")}).product

        with pytest.raises(StaleVersionError) as exc_info:
            version_service.apply_update(pump.id, {"base_price": Decimal("160.00")})
        assert exc_info.value.replaced_by == new.id

    def test_expected_version_mismatch(self, pump):
        with pytest.raises(StaleVersionError) as exc_info:
            version_service.apply_update(pump.id, {"name": "X"}, expected_version=2)
        assert exc_info.value.current_version == 1

    def test_expected_version_match(self, pump):
        result = version_service.apply_update(pump.id, {"name": "X"}, expected_version=1)
        assert result.product.name == "X"


class TestCreateVersion:
    def test_unused_product_refused(self, pump):
        with pytest.raises(VersioningNotRequiredError):
            version_service.create_version(pump.id)

    def test_used_product_forked(self, pump):
        _order(pump.id)
        new = version_service.create_version(pump.id, {"description": "Quieter bearing"})
        assert new.sku.endswith("-V02")
        assert new.description == "Quieter bearing"


class TestLifecycle:
    def test_sunset(self, pump):
        product = version_service.sunset_product(pump.id, "End of line")

        assert product.status == ProductStatus.SUNSET
        assert product.sunset_reason == "End of line"
        assert product.is_available_for_purchase is False

    def test_sunset_with_replacement(self, pump, motor):
        product = version_service.sunset_product(pump.id, "Superseded", replacement_product_id=motor.id)
        assert product.replaced_by == motor.id

    def test_sunset_replacement_missing(self, pump):
        with pytest.raises(ProductNotFoundError):
            version_service.sunset_product(pump.id, "x", replacement_product_id=999)

    def test_sunset_twice_rejected(self, pump):
        version_service.sunset_product(pump.id, "once")
        with pytest.raises(InvalidStatusTransitionError):
            version_service.sunset_product(pump.id, "twice")

    def test_discontinue_unused_deletes(self, pump):
        result = version_service.discontinue(pump.id, "Never sold")

        assert result.deleted is True
        with pytest.raises(ProductNotFoundError):
            catalog_service.get_product(pump.id)

    def test_discontinue_used_keeps_row(self, pump):
        _order(pump.id)
        result = version_service.discontinue(pump.id, "Recalled")

        assert result.deleted is False
        assert result.status == "discontinued"
        product = catalog_service.get_product(pump.id)
        assert product.status == ProductStatus.DISCONTINUED
        assert product.discontinued_date is not None

    def test_discontinue_sunset_version(self, pump):
        _order(pump.id)
        version_service.apply_update(pump.id, {"base_price": Decimal("1.00")})

        result = version_service.discontinue(pump.id, "Old version")
        assert result.deleted is False

    def test_discontinue_twice_rejected(self, pump):
        _order(pump.id)
        version_service.discontinue(pump.id, "once")
        with pytest.raises(InvalidStatusTransitionError):
            version_service.discontinue(pump.id, "twice")

    def test_discontinue_unused_component_in_use(self, pump, motor):
        catalog_service.add_component(pump.id, motor.id)
        with pytest.raises(ComponentInUseError):
            version_service.discontinue(motor.id, "x")
        assert catalog_service.get_product(motor.id).status == ProductStatus.ACTIVE

    def test_no_reactivation(self, pump):
        version_service.sunset_product(pump.id, "x")
        with pytest.raises(StaleVersionError):
            version_service.apply_update(pump.id, {"name": "Back"})


class TestVersionQueries:
    def test_versions_from_any_member(self, pump):
        _order(pump.id)
        v2 = version_service.apply_update(pump.id, {"base_price": Decimal("110.00")}).product

        from_v1 = [p.id for p in version_service.get_product_versions(pump.id)]
        from_v2 = [p.id for p in version_service.get_product_versions(v2.id)]
        assert from_v1 == from_v2 == [pump.id, v2.id]
        assert version_service.get_latest_version(pump.id).id == v2.id

    def test_single_version(self, pump):
        assert [p.id for p in version_service.get_product_versions(pump.id)] == [pump.id]

    def test_versions_missing_product(self, test_db):
        with pytest.raises(ProductNotFoundError):
            version_service.get_product_versions(1234)

    def test_one_active_per_lineage(self, pump):
        _order(pump.id)
        v2 = version_service.apply_update(pump.id, {"base_price": Decimal("110.00")}).product
        _order(v2.id)
        version_service.apply_update(v2.id, {"base_price": Decimal("120.00")})

        statuses = [p.status for p in version_service.get_product_versions(pump.id)]
        assert statuses.count(ProductStatus.ACTIVE) == 1
        assert statuses[-1] == ProductStatus.ACTIVE
