"""
Tests for the catalog CLI.

Tests cover:
- Product, component and order commands against the test database
- Error output and exit codes
- Argument parsing of cart items
"""

import argparse
import json

import pytest

from src.utils import catalog_cli


@pytest.fixture
def cli(test_db, monkeypatch):
    """Run the CLI against the test database; returns (exit_code, stdout)."""
    monkeypatch.setattr(catalog_cli, "initialize_app_database", lambda: None)

    def _run(capsys, *argv):
        code = catalog_cli.main(list(argv))
        return code, capsys.readouterr().out

    return _run


def _create(cli, capsys, name, price, category, code, *extra):
    exit_code, out = cli(
        capsys,
        "create-product",
        "--name",
        name,
        "--price",
        price,
        "--category",
        category,
        "--code",
        code,
        *extra,
    )
    assert exit_code == 0, out
    return out


class TestProductCommands:
    def test_create_product(self, cli, capsys):
        out = _create(cli, capsys, "D5 Pump", "89.99", "PUMP", "A01")
        assert "TPC-PUMP-A01-V01" in out
        assert "89.99" in out

    def test_create_product_invalid_price(self, cli, capsys):
        code, out = cli(
            capsys, "create-product", "--name", "X", "--price", "abc", "--category", "PUMP", "--code", "A01"
        )
        assert code == 1
        assert out.startswith("ERROR (Validation Error):")

    def test_create_product_bad_sku(self, cli, capsys):
        code, out = cli(
            capsys, "create-product", "--name", "X", "--price", "1", "--category", "PMP", "--code", "A01"
        )
        assert code == 1
        assert "Invalid SKU" in out

    def test_update_in_place_then_fork(self, cli, capsys):
        _create(cli, capsys, "D5 Pump", "100", "PUMP", "A01")

        code, out = cli(capsys, "update-product", "1", "--price", "110")
        assert code == 0
        assert "Product TPC-PUMP-A01-V01 updated." in out

        cli(capsys, "create-order", "1")
        code, out = cli(capsys, "update-product", "1", "--price", "120")
        assert code == 0
        assert "new version TPC-PUMP-A01-V02" in out

        code, out = cli(capsys, "versions", "1")
        lines = out.strip().splitlines()
        assert len(lines) == 2
        assert "sunset" in lines[0]
        assert "active" in lines[1]

    def test_stale_update(self, cli, capsys):
        _create(cli, capsys, "D5 Pump", "100", "PUMP", "A01")
        code, out = cli(capsys, "update-product", "1", "--name", "New", "--expected-version", "3")
        assert code == 1
        assert "Out of Date" in out

    def test_sunset_and_discontinue(self, cli, capsys):
        _create(cli, capsys, "Pump", "100", "PUMP", "A01")
        _create(cli, capsys, "Fan", "10", "FANS", "F01")

        code, out = cli(capsys, "sunset", "1", "--reason", "Retired")
        assert code == 0
        assert "sunset" in out

        code, out = cli(capsys, "discontinue", "2", "--reason", "Never sold")
        assert code == 0
        assert "has been deleted" in out


class TestComponentCommands:
    def test_add_component_and_tree(self, cli, capsys):
        _create(cli, capsys, "D5 Pump", "100", "PUMP", "A01")
        _create(cli, capsys, "Motor", "60", "MOTR", "M01", "--component-price", "50")

        code, out = cli(capsys, "add-component", "1", "2", "--quantity", "2")
        assert code == 0

        code, out = cli(capsys, "tree", "1")
        assert code == 0
        assert "TPC-MOTR-M01-V01 Motor x2 @ 50.00" in out
        assert "Unit price:        200.00" in out

        code, out = cli(capsys, "tree", "1", "--json")
        tree = json.loads(out)
        assert tree["included_components_total"] == "100.00"

    def test_cycle_rejected(self, cli, capsys):
        _create(cli, capsys, "A", "1", "PUMP", "A01")
        _create(cli, capsys, "B", "1", "PUMP", "A02")
        cli(capsys, "add-component", "1", "2")

        code, out = cli(capsys, "add-component", "2", "1")
        assert code == 1
        assert "ERROR (Invalid Component)" in out
        assert "circular" in out

    def test_remove_component(self, cli, capsys):
        _create(cli, capsys, "A", "1", "PUMP", "A01")
        _create(cli, capsys, "B", "1", "PUMP", "A02")
        cli(capsys, "add-component", "1", "2")

        code, out = cli(capsys, "remove-component", "1", "2")
        assert "Removed" in out
        code, out = cli(capsys, "remove-component", "1", "2")
        assert code == 0
        assert "was not a component" in out

    def test_audit_healthy(self, cli, capsys):
        code, out = cli(capsys, "audit")
        assert code == 0
        assert "healthy" in out


class TestOrderCommands:
    def test_create_and_show_order(self, cli, capsys):
        _create(cli, capsys, "D5 Pump", "100", "PUMP", "A01")

        code, out = cli(capsys, "create-order", "1:2", "--email", "buyer@example.com")
        assert code == 0
        assert "2 item(s), subtotal 200.00" in out
        order_number = out.split()[2].rstrip(":")

        code, out = cli(capsys, "show-order", order_number)
        assert code == 0
        assert f"Order {order_number} [pending]" in out
        assert "TPC-PUMP-A01-V01 D5 Pump x2 = 200.00" in out

        code, out = cli(capsys, "show-order", "1")
        assert code == 0

    def test_checkout_error_is_generic(self, cli, capsys):
        code, out = cli(capsys, "create-order", "99")
        assert code == 1
        assert out.strip() == "ERROR (Checkout Failed): Item no longer available"

    def test_rebuild_usage_index(self, cli, capsys):
        _create(cli, capsys, "D5 Pump", "100", "PUMP", "A01")
        cli(capsys, "create-order", "1")

        code, out = cli(capsys, "rebuild-usage-index")
        assert code == 0
        assert "1 row(s)" in out

    def test_parse_item(self):
        assert catalog_cli._parse_item("4:3") == {"product_id": 4, "quantity": 3}
        assert catalog_cli._parse_item("4") == {"product_id": 4, "quantity": 1}
        with pytest.raises(argparse.ArgumentTypeError):
            catalog_cli._parse_item("pump")


class TestMain:
    def test_no_command_prints_help(self, cli, capsys):
        code, out = cli(capsys)
        assert code == 1
        assert "usage" in out.lower()

    def test_init_db(self, cli, capsys):
        code, out = cli(capsys, "init-db")
        assert code == 0
        assert "Database initialized" in out
