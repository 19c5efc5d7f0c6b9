"""
Catalog CLI Utility

Command-line interface for catalog administration and test checkouts.
No UI required - designed for programmatic and testing use.

Usage Examples:
    # Create a product (SKU TPC-PUMP-A01-V01)
    python -m src.utils.catalog_cli create-product --name "D5 Pump" --price 89.99 \\
        --category PUMP --code A01

    # Attach a component
    python -m src.utils.catalog_cli add-component 1 2 --quantity 2

    # Show the live component tree with pricing
    python -m src.utils.catalog_cli tree 1

    # Place an order for two units of product 1
    python -m src.utils.catalog_cli create-order 1:2 --email buyer@example.com

    # Update a product (forks a new version if orders use it)
    python -m src.utils.catalog_cli update-product 1 --price 99.99
"""

import argparse
import json
import sys
from typing import List, Optional

from src.services import catalog_service
from src.services.database import initialize_app_database
from src.services.exceptions import ServiceError
from src.services.snapshot_service import LineItemSnapshot
from src.utils.error_messages import handle_error


def _fail(exception: Exception, operation: str) -> int:
    title, message = handle_error(exception, operation)
    print(f"ERROR ({title}): {message}")
    return 1


def _print_nodes(nodes: List[dict], indent: int = 1) -> None:
    for node in nodes:
        flags = []
        if not node["is_included"]:
            flags.append("optional")
        if not node["is_required"]:
            flags.append("removable")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(
            f"{'  ' * indent}- {node['component_sku']} {node['component_name']} "
            f"x{node['quantity']} @ {node['price']}{suffix}"
        )
        _print_nodes(node["components"], indent + 1)


def create_product_cmd(args) -> int:
    """Create version 1 of a product."""
    data = {
        "name": args.name,
        "base_price": args.price,
        "sku_category": args.category,
        "sku_product_code": args.code,
        "can_be_component": not args.not_component,
        "can_have_components": not args.no_components,
    }
    if args.prefix:
        data["sku_prefix"] = args.prefix
    if args.component_price is not None:
        data["component_price"] = args.component_price
    if args.stock is not None:
        data["stock_quantity"] = args.stock
    if args.description:
        data["description"] = args.description

    try:
        product = catalog_service.create_product(data)
    except ServiceError as e:
        return _fail(e, "Create product")

    print(f"Created product {product.id}: {product.sku} {product.name} ({product.base_price})")
    return 0


def update_product_cmd(args) -> int:
    """Update a product; forks a new version when orders use it."""
    changes = {}
    if args.name is not None:
        changes["name"] = args.name
    if args.price is not None:
        changes["base_price"] = args.price
    if args.component_price is not None:
        changes["component_price"] = args.component_price
    if args.stock is not None:
        changes["stock_quantity"] = args.stock
    if args.description is not None:
        changes["description"] = args.description

    try:
        result = catalog_service.update_product(
            args.product_id,
            changes,
            expected_version=args.expected_version,
            change_description=args.note,
        )
    except ServiceError as e:
        return _fail(e, "Update product")

    print(result.message)
    print(f"Current version: product {result.product.id} ({result.product.sku})")
    return 0


def add_component_cmd(args) -> int:
    config = {
        "quantity": args.quantity,
        "is_included": not args.optional,
        "is_required": not args.not_required,
        "sort_order": args.sort_order,
    }
    if args.price_override is not None:
        config["price_override"] = args.price_override
    if args.display_name:
        config["display_name"] = args.display_name

    try:
        catalog_service.add_component(args.parent_id, args.component_id, **config)
    except ServiceError as e:
        return _fail(e, "Add component")

    print(f"Added product {args.component_id} to product {args.parent_id} (x{args.quantity})")
    return 0


def remove_component_cmd(args) -> int:
    try:
        removed = catalog_service.remove_component(args.parent_id, args.component_id)
    except ServiceError as e:
        return _fail(e, "Remove component")

    if removed:
        print(f"Removed product {args.component_id} from product {args.parent_id}")
    else:
        print(f"Product {args.component_id} was not a component of product {args.parent_id}")
    return 0


def tree_cmd(args) -> int:
    """Print the live component tree of a product."""
    try:
        tree = catalog_service.get_product_tree(args.product_id)
    except ServiceError as e:
        return _fail(e, "Show tree")

    if args.json:
        print(json.dumps(tree, indent=2, sort_keys=True))
        return 0

    print(f"{tree['product_sku']} {tree['product_name']} [{tree['status']}]")
    _print_nodes(tree["components"])
    print(f"Base price:        {tree['base_price']}")
    print(f"Included total:    {tree['included_components_total']}")
    print(f"Optional total:    {tree['optional_components_total']}")
    print(f"Unit price:        {tree['unit_price']}")
    return 0


def _parse_item(value: str) -> dict:
    product_id, _, quantity = value.partition(":")
    try:
        return {"product_id": int(product_id), "quantity": int(quantity or 1)}
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected PRODUCT_ID[:QUANTITY], got '{value}'")


def create_order_cmd(args) -> int:
    try:
        order = catalog_service.create_order(args.items, customer_email=args.email, notes=args.notes)
    except ServiceError as e:
        return _fail(e, "Create order")

    print(f"Created order {order.order_number}: {order.item_count} item(s), subtotal {order.subtotal}")
    return 0


def show_order_cmd(args) -> int:
    try:
        if args.order.isdigit():
            order = catalog_service.get_order(int(args.order))
        else:
            order = catalog_service.get_order_by_number(args.order)
    except ServiceError as e:
        return _fail(e, "Show order")

    print(f"Order {order.order_number} [{order.status.value}]")
    for line_item in order.line_items:
        snapshot = LineItemSnapshot.from_line_item(line_item)
        print(f"{snapshot.product_sku} {snapshot.product_name} x{snapshot.quantity} = {snapshot.line_total}")
        _print_nodes(snapshot.component_tree())
    print(f"Subtotal: {order.subtotal}")
    return 0


def versions_cmd(args) -> int:
    try:
        versions = catalog_service.get_product_versions(args.product_id)
    except ServiceError as e:
        return _fail(e, "List versions")

    for product in versions:
        replaced = f" -> replaced by {product.replaced_by}" if product.replaced_by else ""
        print(f"{product.id}\t{product.sku}\t{product.status.value}\t{product.base_price}{replaced}")
    return 0


def sunset_cmd(args) -> int:
    try:
        product = catalog_service.sunset_product(
            args.product_id, args.reason, replacement_product_id=args.replacement
        )
    except ServiceError as e:
        return _fail(e, "Sunset product")

    print(f"Product {product.sku} is now sunset")
    return 0


def discontinue_cmd(args) -> int:
    try:
        result = catalog_service.discontinue_product(args.product_id, args.reason)
    except ServiceError as e:
        return _fail(e, "Discontinue product")

    if result.deleted:
        print(f"Product {result.product_id} was not used by any order and has been deleted")
    else:
        print(f"Product {result.product_id} is used by orders and is now {result.status}")
    return 0


def audit_cmd(args) -> int:
    try:
        violations = catalog_service.audit_graph()
    except ServiceError as e:
        return _fail(e, "Audit graph")

    if not violations:
        print("Component graph is healthy")
        return 0
    for violation in violations:
        print(f"{violation['type']}: {violation['product_ids']}")
    return 1


def rebuild_usage_index_cmd(args) -> int:
    try:
        written = catalog_service.rebuild_usage_index()
    except ServiceError as e:
        return _fail(e, "Rebuild usage index")

    print(f"Usage index rebuilt: {written} row(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Catalog administration utility for the storefront catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create database tables")

    create_parser = subparsers.add_parser("create-product", help="Create a new product (V01)")
    create_parser.add_argument("--name", required=True)
    create_parser.add_argument("--price", required=True, help="Base price")
    create_parser.add_argument("--category", required=True, help="4-letter SKU category")
    create_parser.add_argument("--code", required=True, help="3-character SKU product code")
    create_parser.add_argument("--prefix", help="3-letter SKU prefix (default from config)")
    create_parser.add_argument("--component-price", dest="component_price")
    create_parser.add_argument("--stock", type=int, help="Units on hand (untracked if omitted)")
    create_parser.add_argument("--description")
    create_parser.add_argument("--not-component", action="store_true", help="Cannot be used as a component")
    create_parser.add_argument("--no-components", action="store_true", help="Cannot have components")

    update_parser = subparsers.add_parser("update-product", help="Update a product")
    update_parser.add_argument("product_id", type=int)
    update_parser.add_argument("--name")
    update_parser.add_argument("--price")
    update_parser.add_argument("--component-price", dest="component_price")
    update_parser.add_argument("--stock", type=int)
    update_parser.add_argument("--description")
    update_parser.add_argument("--expected-version", dest="expected_version", type=int)
    update_parser.add_argument("--note", help="Change description for the history log")

    add_parser = subparsers.add_parser("add-component", help="Attach a component to a product")
    add_parser.add_argument("parent_id", type=int)
    add_parser.add_argument("component_id", type=int)
    add_parser.add_argument("--quantity", type=int, default=1)
    add_parser.add_argument("--optional", action="store_true", help="Optional add-on (not included)")
    add_parser.add_argument("--not-required", dest="not_required", action="store_true")
    add_parser.add_argument("--price-override", dest="price_override")
    add_parser.add_argument("--display-name", dest="display_name")
    add_parser.add_argument("--sort-order", dest="sort_order", type=int, default=0)

    remove_parser = subparsers.add_parser("remove-component", help="Detach a component")
    remove_parser.add_argument("parent_id", type=int)
    remove_parser.add_argument("component_id", type=int)

    tree_parser = subparsers.add_parser("tree", help="Show a product's live component tree")
    tree_parser.add_argument("product_id", type=int)
    tree_parser.add_argument("--json", action="store_true", help="Print JSON")

    order_parser = subparsers.add_parser("create-order", help="Place an order")
    order_parser.add_argument("items", nargs="+", type=_parse_item, help="PRODUCT_ID[:QUANTITY]")
    order_parser.add_argument("--email")
    order_parser.add_argument("--notes")

    show_parser = subparsers.add_parser("show-order", help="Show a stored order")
    show_parser.add_argument("order", help="Order id or order number")

    versions_parser = subparsers.add_parser("versions", help="List all versions of a product")
    versions_parser.add_argument("product_id", type=int)

    sunset_parser = subparsers.add_parser("sunset", help="Retire a product from sale")
    sunset_parser.add_argument("product_id", type=int)
    sunset_parser.add_argument("--reason", required=True)
    sunset_parser.add_argument("--replacement", type=int)

    discontinue_parser = subparsers.add_parser("discontinue", help="Withdraw a product permanently")
    discontinue_parser.add_argument("product_id", type=int)
    discontinue_parser.add_argument("--reason", required=True)

    subparsers.add_parser("audit", help="Check the component graph for invariant violations")
    subparsers.add_parser("rebuild-usage-index", help="Regenerate the order usage index")

    return parser


COMMANDS = {
    "create-product": create_product_cmd,
    "update-product": update_product_cmd,
    "add-component": add_component_cmd,
    "remove-component": remove_component_cmd,
    "tree": tree_cmd,
    "create-order": create_order_cmd,
    "show-order": show_order_cmd,
    "versions": versions_cmd,
    "sunset": sunset_cmd,
    "discontinue": discontinue_cmd,
    "audit": audit_cmd,
    "rebuild-usage-index": rebuild_usage_index_cmd,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    # Initialize database (required for all operations)
    initialize_app_database()

    if args.command == "init-db":
        print("Database initialized")
        return 0

    handler = COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        return 1
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
