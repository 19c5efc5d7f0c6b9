"""
Input validation functions for the storefront catalog.

This module provides validation functions for product input including:
- Numeric validation (non-negative money, whole-number stock)
- String validation (length, required fields)
- Flag validation
- Whole-record validation for product create and update payloads
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple

from .constants import (
    ERROR_INVALID_BOOLEAN,
    ERROR_INVALID_NON_NEGATIVE,
    ERROR_INVALID_NUMBER,
    ERROR_INVALID_WHOLE_NUMBER,
    ERROR_MONEY_TOO_LARGE,
    ERROR_REQUIRED_FIELD,
    MAX_DESCRIPTION_LENGTH,
    MAX_MONEY_AMOUNT,
    MAX_NAME_LENGTH,
    MONEY_QUANTUM,
)


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is not empty.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or not isinstance(value, str) or value.strip() == "":
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: Optional[str], max_length: int, field_name: str = "Field"
) -> Tuple[bool, str]:
    """
    Validate that a string doesn't exceed maximum length.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value and len(value) > max_length:
        return False, f"{field_name}: Must be {max_length} characters or less"
    return True, ""


def validate_non_negative_money(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a value is a non-negative amount of money that fits a
    price column once rounded to cents.

    Floats are accepted but converted through ``str`` so 19.99 stays 19.99.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if not amount.is_finite():
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if amount < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    try:
        amount = amount.quantize(MONEY_QUANTUM)
    except InvalidOperation:
        return False, f"{field_name}: {ERROR_MONEY_TOO_LARGE}"
    if amount > MAX_MONEY_AMOUNT:
        return False, f"{field_name}: {ERROR_MONEY_TOO_LARGE}"
    return True, ""


def validate_non_negative_int(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """Validate that a value is a whole number >= 0 (bools are rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{field_name}: {ERROR_INVALID_WHOLE_NUMBER}"
    if value < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    return True, ""


def validate_boolean(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    if not isinstance(value, bool):
        return False, f"{field_name}: {ERROR_INVALID_BOOLEAN}"
    return True, ""


def parse_money(value: Any) -> Decimal:
    """
    Convert a validated money value to a Decimal with two places.

    Args:
        value: int, str, float or Decimal

    Returns:
        Decimal quantized to cents
    """
    return Decimal(str(value)).quantize(MONEY_QUANTUM)


def validate_product_data(data: dict, partial: bool = False) -> Tuple[bool, list]:  # noqa: C901
    """
    Validate the editable fields of a product.

    Args:
        data: Dictionary containing product fields
        partial: True for updates, where only supplied fields are checked

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    # Required on create: name
    if not partial or "name" in data:
        is_valid, error = validate_required_string(data.get("name"), "Name")
        if not is_valid:
            errors.append(error)
        else:
            is_valid, error = validate_string_length(data["name"], MAX_NAME_LENGTH, "Name")
            if not is_valid:
                errors.append(error)

    # Required on create: base price
    if not partial or "base_price" in data:
        if data.get("base_price") is None:
            errors.append(f"Base price: {ERROR_REQUIRED_FIELD}")
        else:
            is_valid, error = validate_non_negative_money(data["base_price"], "Base price")
            if not is_valid:
                errors.append(error)

    # Optional: component price (None clears it)
    if data.get("component_price") is not None:
        is_valid, error = validate_non_negative_money(data["component_price"], "Component price")
        if not is_valid:
            errors.append(error)

    # Optional: description
    if data.get("description"):
        is_valid, error = validate_string_length(
            data["description"], MAX_DESCRIPTION_LENGTH, "Description"
        )
        if not is_valid:
            errors.append(error)

    # Optional: stock (None means not tracked)
    if data.get("stock_quantity") is not None:
        is_valid, error = validate_non_negative_int(data["stock_quantity"], "Stock quantity")
        if not is_valid:
            errors.append(error)

    for flag, label in (
        ("can_be_component", "Can be component"),
        ("can_have_components", "Can have components"),
        ("is_available_for_purchase", "Available for purchase"),
    ):
        if flag in data:
            is_valid, error = validate_boolean(data[flag], label)
            if not is_valid:
                errors.append(error)

    return len(errors) == 0, errors
