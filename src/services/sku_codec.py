"""
SKU codec - encode, decode and version the fixed-format product SKU.

SKU Format: PREFIX-CATEGORY-CODE-VNN (16 characters)
Example: TPC-PUMP-A01-V01

Structure:
- PREFIX: 3 uppercase letters (brand, e.g. TPC)
- CATEGORY: 4 uppercase letters (PUMP, MOTR, RADI, CLNT)
- CODE: 3 uppercase letters/digits (A01, M01, R02)
- VERSION: "V" + 2 digits, 01-99

All functions are pure; they never touch the database.
"""

import re
from typing import NamedTuple

from src.services.exceptions import (
    InvalidFieldLength,
    MalformedSKU,
    VersionLimitReached,
    VersionOutOfRange,
)
from src.utils.constants import (
    SKU_CATEGORY_LENGTH,
    SKU_CODE_LENGTH,
    SKU_MAX_VERSION,
    SKU_MIN_VERSION,
    SKU_PREFIX_LENGTH,
    SKU_SEPARATOR,
    SKU_VERSION_TAG,
)

SKU_PATTERN = re.compile(r"([A-Z]{3})-([A-Z]{4})-([A-Z0-9]{3})-V([0-9]{2})")

_FIELD_PATTERNS = {
    "prefix": re.compile(r"[A-Z]+"),
    "category": re.compile(r"[A-Z]+"),
    "code": re.compile(r"[A-Z0-9]+"),
}


class SKUParts(NamedTuple):
    """Decoded SKU fields."""

    prefix: str
    category: str
    code: str
    version: int


def _check_field(field: str, value: str, width: int) -> None:
    if not isinstance(value, str) or len(value) != width:
        raise InvalidFieldLength(field, value, width)
    if not _FIELD_PATTERNS[field].fullmatch(value):
        raise MalformedSKU(value, reason=f"{field} contains invalid characters")


def _check_version(version) -> None:
    if isinstance(version, bool) or not isinstance(version, int):
        raise VersionOutOfRange(version, SKU_MIN_VERSION, SKU_MAX_VERSION)
    if version < SKU_MIN_VERSION or version > SKU_MAX_VERSION:
        raise VersionOutOfRange(version, SKU_MIN_VERSION, SKU_MAX_VERSION)


def format_version(version: int) -> str:
    """Format a version number as its SKU tag, e.g. 2 -> "V02"."""
    _check_version(version)
    return f"{SKU_VERSION_TAG}{version:02d}"


def encode(prefix: str, category: str, code: str, version: int = 1) -> str:
    """
    Build an SKU from its fields.

    Args:
        prefix: 3-letter brand prefix
        category: 4-letter category
        code: 3-character product code
        version: Version number 1-99

    Returns:
        SKU string, e.g. "TPC-PUMP-A01-V01"

    Raises:
        InvalidFieldLength: If a field has the wrong width
        MalformedSKU: If a field contains characters outside its class
        VersionOutOfRange: If version is not in 1-99
    """
    _check_field("prefix", prefix, SKU_PREFIX_LENGTH)
    _check_field("category", category, SKU_CATEGORY_LENGTH)
    _check_field("code", code, SKU_CODE_LENGTH)
    version_tag = format_version(version)
    return SKU_SEPARATOR.join((prefix, category, code, version_tag))


def decode(sku: str) -> SKUParts:
    """
    Parse an SKU into its fields.

    Raises:
        MalformedSKU: If the string does not match the SKU pattern or the
            version is V00
    """
    if not isinstance(sku, str):
        raise MalformedSKU(str(sku))
    match = SKU_PATTERN.fullmatch(sku)
    if not match:
        raise MalformedSKU(sku)

    version = int(match.group(4))
    if version < SKU_MIN_VERSION:
        raise MalformedSKU(sku, reason="version must be at least 01")

    return SKUParts(
        prefix=match.group(1),
        category=match.group(2),
        code=match.group(3),
        version=version,
    )


def increment_version(sku: str) -> str:
    """
    Return the SKU of the next version, all other fields unchanged.

    Raises:
        MalformedSKU: If sku is not a valid SKU
        VersionLimitReached: If sku is already at version 99
    """
    parts = decode(sku)
    if parts.version >= SKU_MAX_VERSION:
        raise VersionLimitReached(sku, SKU_MAX_VERSION)
    return encode(parts.prefix, parts.category, parts.code, parts.version + 1)


def get_base_sku(sku: str) -> str:
    """SKU without its version tag, e.g. "TPC-PUMP-A01"."""
    parts = decode(sku)
    return SKU_SEPARATOR.join((parts.prefix, parts.category, parts.code))


def is_same_product(sku1: str, sku2: str) -> bool:
    """True if two SKUs are versions of the same product (False if either is malformed)."""
    try:
        return get_base_sku(sku1) == get_base_sku(sku2)
    except MalformedSKU:
        return False


def is_valid_sku(sku: str) -> bool:
    """True if sku decodes."""
    try:
        decode(sku)
        return True
    except MalformedSKU:
        return False


def get_version_string(sku: str) -> str:
    """Version tag of an SKU, e.g. "V01"."""
    return format_version(decode(sku).version)


def get_version_number(sku: str) -> int:
    """Version number of an SKU."""
    return decode(sku).version
