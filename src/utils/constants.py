"""
Constants for the storefront catalog core.

This module defines all system-wide constants including:
- Application metadata
- SKU format (field widths, version range)
- Component graph limits
- Snapshot and order conventions
"""

from decimal import Decimal
from typing import Dict, List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Storefront Catalog"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"
DATABASE_FILENAME = "storefront_catalog.db"

# ============================================================================
# SKU Format
# ============================================================================

# PREFIX-CATEGORY-CODE-VNN, e.g. TPC-PUMP-A01-V01
SKU_SEPARATOR = "-"
SKU_DEFAULT_PREFIX = "TPC"
SKU_PREFIX_LENGTH = 3
SKU_CATEGORY_LENGTH = 4
SKU_CODE_LENGTH = 3
SKU_VERSION_TAG = "V"
SKU_MIN_VERSION = 1
SKU_MAX_VERSION = 99

SKU_FIELD_LENGTHS: Dict[str, int] = {
    "prefix": SKU_PREFIX_LENGTH,
    "category": SKU_CATEGORY_LENGTH,
    "code": SKU_CODE_LENGTH,
}

# Known category codes (informational; any 4 uppercase letters are accepted)
SKU_CATEGORIES: List[str] = [
    "PUMP",  # Pumps
    "MOTR",  # Motors
    "RADI",  # Radiators
    "CLNT",  # Coolant
    "FITT",  # Fittings
    "KITS",  # Kits / bundles
]

# ============================================================================
# Component Graph
# ============================================================================

# root (0) -> component (1) -> sub-component (2)
MAX_COMPONENT_DEPTH = 2

DEFAULT_COMPONENT_QUANTITY = 1

# ============================================================================
# Product Lifecycle
# ============================================================================

# Fields that identify a version and may not be changed by an update
IMMUTABLE_PRODUCT_FIELDS = frozenset(
    {
        "id",
        "uuid",
        "sku",
        "sku_prefix",
        "sku_category",
        "sku_product_code",
        "sku_version",
        "version",
        "base_product_id",
        "previous_version_id",
        "replaced_by",
        "status",
        "created_at",
        "updated_at",
    }
)

# Fields an update may change
MUTABLE_PRODUCT_FIELDS = frozenset(
    {
        "name",
        "description",
        "base_price",
        "component_price",
        "can_be_component",
        "can_have_components",
        "stock_quantity",
        "is_available_for_purchase",
    }
)

# ============================================================================
# Snapshots and Orders
# ============================================================================

SNAPSHOT_SCHEMA_VERSION = 1

ORDER_NUMBER_PREFIX = "TPC"

MONEY_QUANTUM = Decimal("0.01")

# Largest amount a Numeric(10, 2) price column holds
MAX_MONEY_AMOUNT = Decimal("99999999.99")

# Generic checkout message (never leaks graph structure)
CHECKOUT_UNAVAILABLE_MESSAGE = "Item no longer available"

# ============================================================================
# Validation
# ============================================================================

MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_NOTES_LENGTH = 500

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_NON_NEGATIVE = "Must be zero or greater"
ERROR_INVALID_WHOLE_NUMBER = "Must be a whole number"
ERROR_INVALID_BOOLEAN = "Must be true or false"
ERROR_MONEY_TOO_LARGE = "Must be 99,999,999.99 or less"
