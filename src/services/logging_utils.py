"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across graph edits, versioning and
checkout.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="fork_product",
        outcome="success",
        product_id=12,
        new_product_id=31,
        new_sku="TPC-PUMP-A01-V02",
    )

    # Log a rejected edit
    log_operation(
        logger,
        operation="add_edge",
        outcome="max_depth_exceeded",
        level=logging.WARNING,
        parent_id=4,
        component_id=9,
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "storefront_catalog.services"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance with the 'storefront_catalog.services' prefix.

    Example:
        >>> logger = get_service_logger("src.services.version_service")
        >>> logger.name
        'storefront_catalog.services.version_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging
    handlers, and appended to the message for plain-text handlers.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "add_edge", "create_order")
        outcome: Outcome description (e.g., "success", "circular_reference")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields (entity IDs, SKUs, error details)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    if context:
        details = " ".join(f"{key}={value}" for key, value in context.items())
        logger.log(level, f"{operation}: {outcome} ({details})", extra=extra)
    else:
        logger.log(level, f"{operation}: {outcome}", extra=extra)


def configure_logging(level: int = logging.INFO) -> None:
    """
    Configure root logging for command line use.

    Args:
        level: Minimum level for the root logger
    """
    logging.basicConfig(level=level, format=LOG_FORMAT)
