"""
Main entry point for the storefront catalog command line tool.

This module configures logging from the environment and dispatches to the
catalog CLI.
"""

import logging
import os
import sys
from typing import List, Optional

from src.services.logging_utils import configure_logging
from src.utils.catalog_cli import main as cli_main
from src.utils.config import get_config

ENV_LOG_LEVEL = "STOREFRONT_LOG_LEVEL"


def main(argv: Optional[List[str]] = None) -> int:
    """Configure logging and run the CLI."""
    level_name = os.environ.get(ENV_LOG_LEVEL, "WARNING").upper()
    configure_logging(getattr(logging, level_name, logging.WARNING))

    config = get_config()
    logging.getLogger(__name__).info(
        f"{config.app_name} {config.app_version} ({config.environment}) using {config.database_url}"
    )
    return cli_main(argv)


if __name__ == "__main__":
    sys.exit(main())
