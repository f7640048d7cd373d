# src/connector_sync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs the console front-end.
"""

from __future__ import annotations

import logging
import sys

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..storage.kv_store import StorageError
from ..tasks.migrations import SchemaVersionError

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    log_file = setup_logging(log_dir=settings.data_dir, level=settings.log_level)

    logger.info("Starting %s... (log file %s)", settings.app_name, log_file)

    # IMPORTANT: reuse same settings object
    try:
        state = create_initial_state(settings=settings)
    except (StorageError, SchemaVersionError) as e:
        # Stored data is left untouched so it can be inspected or restored.
        logger.error("Cannot load stored data: %s", e)
        sys.exit(1)

    if settings.console_enabled:
        run_console_loop(state)
    else:
        logger.info("Console disabled; nothing to run.")

    logger.info("Bye.")


if __name__ == "__main__":
    main()
