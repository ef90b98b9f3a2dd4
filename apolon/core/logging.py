"""Logging configuration and helpers for migration events."""

import logging
import sys

from apolon.core.config import get_settings

settings = get_settings()

# Package logger; module loggers under "apolon." propagate to it
app_logger = logging.getLogger("apolon")
app_logger.setLevel(settings.LOG_LEVEL.upper())

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(settings.LOG_LEVEL.upper())

formatter = logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
console_handler.setFormatter(formatter)

if not app_logger.handlers:
    app_logger.addHandler(console_handler)

migration_logger = logging.getLogger("apolon.migrations")


def log_migration_applied(migration_name: str, statement_count: int) -> None:
    """
    Log a migration whose Up transaction committed.

    Args:
        migration_name: Full migration name (``<timestamp>_<name>``).
        statement_count: Number of DDL statements executed.
    """
    migration_logger.info(
        f"Migration applied - migration={migration_name}, statements={statement_count}"
    )


def log_migration_rolled_back(migration_name: str, statement_count: int) -> None:
    """
    Log a migration whose Down transaction committed.

    Args:
        migration_name: Full migration name.
        statement_count: Number of DDL statements executed.
    """
    migration_logger.info(
        f"Migration rolled back - migration={migration_name}, statements={statement_count}"
    )


def log_migration_failed(migration_name: str, direction: str, statement: str | None, error: str) -> None:
    """
    Log a migration whose transaction was rolled back.

    Args:
        migration_name: Full migration name.
        direction: "up" or "down".
        statement: Statement that was executing when the failure happened, if any.
        error: Error message from the driver.
    """
    migration_logger.error(
        f"Migration failed - migration={migration_name}, direction={direction}, error={error}"
        + (f", statement={statement}" if statement else "")
    )


def log_schema_synced(statement_count: int) -> None:
    """Log a committed model sync."""
    migration_logger.info(f"Schema synced - statements={statement_count}")
