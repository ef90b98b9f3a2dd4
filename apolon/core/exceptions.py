"""Exceptions raised by the migration engine."""

from typing import List, Optional


class ApolonError(Exception):
    """Base exception for all engine errors."""

    pass


class MetadataError(ApolonError):
    """Entity metadata is missing or inconsistent."""

    pass


class TypeMappingError(ApolonError):
    """A type or operation cannot be translated to SQL."""

    pass


class DataAccessError(ApolonError):
    """Reading the catalog or executing SQL failed."""

    pass


class MigrationStateError(ApolonError):
    """The requested migration target is inconsistent with the known migrations or history."""

    pass


class MigrationExecutionError(DataAccessError):
    """A migration's transaction failed and was rolled back."""

    def __init__(
        self,
        migration_name: str,
        message: str,
        statement: Optional[str] = None,
        completed: Optional[List[str]] = None,
    ):
        """Initialize execution error.

        Args:
            migration_name: Full name of the migration that failed
            message: Error message from the database driver
            statement: Statement that failed, if the failure happened while executing one
            completed: Migrations that committed earlier in the same run
        """
        self.migration_name = migration_name
        self.statement = statement
        self.completed = list(completed or [])
        super().__init__(f"Migration '{migration_name}' failed: {message}")
