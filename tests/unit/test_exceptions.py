"""Unit tests for engine exceptions."""

import pytest

from apolon.core.exceptions import (
    ApolonError,
    DataAccessError,
    MetadataError,
    MigrationExecutionError,
    MigrationStateError,
    TypeMappingError,
)


class TestExceptionHierarchy:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        "exc_class", [MetadataError, TypeMappingError, DataAccessError, MigrationStateError]
    )
    def test_errors_derive_from_base(self, exc_class) -> None:
        """Test every error can be caught as ApolonError."""
        with pytest.raises(ApolonError, match="boom"):
            raise exc_class("boom")

    def test_execution_error_is_data_access_error(self) -> None:
        """Test migration failures are data access errors."""
        assert issubclass(MigrationExecutionError, DataAccessError)


class TestMigrationExecutionError:
    """Tests for MigrationExecutionError."""

    def test_execution_error_context(self) -> None:
        """Test the error carries the migration, statement and completed names."""
        completed = ["20240101000000_m1"]
        exc = MigrationExecutionError("20240102000000_m2", "syntax error", statement="ALTER TABLE x;", completed=completed)

        assert exc.migration_name == "20240102000000_m2"
        assert exc.statement == "ALTER TABLE x;"
        assert exc.completed == ["20240101000000_m1"]
        assert exc.completed is not completed
        assert str(exc) == "Migration '20240102000000_m2' failed: syntax error"

    def test_execution_error_defaults(self) -> None:
        """Test statement and completed are optional."""
        exc = MigrationExecutionError("20240102000000_m2", "connection lost")

        assert exc.statement is None
        assert exc.completed == []
