"""Unit tests for snapshot value types."""

import pytest

from apolon.core.migrations.models import MigrationResult, SchemaSnapshot, TableSnapshot


def test_table_equality_ignores_column_order(make_column):
    """Test two tables with the same columns in different order are equal."""
    first = TableSnapshot("public", "patients", [make_column("a"), make_column("b")])
    second = TableSnapshot("public", "patients", [make_column("b"), make_column("a")])

    assert first == second
    assert hash(first) == hash(second)


def test_table_rejects_duplicate_columns(make_column):
    """Test duplicate column names are rejected."""
    with pytest.raises(ValueError, match="Duplicate column"):
        TableSnapshot("public", "patients", [make_column("a"), make_column("a")])


def test_schema_equality_ignores_table_order(make_column):
    """Test two snapshots with the same tables in different order are equal."""
    patients = TableSnapshot("public", "patients", [make_column("a")])
    visits = TableSnapshot("public", "visits", [make_column("b")])

    assert SchemaSnapshot([patients, visits]) == SchemaSnapshot([visits, patients])


def test_schema_inequality_on_column_field(make_column):
    """Test a single differing column field makes snapshots unequal."""
    expected = SchemaSnapshot([TableSnapshot("public", "patients", [make_column("a", is_nullable=False)])])
    actual = SchemaSnapshot([TableSnapshot("public", "patients", [make_column("a", is_nullable=True)])])

    assert expected != actual


def test_schema_rejects_duplicate_tables():
    """Test duplicate table keys are rejected."""
    with pytest.raises(ValueError, match="Duplicate table"):
        SchemaSnapshot([TableSnapshot("public", "patients"), TableSnapshot("public", "patients")])


def test_schema_table_lookup(make_column):
    """Test tables are looked up by schema and name."""
    patients = TableSnapshot("public", "patients", [make_column("a")])
    snapshot = SchemaSnapshot([patients])

    assert snapshot.table("public", "patients") is patients
    assert snapshot.table("audit", "patients") is None
    assert len(snapshot) == 1


def test_describe_differences(make_column):
    """Test differences are listed per table, column and field."""
    expected = SchemaSnapshot(
        [
            TableSnapshot("public", "patients", [make_column("a", is_nullable=False), make_column("b")]),
            TableSnapshot("public", "visits", [make_column("id")]),
        ]
    )
    actual = SchemaSnapshot(
        [
            TableSnapshot("public", "patients", [make_column("a"), make_column("c")]),
            TableSnapshot("public", "legacy", [make_column("id")]),
        ]
    )

    issues = expected.describe_differences(actual)

    assert "Extra table public.legacy" in issues
    assert "Missing table public.visits" in issues
    assert "Missing column public.patients.b" in issues
    assert "Extra column public.patients.c" in issues
    assert "public.patients.a: is_nullable expected False, got True" in issues
    assert len(issues) == 5


def test_describe_differences_equal_snapshots(make_column):
    """Test equal snapshots have no differences."""
    snapshot = SchemaSnapshot([TableSnapshot("public", "patients", [make_column("a")])])
    assert snapshot.describe_differences(snapshot) == []


def test_migration_result_counts():
    """Test result counts reflect applied and rolled back names."""
    result = MigrationResult(success=True, applied_migrations=["a", "b"], rolled_back_migrations=["c"])
    assert result.applied_count == 2
    assert result.rolled_back_count == 1
