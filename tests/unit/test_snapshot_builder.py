"""Unit tests for ModelSnapshotBuilder."""

from datetime import datetime
from uuid import UUID

import pytest

from apolon.core.exceptions import MetadataError, TypeMappingError
from apolon.core.mapping import ColumnMetadata, EntityMetadata, MetadataRegistry, PrimaryKeyMetadata
from apolon.core.migrations.differ import SchemaDiffer
from apolon.core.migrations.models import ColumnSnapshot, SchemaSnapshot, TableSnapshot
from apolon.core.migrations.snapshot_builder import ModelSnapshotBuilder
from apolon.core.migrations.sql import compile_operations


@pytest.fixture
def builder(registry):
    """Builder over the shared registry."""
    return ModelSnapshotBuilder(registry)


def test_build_identity_primary_key(builder, make_id_column):
    """Test an integer autoincrement primary key becomes an identity column."""
    table = builder.build(["patients"]).table("public", "patients")
    assert table.column("id") == make_id_column("patients")


def test_build_length_column(builder):
    """Test a varchar column carries its length and nullability."""
    table = builder.build(["patients"]).table("public", "patients")

    assert table.column("first_name") == ColumnSnapshot(
        column_name="first_name",
        data_type="varchar",
        udt_name="varchar",
        character_maximum_length=100,
        is_nullable=False,
    )


def test_build_foreign_key(builder):
    """Test a foreign key column carries the referenced table and rules."""
    column = builder.build().table("public", "visits").column("patient_id")

    assert column.is_foreign_key is True
    assert column.fk_constraint_name == "visits_patient_id_fkey"
    assert (column.references_schema, column.references_table, column.references_column) == (
        "public",
        "patients",
        "id",
    )
    assert column.fk_delete_rule == "CASCADE"
    assert column.fk_update_rule == "NO ACTION"
    assert column.is_nullable is False


def test_build_python_types_and_defaults(builder):
    """Test Python types are mapped and Python defaults are rendered as literals."""
    table = builder.build().table("public", "visits")

    notes = table.column("notes")
    assert notes.data_type == "varchar"
    assert notes.character_maximum_length == 255
    assert notes.is_nullable is True

    status = table.column("status")
    assert status.column_default == "'open'"
    assert status.is_nullable is False


def test_build_is_deterministic(builder):
    """Test building twice yields equal snapshots."""
    assert builder.build() == builder.build()


def test_build_all_entities(builder):
    """Test building without arguments covers every registered entity."""
    snapshot = builder.build()
    assert sorted(table.table for table in snapshot.tables) == ["patients", "visits"]


def test_build_sql_default_and_unique():
    """Test SQL defaults are normalized and unique columns get the inline constraint name."""
    entity = EntityMetadata(
        entity="users",
        table="Users",
        columns=[
            ColumnMetadata("id", python_type=UUID, nullable=False),
            ColumnMetadata("Email", db_type="character varying(120)", nullable=False, unique=True),
            ColumnMetadata("created_at", python_type=datetime, default="now()", default_is_sql=True),
        ],
        primary_key=PrimaryKeyMetadata("id"),
    )
    table = ModelSnapshotBuilder(MetadataRegistry([entity])).build().table("public", "users")

    identifier = table.column("id")
    assert identifier.data_type == "uuid"
    assert identifier.is_identity is False
    assert identifier.pk_constraint_name == "users_pkey"

    email = table.column("email")
    assert email.is_unique is True
    assert email.unique_constraint_name == "users_email_key"
    assert email.character_maximum_length == 120

    created_at = table.column("created_at")
    assert created_at.column_default == "CURRENT_TIMESTAMP"
    assert created_at.data_type == "timestamp"
    assert created_at.datetime_precision == 6


def test_primary_key_without_autoincrement():
    """Test a primary key without autoincrement is not an identity column."""
    entity = EntityMetadata(
        entity="codes",
        table="codes",
        columns=[ColumnMetadata("id", python_type=int, nullable=True)],
        primary_key=PrimaryKeyMetadata("id", autoincrement=False),
    )
    column = ModelSnapshotBuilder(MetadataRegistry([entity])).build().table("public", "codes").column("id")

    assert column.is_identity is False
    assert column.identity_generation is None
    assert column.is_nullable is False


def test_unknown_foreign_key_target(visits_entity):
    """Test a foreign key to an unregistered entity raises MetadataError."""
    builder = ModelSnapshotBuilder(MetadataRegistry([visits_entity]))
    with pytest.raises(MetadataError, match="patients"):
        builder.build()


def test_unmapped_python_type():
    """Test a Python type without a database type raises TypeMappingError."""
    entity = EntityMetadata(
        entity="blobs",
        table="blobs",
        columns=[ColumnMetadata("id", python_type=int), ColumnMetadata("payload", python_type=dict)],
        primary_key=PrimaryKeyMetadata("id"),
    )
    with pytest.raises(TypeMappingError):
        ModelSnapshotBuilder(MetadataRegistry([entity])).build()


def test_build_unregistered_descriptor(patients_entity):
    """Test descriptors can be passed directly without registering them."""
    snapshot = ModelSnapshotBuilder().build([patients_entity])
    assert isinstance(snapshot, SchemaSnapshot)
    assert isinstance(snapshot.table("public", "patients"), TableSnapshot)


def test_long_constraint_names_fit_server_limit():
    """Test generated constraint names are shortened to what the server stores."""
    entity = EntityMetadata(
        entity="prescriptions",
        table="patient_medication_prescriptions",
        columns=[
            ColumnMetadata("id", python_type=int, nullable=False),
            ColumnMetadata("prescribing_physician_identifier", db_type="varchar(40)", unique=True),
        ],
        primary_key=PrimaryKeyMetadata("id"),
    )
    snapshot = ModelSnapshotBuilder(MetadataRegistry([entity])).build()
    table = snapshot.table("public", "patient_medication_prescriptions")

    column = table.column("prescribing_physician_identifier")
    assert column.unique_constraint_name == "patient_medication_prescripti_prescribing_physician_identif_key"
    assert len(column.unique_constraint_name) == 63
    assert table.column("id").pk_constraint_name == "patient_medication_prescriptions_pkey"


def test_text_default_that_looks_numeric():
    """Test a varchar default with leading zeros is compiled as a string literal."""
    entity = EntityMetadata(
        entity="codes",
        table="codes",
        columns=[
            ColumnMetadata("id", python_type=int, nullable=False),
            ColumnMetadata("zip", db_type="varchar(10)", default="007"),
        ],
        primary_key=PrimaryKeyMetadata("id"),
    )
    expected = ModelSnapshotBuilder(MetadataRegistry([entity])).build()

    statements = compile_operations(SchemaDiffer().diff(expected, SchemaSnapshot()))

    assert "ALTER TABLE public.codes ADD COLUMN zip VARCHAR(10) DEFAULT '007';" in statements
