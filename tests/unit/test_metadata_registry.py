"""Unit tests for entity metadata and the metadata registry."""

import pytest
from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, MetaData, String, Table, func

from apolon.core.exceptions import MetadataError
from apolon.core.mapping import (
    ColumnMetadata,
    EntityMetadata,
    MetadataRegistry,
    PrimaryKeyMetadata,
    ReferentialAction,
    entity_from_table,
)


@pytest.fixture
def sqlalchemy_metadata():
    """SQLAlchemy metadata with two related tables."""
    metadata = MetaData()
    Table(
        "patients",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("email", String(120), nullable=False, unique=True),
        Column("status", String(20), server_default="active"),
        Column("created_at", DateTime, server_default=func.now()),
    )
    Table(
        "visits",
        metadata,
        Column("id", BigInteger, primary_key=True),
        Column("patient_id", Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    )
    return metadata


class TestEntityMetadata:
    """Tests for EntityMetadata validation."""

    def test_requires_table_name(self):
        """Test an empty table name is rejected."""
        with pytest.raises(MetadataError, match="no table name"):
            EntityMetadata("x", " ", [ColumnMetadata("id", python_type=int)], PrimaryKeyMetadata("id"))

    def test_requires_columns(self):
        """Test an entity without columns is rejected."""
        with pytest.raises(MetadataError, match="no mapped columns"):
            EntityMetadata("x", "x", [], PrimaryKeyMetadata("id"))

    def test_rejects_duplicate_columns(self):
        """Test duplicate column names are rejected."""
        columns = [ColumnMetadata("id", python_type=int), ColumnMetadata("id", python_type=int)]
        with pytest.raises(MetadataError, match="duplicate columns"):
            EntityMetadata("x", "x", columns, PrimaryKeyMetadata("id"))

    def test_requires_a_type(self):
        """Test a column needs a database or Python type."""
        columns = [ColumnMetadata("id", python_type=int), ColumnMetadata("name")]
        with pytest.raises(MetadataError, match="neither a database type nor a Python type"):
            EntityMetadata("x", "x", columns, PrimaryKeyMetadata("id"))

    def test_primary_key_must_be_a_column(self):
        """Test the primary key must name a mapped column."""
        with pytest.raises(MetadataError, match="Primary key column"):
            EntityMetadata("x", "x", [ColumnMetadata("id", python_type=int)], PrimaryKeyMetadata("uid"))


class TestReferentialAction:
    """Tests for ReferentialAction parsing."""

    def test_parse(self):
        """Test actions parse from None, enum members and SQL spellings."""
        assert ReferentialAction.parse(None) is ReferentialAction.NO_ACTION
        assert ReferentialAction.parse(ReferentialAction.CASCADE) is ReferentialAction.CASCADE
        assert ReferentialAction.parse("set_null") is ReferentialAction.SET_NULL
        assert ReferentialAction.parse("cascade").to_sql() == "CASCADE"

    def test_parse_unknown(self):
        """Test an unknown action raises MetadataError."""
        with pytest.raises(MetadataError):
            ReferentialAction.parse("explode")


class TestMetadataRegistry:
    """Tests for MetadataRegistry."""

    def test_register_and_get(self, patients_entity):
        """Test a registered entity can be looked up."""
        registry = MetadataRegistry()
        registry.register(patients_entity)

        assert "patients" in registry
        assert registry.get("patients") is patients_entity
        assert len(registry) == 1

    def test_register_same_entity_twice(self, patients_entity):
        """Test registering an identical descriptor again is accepted."""
        registry = MetadataRegistry([patients_entity])
        registry.register(patients_entity)
        assert len(registry) == 1

    def test_register_conflict(self, patients_entity):
        """Test a different descriptor under the same key is rejected."""
        registry = MetadataRegistry([patients_entity])
        other = EntityMetadata("patients", "people", [ColumnMetadata("id", python_type=int)], PrimaryKeyMetadata("id"))
        with pytest.raises(MetadataError, match="already registered"):
            registry.register(other)

    def test_get_missing(self):
        """Test looking up an unknown entity raises MetadataError."""
        with pytest.raises(MetadataError, match="not registered"):
            MetadataRegistry().get("ghosts")

    def test_resolve(self, registry, patients_entity, visits_entity):
        """Test resolve accepts keys and descriptors and defaults to every entity."""
        assert registry.resolve() == [patients_entity, visits_entity]
        assert registry.resolve(["visits", patients_entity]) == [visits_entity, patients_entity]


class TestFromSqlalchemy:
    """Tests for building metadata from SQLAlchemy tables."""

    def test_columns(self, sqlalchemy_metadata):
        """Test columns, defaults and unique flags are resolved."""
        entity = entity_from_table(sqlalchemy_metadata.tables["patients"])
        columns = {column.name: column for column in entity.columns}

        assert entity.entity == "patients"
        assert entity.schema == "public"
        assert entity.primary_key.column == "id"
        assert entity.primary_key.autoincrement is True
        assert columns["id"].db_type == "INTEGER"
        assert columns["id"].nullable is False
        assert columns["email"].db_type == "VARCHAR(120)"
        assert columns["email"].unique is True
        assert columns["status"].default == "active"
        assert columns["status"].default_is_sql is False
        assert columns["created_at"].default == "now()"
        assert columns["created_at"].default_is_sql is True

    def test_foreign_keys(self, sqlalchemy_metadata):
        """Test foreign keys resolve to the referenced entity."""
        entity = entity_from_table(sqlalchemy_metadata.tables["visits"])

        assert len(entity.foreign_keys) == 1
        foreign_key = entity.foreign_keys[0]
        assert foreign_key.column == "patient_id"
        assert foreign_key.references == "patients"
        assert foreign_key.referenced_column == "id"
        assert foreign_key.on_delete is ReferentialAction.CASCADE
        assert foreign_key.on_update is ReferentialAction.NO_ACTION

    def test_registry_from_metadata(self, sqlalchemy_metadata):
        """Test every table is registered in dependency order."""
        registry = MetadataRegistry.from_sqlalchemy(sqlalchemy_metadata)
        assert [entity.entity for entity in registry.all()] == ["patients", "visits"]

    def test_schema_qualified_table(self):
        """Test schema-qualified tables keep their schema."""
        metadata = MetaData()
        table = Table("events", metadata, Column("id", Integer, primary_key=True), schema="audit")

        entity = entity_from_table(table)

        assert entity.entity == "audit.events"
        assert entity.schema == "audit"
        assert entity.table == "events"

    def test_composite_primary_key(self):
        """Test composite primary keys are rejected."""
        metadata = MetaData()
        table = Table(
            "links",
            metadata,
            Column("a", Integer, primary_key=True),
            Column("b", Integer, primary_key=True),
        )
        with pytest.raises(MetadataError, match="exactly one primary key"):
            entity_from_table(table)

    def test_unresolvable_foreign_key(self):
        """Test a foreign key to a table outside the metadata is rejected."""
        metadata = MetaData()
        table = Table(
            "orphans",
            metadata,
            Column("id", Integer, primary_key=True),
            Column("ghost_id", Integer, ForeignKey("ghosts.id")),
        )
        with pytest.raises(MetadataError, match="cannot be resolved"):
            entity_from_table(table)
