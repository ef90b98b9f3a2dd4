"""Shared fixtures for apolon tests."""

from dataclasses import replace
from typing import Optional

import pytest

from apolon.core.mapping import (
    ColumnMetadata,
    EntityMetadata,
    ForeignKeyMetadata,
    MetadataRegistry,
    PrimaryKeyMetadata,
    ReferentialAction,
)
from apolon.core.migrations.models import ColumnSnapshot


@pytest.fixture
def patients_entity():
    """Patients entity: identity primary key and a required name."""
    return EntityMetadata(
        entity="patients",
        table="patients",
        columns=[
            ColumnMetadata("id", python_type=int, nullable=False),
            ColumnMetadata("first_name", db_type="varchar(100)", nullable=False),
        ],
        primary_key=PrimaryKeyMetadata("id"),
    )


@pytest.fixture
def visits_entity():
    """Visits entity referencing patients."""
    return EntityMetadata(
        entity="visits",
        table="visits",
        columns=[
            ColumnMetadata("id", python_type=int, nullable=False),
            ColumnMetadata("patient_id", python_type=int, nullable=False),
            ColumnMetadata("notes", python_type=Optional[str]),
            ColumnMetadata("status", python_type=str, nullable=False, default="open"),
        ],
        primary_key=PrimaryKeyMetadata("id"),
        foreign_keys=[ForeignKeyMetadata("patient_id", "patients", on_delete=ReferentialAction.CASCADE)],
    )


@pytest.fixture
def registry(patients_entity, visits_entity):
    """Registry with patients and visits."""
    return MetadataRegistry([patients_entity, visits_entity])


@pytest.fixture
def make_column():
    """Factory for column snapshots with sensible varchar defaults."""

    def _make(name: str, **overrides) -> ColumnSnapshot:
        column = ColumnSnapshot(
            column_name=name,
            data_type="varchar",
            udt_name="varchar",
            character_maximum_length=255,
        )
        return replace(column, **overrides)

    return _make


@pytest.fixture
def make_id_column():
    """Factory for an identity primary key column snapshot."""

    def _make(table: str) -> ColumnSnapshot:
        return ColumnSnapshot(
            column_name="id",
            data_type="int4",
            udt_name="int4",
            numeric_precision=32,
            numeric_scale=0,
            is_nullable=False,
            is_identity=True,
            identity_generation="ALWAYS",
            is_primary_key=True,
            pk_constraint_name=f"{table}_pkey",
        )

    return _make
