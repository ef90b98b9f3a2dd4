"""Resolved entity metadata consumed by the snapshot builder."""

from apolon.core.mapping.metadata import (
    ColumnMetadata,
    EntityMetadata,
    ForeignKeyMetadata,
    PrimaryKeyMetadata,
    ReferentialAction,
)
from apolon.core.mapping.registry import MetadataRegistry, entity_from_table
from apolon.core.mapping.type_mapper import TypeMapper

__all__ = [
    "ColumnMetadata",
    "EntityMetadata",
    "ForeignKeyMetadata",
    "PrimaryKeyMetadata",
    "ReferentialAction",
    "MetadataRegistry",
    "TypeMapper",
    "entity_from_table",
]
