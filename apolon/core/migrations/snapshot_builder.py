"""Builds the desired schema snapshot from resolved entity metadata."""

from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Union

from apolon.core.mapping.metadata import ColumnMetadata, EntityMetadata, ForeignKeyMetadata
from apolon.core.mapping.registry import MetadataRegistry
from apolon.core.mapping.type_mapper import TypeMapper
from apolon.core.migrations.models import ColumnSnapshot, SchemaSnapshot, TableSnapshot
from apolon.core.migrations.normalization import (
    constraint_name,
    extract_data_type_details,
    extract_datetime_precision,
    format_default_value,
    normalize_data_type,
    normalize_default,
    normalize_identifier,
)

IDENTITY_GENERATION = "ALWAYS"
INTEGER_TYPES = {"int2", "int4", "int8"}


class ModelSnapshotBuilder:
    """Turns entity metadata into a SchemaSnapshot.

    Constraint names follow the names PostgreSQL gives inline constraints
    (``<table>_pkey``, ``<table>_<column>_key``, ``<table>_<column>_fkey``,
    shortened to 63 bytes), so a schema created from the snapshot reads back
    with the same names.
    """

    def __init__(self, registry: Optional[MetadataRegistry] = None):
        """Initialize builder.

        Args:
            registry: Registry used to resolve entity keys and foreign key targets
        """
        self.registry = registry if registry is not None else MetadataRegistry()

    def build(self, entities: Optional[Iterable[Union[str, EntityMetadata]]] = None) -> SchemaSnapshot:
        """Build a snapshot for the given entities (all registered entities by default).

        Raises:
            MetadataError: If an entity or a foreign key target cannot be resolved
            TypeMappingError: If a column's Python type has no database type
        """
        resolved = self.registry.resolve(entities)
        by_key = {metadata.entity: metadata for metadata in resolved}
        return SchemaSnapshot([self.build_table(metadata, by_key) for metadata in resolved])

    def build_table(
        self, metadata: EntityMetadata, known: Optional[Dict[str, EntityMetadata]] = None
    ) -> TableSnapshot:
        known = known or {}
        schema = normalize_identifier(metadata.schema)
        table = normalize_identifier(metadata.table)
        pk_column = normalize_identifier(metadata.primary_key.column)

        foreign_keys = {normalize_identifier(fk.column): fk for fk in metadata.foreign_keys}

        columns: List[ColumnSnapshot] = []
        for column in metadata.columns:
            name = normalize_identifier(column.name)
            foreign_key = foreign_keys.get(name)
            target = self._resolve_target(foreign_key, known) if foreign_key else None
            columns.append(
                self._build_column(
                    column,
                    name=name,
                    table=table,
                    is_primary_key=name == pk_column,
                    autoincrement=metadata.primary_key.autoincrement,
                    foreign_key=foreign_key,
                    target=target,
                )
            )

        return TableSnapshot(schema, table, columns)

    def _resolve_target(self, foreign_key: ForeignKeyMetadata, known: Dict[str, EntityMetadata]) -> EntityMetadata:
        if foreign_key.references in known:
            return known[foreign_key.references]
        return self.registry.get(foreign_key.references)

    def _build_column(
        self,
        column: ColumnMetadata,
        name: str,
        table: str,
        is_primary_key: bool,
        autoincrement: bool,
        foreign_key: Optional[ForeignKeyMetadata],
        target: Optional[EntityMetadata],
    ) -> ColumnSnapshot:
        db_type = column.db_type or TypeMapper.to_db_type(column.python_type)
        data_type = normalize_data_type(db_type)
        length, precision, scale = extract_data_type_details(db_type)

        default_sql = None
        if column.default is not None:
            raw = column.default if column.default_is_sql else format_default_value(column.default)
            default_sql = normalize_default(str(raw))

        is_identity = is_primary_key and autoincrement and data_type in INTEGER_TYPES
        is_unique = column.unique and not is_primary_key

        snapshot = ColumnSnapshot(
            column_name=name,
            data_type=data_type,
            udt_name=data_type,
            character_maximum_length=length,
            numeric_precision=precision,
            numeric_scale=scale,
            datetime_precision=extract_datetime_precision(db_type),
            is_nullable=column.nullable and not is_primary_key,
            column_default=None if is_identity else default_sql,
            is_identity=is_identity,
            identity_generation=IDENTITY_GENERATION if is_identity else None,
            is_primary_key=is_primary_key,
            pk_constraint_name=constraint_name(table, None, "pkey") if is_primary_key else None,
            is_unique=is_unique,
            unique_constraint_name=constraint_name(table, name, "key") if is_unique else None,
        )

        if foreign_key is None:
            return snapshot

        return replace(
            snapshot,
            is_foreign_key=True,
            fk_constraint_name=constraint_name(table, name, "fkey"),
            references_schema=normalize_identifier(target.schema),
            references_table=normalize_identifier(target.table),
            references_column=normalize_identifier(foreign_key.referenced_column),
            fk_update_rule=foreign_key.on_update.to_sql(),
            fk_delete_rule=foreign_key.on_delete.to_sql(),
        )
