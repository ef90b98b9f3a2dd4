"""Registry of resolved entity metadata, owned by the engine that uses it."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import MetaData, Table, UniqueConstraint
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import NoReferenceError
from sqlalchemy.schema import DefaultClause

from apolon.core.exceptions import MetadataError
from apolon.core.mapping.metadata import (
    ColumnMetadata,
    EntityMetadata,
    ForeignKeyMetadata,
    PrimaryKeyMetadata,
    ReferentialAction,
)

logger = logging.getLogger(__name__)

_dialect = postgresql.dialect()


class MetadataRegistry:
    """Entity metadata keyed by entity name, in registration order."""

    def __init__(self, entities: Optional[Iterable[EntityMetadata]] = None):
        self._entities: Dict[str, EntityMetadata] = {}
        for metadata in entities or []:
            self.register(metadata)

    def register(self, metadata: EntityMetadata) -> EntityMetadata:
        """Register an entity.

        Raises:
            MetadataError: If another entity with the same key is already registered
        """
        existing = self._entities.get(metadata.entity)
        if existing is not None and existing != metadata:
            raise MetadataError(f"Entity '{metadata.entity}' is already registered")
        self._entities[metadata.entity] = metadata
        return metadata

    def get(self, entity: str) -> EntityMetadata:
        try:
            return self._entities[entity]
        except KeyError:
            raise MetadataError(f"Entity '{entity}' is not registered") from None

    def all(self) -> List[EntityMetadata]:
        return list(self._entities.values())

    def resolve(self, entities: Optional[Iterable[Union[str, EntityMetadata]]] = None) -> List[EntityMetadata]:
        """Turn entity keys and descriptors into descriptors; None means every registered entity."""
        if entities is None:
            return self.all()
        return [item if isinstance(item, EntityMetadata) else self.get(item) for item in entities]

    def __contains__(self, entity: str) -> bool:
        return entity in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    @classmethod
    def from_sqlalchemy(cls, metadata: MetaData) -> "MetadataRegistry":
        """Build a registry from every table of a SQLAlchemy ``MetaData``."""
        registry = cls()
        for table in metadata.sorted_tables:
            registry.register(entity_from_table(table))
        logger.debug(f"Registered {len(registry)} entities from SQLAlchemy metadata")
        return registry


def _server_default(column) -> Tuple[Optional[str], bool]:
    """Get (default, default_is_sql) for a column's server default."""
    default = column.server_default
    if not isinstance(default, DefaultClause):
        return None, False
    if isinstance(default.arg, str):
        # Plain strings are rendered by SQLAlchemy as quoted literals
        return default.arg, False
    compiled = default.arg.compile(dialect=_dialect, compile_kwargs={"literal_binds": True})
    return str(compiled), True


def entity_from_table(table: Table) -> EntityMetadata:
    """
    Resolve a SQLAlchemy table into entity metadata.

    The entity key is the table's full name (``schema.table`` or ``table``),
    which is also what foreign keys use to name the table they reference.

    Args:
        table: SQLAlchemy Core or declarative table

    Returns:
        EntityMetadata for the table

    Raises:
        MetadataError: For composite primary or foreign keys, or a foreign key
            whose target is not part of the same MetaData
    """
    pk_columns = list(table.primary_key.columns)
    if len(pk_columns) != 1:
        raise MetadataError(f"Table '{table.fullname}' must have exactly one primary key column")
    pk_column = pk_columns[0]

    unique_columns = {column.name for column in table.columns if column.unique}
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint) and len(constraint.columns) == 1:
            unique_columns.update(column.name for column in constraint.columns)

    columns = []
    for column in table.columns:
        default, default_is_sql = _server_default(column)
        columns.append(
            ColumnMetadata(
                name=column.name,
                db_type=column.type.compile(dialect=_dialect),
                nullable=bool(column.nullable),
                default=default,
                default_is_sql=default_is_sql,
                unique=column.name in unique_columns,
            )
        )

    foreign_keys = []
    for foreign_key in table.foreign_keys:
        if len(foreign_key.constraint.elements) != 1:
            raise MetadataError(f"Composite foreign key on '{table.fullname}' is not supported")
        try:
            target = foreign_key.column
        except NoReferenceError as exc:
            raise MetadataError(f"Foreign key on '{table.fullname}' cannot be resolved: {exc}") from exc
        foreign_keys.append(
            ForeignKeyMetadata(
                column=foreign_key.parent.name,
                references=target.table.fullname,
                referenced_column=target.name,
                on_delete=ReferentialAction.parse(foreign_key.ondelete),
                on_update=ReferentialAction.parse(foreign_key.onupdate),
            )
        )

    return EntityMetadata(
        entity=table.fullname,
        table=table.name,
        schema=table.schema or "public",
        columns=columns,
        primary_key=PrimaryKeyMetadata(
            column=pk_column.name,
            autoincrement=table.autoincrement_column is pk_column,
        ),
        foreign_keys=foreign_keys,
    )
