"""Resolved, immutable descriptors of mapped entities."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Union

from apolon.core.exceptions import MetadataError


class ReferentialAction(str, Enum):
    """Action taken on referencing rows when the referenced row is deleted or updated."""

    NO_ACTION = "NO ACTION"
    RESTRICT = "RESTRICT"
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    SET_DEFAULT = "SET DEFAULT"

    def to_sql(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Union["ReferentialAction", str, None]) -> "ReferentialAction":
        """Parse an action from an enum member, a SQL spelling or None (NO ACTION)."""
        if value is None:
            return cls.NO_ACTION
        if isinstance(value, cls):
            return value
        try:
            return cls(" ".join(value.replace("_", " ").split()).upper())
        except ValueError:
            raise MetadataError(f"Unknown referential action: {value!r}") from None


@dataclass(frozen=True)
class ColumnMetadata:
    """A mapped column.

    ``db_type`` wins over ``python_type``; one of them must be set.
    ``default`` is raw SQL when ``default_is_sql`` is set, otherwise a Python
    value rendered as a literal.
    """

    name: str
    db_type: Optional[str] = None
    python_type: Optional[Any] = None
    nullable: bool = True
    default: Optional[Any] = None
    default_is_sql: bool = False
    unique: bool = False


@dataclass(frozen=True)
class PrimaryKeyMetadata:
    column: str
    autoincrement: bool = True


@dataclass(frozen=True)
class ForeignKeyMetadata:
    """Foreign key from a local column to a column of another registered entity."""

    column: str
    references: str
    referenced_column: str = "id"
    on_delete: ReferentialAction = ReferentialAction.NO_ACTION
    on_update: ReferentialAction = ReferentialAction.NO_ACTION


@dataclass(frozen=True)
class EntityMetadata:
    """Everything the snapshot builder needs to know about one mapped entity."""

    entity: str
    table: str
    columns: List[ColumnMetadata]
    primary_key: PrimaryKeyMetadata
    schema: str = "public"
    foreign_keys: List[ForeignKeyMetadata] = field(default_factory=list)

    def __post_init__(self):
        if not self.table or not self.table.strip():
            raise MetadataError(f"Entity '{self.entity}' has no table name")
        if not self.columns:
            raise MetadataError(f"Entity '{self.entity}' has no mapped columns")

        names = [column.name for column in self.columns]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise MetadataError(f"Entity '{self.entity}' maps duplicate columns: {', '.join(duplicates)}")

        for column in self.columns:
            if column.db_type is None and column.python_type is None:
                raise MetadataError(
                    f"Column '{self.entity}.{column.name}' has neither a database type nor a Python type"
                )

        if self.primary_key.column not in names:
            raise MetadataError(
                f"Primary key column '{self.primary_key.column}' is not a column of entity '{self.entity}'"
            )

        for foreign_key in self.foreign_keys:
            if foreign_key.column not in names:
                raise MetadataError(
                    f"Foreign key column '{foreign_key.column}' is not a column of entity '{self.entity}'"
                )
