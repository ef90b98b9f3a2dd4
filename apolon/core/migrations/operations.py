"""Migration operations: one typed schema change each, compiled to one DDL statement."""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Dict, FrozenSet, Optional

from apolon.core.exceptions import TypeMappingError


class MigrationOperationType(str, Enum):
    """Closed set of operation kinds."""

    CREATE_SCHEMA = "CreateSchema"
    CREATE_TABLE = "CreateTable"
    DROP_TABLE = "DropTable"
    ADD_COLUMN = "AddColumn"
    DROP_COLUMN = "DropColumn"
    ALTER_COLUMN_TYPE = "AlterColumnType"
    ALTER_NULLABILITY = "AlterNullability"
    SET_DEFAULT = "SetDefault"
    DROP_DEFAULT = "DropDefault"
    ADD_UNIQUE = "AddUnique"
    ADD_CHECK = "AddCheck"
    DROP_CONSTRAINT = "DropConstraint"
    ADD_FOREIGN_KEY = "AddForeignKey"


_TYPE_FIELDS = frozenset(
    {"sql_type", "character_maximum_length", "numeric_precision", "numeric_scale", "datetime_precision"}
)

# Optional fields each kind may carry; everything else must stay None
ALLOWED_FIELDS: Dict[MigrationOperationType, FrozenSet[str]] = {
    MigrationOperationType.CREATE_SCHEMA: frozenset(),
    MigrationOperationType.CREATE_TABLE: frozenset(),
    MigrationOperationType.DROP_TABLE: frozenset(),
    MigrationOperationType.ADD_COLUMN: _TYPE_FIELDS
    | {"column", "is_nullable", "default_sql", "is_primary_key", "is_identity", "identity_generation"},
    MigrationOperationType.DROP_COLUMN: frozenset({"column"}),
    MigrationOperationType.ALTER_COLUMN_TYPE: _TYPE_FIELDS | {"column"},
    MigrationOperationType.ALTER_NULLABILITY: frozenset({"column", "is_nullable"}),
    MigrationOperationType.SET_DEFAULT: frozenset({"column", "default_sql"}),
    MigrationOperationType.DROP_DEFAULT: frozenset({"column"}),
    MigrationOperationType.ADD_UNIQUE: frozenset({"column", "constraint_name"}),
    MigrationOperationType.ADD_CHECK: frozenset({"constraint_name", "check_expression"}),
    MigrationOperationType.DROP_CONSTRAINT: frozenset({"constraint_name"}),
    MigrationOperationType.ADD_FOREIGN_KEY: frozenset(
        {"column", "constraint_name", "ref_schema", "ref_table", "ref_column", "on_delete_rule", "on_update_rule"}
    ),
}

LENGTH_TYPES = {"varchar", "bpchar", "char", "character", "character varying", "bit", "varbit", "bit varying"}
NUMERIC_TYPES = {"numeric", "decimal"}
DATETIME_TYPES = {"timestamp", "timestamptz", "time", "timetz", "interval"}

# Canonical tokens that read better under another spelling in DDL
_RENDERED_NAMES = {"bpchar": "CHAR"}


def build_sql_type(
    base_type: Optional[str],
    character_maximum_length: Optional[int] = None,
    numeric_precision: Optional[int] = None,
    numeric_scale: Optional[int] = None,
    datetime_precision: Optional[int] = None,
) -> Optional[str]:
    """
    Compose a SQL type from a base type and its components.

    Used both when compiling DDL and when rendering a diff for people.
    A base type that already carries parameters is returned upper-cased as is.

    Args:
        base_type: Base type such as ``varchar`` or ``numeric``
        character_maximum_length: Length for character and bit types
        numeric_precision: Precision for numeric/decimal
        numeric_scale: Scale for numeric/decimal
        datetime_precision: Fractional-second precision for time types

    Returns:
        Type such as ``VARCHAR(100)`` or ``NUMERIC(10,2)``, or None for a blank base type
    """
    if base_type is None or not base_type.strip():
        return None

    normalized = " ".join(base_type.strip().lower().split())
    upper_type = _RENDERED_NAMES.get(normalized, normalized.upper())

    if "(" in normalized:
        return upper_type

    if character_maximum_length is not None and normalized in LENGTH_TYPES:
        return f"{upper_type}({character_maximum_length})"

    if numeric_precision is not None and normalized in NUMERIC_TYPES:
        if numeric_scale is not None:
            return f"{upper_type}({numeric_precision},{numeric_scale})"
        return f"{upper_type}({numeric_precision})"

    if datetime_precision is not None and normalized in DATETIME_TYPES:
        return f"{upper_type}({datetime_precision})"

    return upper_type


@dataclass(frozen=True)
class MigrationOperation:
    """A single schema change; only the fields relevant to ``type`` are populated."""

    type: MigrationOperationType
    schema: str
    table: str = ""
    column: Optional[str] = None
    sql_type: Optional[str] = None
    character_maximum_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None
    datetime_precision: Optional[int] = None
    is_primary_key: Optional[bool] = None
    is_identity: Optional[bool] = None
    identity_generation: Optional[str] = None
    is_nullable: Optional[bool] = None
    default_sql: Optional[str] = None
    constraint_name: Optional[str] = None
    check_expression: Optional[str] = None
    ref_schema: Optional[str] = None
    ref_table: Optional[str] = None
    ref_column: Optional[str] = None
    on_delete_rule: Optional[str] = None
    on_update_rule: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.type, MigrationOperationType):
            raise TypeMappingError(f"Unknown migration operation type: {self.type!r}")

        allowed = ALLOWED_FIELDS[self.type]
        for op_field in fields(self):
            if op_field.name in ("type", "schema", "table"):
                continue
            if getattr(self, op_field.name) is not None and op_field.name not in allowed:
                raise TypeMappingError(f"{self.type.value} does not take field '{op_field.name}'")

    def get_sql_type(self) -> Optional[str]:
        return build_sql_type(
            self.sql_type,
            self.character_maximum_length,
            self.numeric_precision,
            self.numeric_scale,
            self.datetime_precision,
        )

    @property
    def qualified_table(self) -> str:
        return f"{self.schema}.{self.table}"

    def __str__(self) -> str:
        parts = [f"type: {self.type.value}", f"schema: {self.schema}", f"table: {self.table}"]
        for op_field in fields(self):
            if op_field.name in ("type", "schema", "table"):
                continue
            value = getattr(self, op_field.name)
            if value is not None:
                parts.append(f"{op_field.name}: {value}")
        return ", ".join(parts)
