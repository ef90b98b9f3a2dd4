"""Compiles migration operations to PostgreSQL DDL."""

import logging
from typing import Callable, Dict, Iterable, List

from apolon.core.exceptions import TypeMappingError
from apolon.core.migrations.normalization import constraint_name
from apolon.core.migrations.operations import MigrationOperation, MigrationOperationType
from apolon.core.migrations.sorter import sort_operations

logger = logging.getLogger(__name__)

OpType = MigrationOperationType


def _require(op: MigrationOperation, *names: str) -> None:
    missing = [name for name in names if getattr(op, name) in (None, "")]
    if missing:
        raise TypeMappingError(f"{op.type.value} on {op.qualified_table} is missing {', '.join(missing)}")


def _sql_type(op: MigrationOperation) -> str:
    sql_type = op.get_sql_type()
    if sql_type is None:
        raise TypeMappingError(f"{op.type.value} on {op.qualified_table} is missing sql_type")
    return sql_type


def _create_schema(op: MigrationOperation) -> str:
    return f"CREATE SCHEMA IF NOT EXISTS {op.schema};"


def _create_table(op: MigrationOperation) -> str:
    _require(op, "table")
    return f"CREATE TABLE {op.qualified_table} ();"


def _drop_table(op: MigrationOperation) -> str:
    _require(op, "table")
    return f"DROP TABLE IF EXISTS {op.qualified_table} CASCADE;"


def _add_column(op: MigrationOperation) -> str:
    _require(op, "table", "column")
    parts = [f"ALTER TABLE {op.qualified_table} ADD COLUMN {op.column} {_sql_type(op)}"]
    if op.default_sql is not None:
        parts.append(f"DEFAULT {op.default_sql}")
    if op.is_nullable is False and not op.is_primary_key and not op.is_identity:
        parts.append("NOT NULL")
    if op.is_primary_key:
        parts.append("PRIMARY KEY")
    if op.is_identity:
        generation = (op.identity_generation or "ALWAYS").upper()
        parts.append(f"GENERATED {generation} AS IDENTITY")
    return " ".join(parts) + ";"


def _drop_column(op: MigrationOperation) -> str:
    _require(op, "table", "column")
    return f"ALTER TABLE {op.qualified_table} DROP COLUMN IF EXISTS {op.column};"


def _alter_column_type(op: MigrationOperation) -> str:
    _require(op, "table", "column")
    return f"ALTER TABLE {op.qualified_table} ALTER COLUMN {op.column} TYPE {_sql_type(op)};"


def _alter_nullability(op: MigrationOperation) -> str:
    _require(op, "table", "column", "is_nullable")
    action = "DROP NOT NULL" if op.is_nullable else "SET NOT NULL"
    return f"ALTER TABLE {op.qualified_table} ALTER COLUMN {op.column} {action};"


def _set_default(op: MigrationOperation) -> str:
    _require(op, "table", "column", "default_sql")
    return f"ALTER TABLE {op.qualified_table} ALTER COLUMN {op.column} SET DEFAULT {op.default_sql};"


def _drop_default(op: MigrationOperation) -> str:
    _require(op, "table", "column")
    return f"ALTER TABLE {op.qualified_table} ALTER COLUMN {op.column} DROP DEFAULT;"


def _add_unique(op: MigrationOperation) -> str:
    _require(op, "table", "column")
    name = op.constraint_name or constraint_name(op.table, op.column, "key")
    return f"ALTER TABLE {op.qualified_table} ADD CONSTRAINT {name} UNIQUE ({op.column});"


def _add_check(op: MigrationOperation) -> str:
    _require(op, "table", "constraint_name", "check_expression")
    return f"ALTER TABLE {op.qualified_table} ADD CONSTRAINT {op.constraint_name} CHECK ({op.check_expression});"


def _drop_constraint(op: MigrationOperation) -> str:
    _require(op, "table", "constraint_name")
    return f"ALTER TABLE {op.qualified_table} DROP CONSTRAINT IF EXISTS {op.constraint_name};"


def _add_foreign_key(op: MigrationOperation) -> str:
    _require(op, "table", "column", "ref_schema", "ref_table", "ref_column")
    name = op.constraint_name or constraint_name(op.table, op.column, "fkey")
    statement = (
        f"ALTER TABLE {op.qualified_table} ADD CONSTRAINT {name} FOREIGN KEY ({op.column}) "
        f"REFERENCES {op.ref_schema}.{op.ref_table}({op.ref_column}) "
        f"ON DELETE {(op.on_delete_rule or 'NO ACTION').upper()}"
    )
    if op.on_update_rule and op.on_update_rule.upper() != "NO ACTION":
        statement += f" ON UPDATE {op.on_update_rule.upper()}"
    return statement + ";"


COMPILERS: Dict[MigrationOperationType, Callable[[MigrationOperation], str]] = {
    OpType.CREATE_SCHEMA: _create_schema,
    OpType.CREATE_TABLE: _create_table,
    OpType.DROP_TABLE: _drop_table,
    OpType.ADD_COLUMN: _add_column,
    OpType.DROP_COLUMN: _drop_column,
    OpType.ALTER_COLUMN_TYPE: _alter_column_type,
    OpType.ALTER_NULLABILITY: _alter_nullability,
    OpType.SET_DEFAULT: _set_default,
    OpType.DROP_DEFAULT: _drop_default,
    OpType.ADD_UNIQUE: _add_unique,
    OpType.ADD_CHECK: _add_check,
    OpType.DROP_CONSTRAINT: _drop_constraint,
    OpType.ADD_FOREIGN_KEY: _add_foreign_key,
}


def compile_operation(op: MigrationOperation) -> str:
    """Compile one operation to one DDL statement.

    Raises:
        TypeMappingError: If the kind is unknown or a required field is missing
    """
    compiler = COMPILERS.get(op.type)
    if compiler is None:
        raise TypeMappingError(f"No SQL template for operation type {op.type!r}")
    return compiler(op)


def compile_operations(operations: Iterable[MigrationOperation]) -> List[str]:
    """Sort operations for execution and compile each to a statement.

    Hand-written and diff-generated migrations both go through here. Every
    operation is compiled before the list is returned, so a bad operation
    fails before any statement reaches the database.
    """
    statements = [compile_operation(op) for op in sort_operations(operations)]
    for statement in statements:
        logger.debug(statement)
    return statements
