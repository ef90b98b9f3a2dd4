"""Fluent builders that let migration authors construct operations without writing SQL."""

from typing import Any, Callable, Dict, List, Optional, Union

from apolon.core.exceptions import TypeMappingError
from apolon.core.mapping.metadata import ReferentialAction
from apolon.core.mapping.type_mapper import TypeMapper
from apolon.core.migrations.normalization import format_default_value, normalize_data_type, normalize_rule
from apolon.core.migrations.operations import (
    LENGTH_TYPES,
    NUMERIC_TYPES,
    MigrationOperation,
    MigrationOperationType,
    build_sql_type,
)

OpType = MigrationOperationType
Action = Union[ReferentialAction, str, None]


class ColumnBuilder:
    """Fluent configuration of one column."""

    def __init__(self, python_type: Optional[Any] = None, sql_type: Optional[str] = None):
        self._python_type = python_type
        self._sql_type = sql_type
        self._nullable = True
        self._default_sql: Optional[str] = None
        self._default_value: Optional[Any] = None
        self._max_length: Optional[int] = None
        self._precision: Optional[int] = None
        self._scale: Optional[int] = None
        self._primary_key = False
        self._identity_generation: Optional[str] = None
        self._unique = False

    def has_column_type(self, sql_type: str) -> "ColumnBuilder":
        self._sql_type = sql_type
        return self

    def is_required(self) -> "ColumnBuilder":
        self._nullable = False
        return self

    def is_nullable(self, nullable: bool = True) -> "ColumnBuilder":
        self._nullable = nullable
        return self

    def has_max_length(self, max_length: int) -> "ColumnBuilder":
        self._max_length = max_length
        return self

    def has_precision(self, precision: int, scale: Optional[int] = None) -> "ColumnBuilder":
        self._precision = precision
        self._scale = scale
        return self

    def has_default_value(self, value: Any) -> "ColumnBuilder":
        """Default from a Python value, rendered as a SQL literal."""
        self._default_value = value
        return self

    def has_default_value_sql(self, sql: str) -> "ColumnBuilder":
        """Default from a raw SQL expression, e.g. ``CURRENT_TIMESTAMP``."""
        self._default_sql = sql
        return self

    def is_primary_key(self) -> "ColumnBuilder":
        self._primary_key = True
        return self

    def is_identity(self, generation: str = "ALWAYS") -> "ColumnBuilder":
        self._identity_generation = normalize_rule(generation)
        return self

    def is_unique(self) -> "ColumnBuilder":
        self._unique = True
        return self

    def build_sql_type(self) -> str:
        """Resolve the column's SQL type from the explicit type or the Python type.

        Raises:
            TypeMappingError: If neither is given or the Python type has no mapping
        """
        if self._sql_type:
            sql_type = self._sql_type
        elif self._python_type is not None:
            sql_type = TypeMapper.to_db_type(self._python_type)
        else:
            raise TypeMappingError("Column has neither an SQL type nor a Python type")

        base = normalize_data_type(sql_type)
        if self._max_length is not None and base in LENGTH_TYPES:
            return build_sql_type(base, character_maximum_length=self._max_length)
        if self._precision is not None and base in NUMERIC_TYPES:
            return build_sql_type(base, numeric_precision=self._precision, numeric_scale=self._scale)
        return sql_type

    def build_default(self) -> Optional[str]:
        if self._default_sql is not None:
            return self._default_sql
        if self._default_value is not None:
            return format_default_value(self._default_value)
        return None

    @property
    def primary_key(self) -> bool:
        return self._primary_key

    @property
    def unique(self) -> bool:
        return self._unique

    @property
    def nullable(self) -> bool:
        return self._nullable

    @property
    def identity_generation(self) -> Optional[str]:
        return self._identity_generation


class ColumnsBuilder:
    """Factory handed to the ``columns`` callback of ``MigrationBuilder.create_table``."""

    def column(self, python_type: Optional[Any] = None, sql_type: Optional[str] = None) -> ColumnBuilder:
        return ColumnBuilder(python_type=python_type, sql_type=sql_type)


class CreateTableBuilder:
    """Table-level constraints for a table being created."""

    def __init__(self, schema: str, table: str, columns: Dict[str, ColumnBuilder]):
        self.schema = schema
        self.table = table
        self.columns = columns
        self.primary_key_column: Optional[str] = None
        self.foreign_keys: List[MigrationOperation] = []
        self.unique_constraints: List[MigrationOperation] = []
        self.check_constraints: List[MigrationOperation] = []

    def _check_columns(self, *columns: str) -> None:
        for column in columns:
            if column not in self.columns:
                raise TypeMappingError(f"Column '{column}' is not defined on table {self.schema}.{self.table}")

    def primary_key(self, *columns: str) -> "CreateTableBuilder":
        if len(columns) != 1:
            raise TypeMappingError(f"Table {self.schema}.{self.table} needs exactly one primary key column")
        self._check_columns(*columns)
        self.primary_key_column = columns[0]
        return self

    def foreign_key(
        self,
        name: str,
        column: str,
        principal_table: str,
        principal_column: str = "id",
        principal_schema: str = "public",
        on_delete: Action = None,
        on_update: Action = None,
    ) -> "CreateTableBuilder":
        self._check_columns(column)
        self.foreign_keys.append(
            MigrationOperation(
                OpType.ADD_FOREIGN_KEY,
                self.schema,
                self.table,
                column=column,
                constraint_name=name,
                ref_schema=principal_schema,
                ref_table=principal_table,
                ref_column=principal_column,
                on_delete_rule=ReferentialAction.parse(on_delete).to_sql(),
                on_update_rule=ReferentialAction.parse(on_update).to_sql(),
            )
        )
        return self

    def unique_constraint(self, name: str, column: str) -> "CreateTableBuilder":
        self._check_columns(column)
        self.unique_constraints.append(
            MigrationOperation(OpType.ADD_UNIQUE, self.schema, self.table, column=column, constraint_name=name)
        )
        return self

    def check_constraint(self, name: str, sql: str) -> "CreateTableBuilder":
        self.check_constraints.append(
            MigrationOperation(OpType.ADD_CHECK, self.schema, self.table, constraint_name=name, check_expression=sql)
        )
        return self


class MigrationBuilder:
    """Collects the operations of one migration direction."""

    def __init__(self):
        self._operations: List[MigrationOperation] = []

    @property
    def operations(self) -> List[MigrationOperation]:
        return list(self._operations)

    def _add(self, op: MigrationOperation) -> None:
        self._operations.append(op)

    def create_schema(self, schema: str) -> None:
        self._add(MigrationOperation(OpType.CREATE_SCHEMA, schema))

    def create_table(
        self,
        name: str,
        columns: Optional[Callable[[ColumnsBuilder], Dict[str, ColumnBuilder]]] = None,
        schema: str = "public",
        constraints: Optional[Callable[[CreateTableBuilder], Any]] = None,
    ) -> Optional[CreateTableBuilder]:
        """Create a table, optionally with its columns and constraints.

        Without ``columns`` only the empty table is created. With it, the
        schema, the table and every column are created, followed by the unique,
        check and foreign key constraints configured in ``constraints``.

        Example:
            builder.create_table(
                "patients",
                columns=lambda t: {
                    "id": t.column(int).is_required().is_identity(),
                    "first_name": t.column(str).has_max_length(100).is_required(),
                },
                constraints=lambda table: table.primary_key("id"),
            )

        Returns:
            The CreateTableBuilder when columns were given
        """
        if columns is None:
            self._add(MigrationOperation(OpType.CREATE_TABLE, schema, name))
            return None

        column_builders = columns(ColumnsBuilder())
        table_builder = CreateTableBuilder(schema, name, column_builders)
        if constraints is not None:
            constraints(table_builder)

        self.create_schema(schema)
        self._add(MigrationOperation(OpType.CREATE_TABLE, schema, name))

        primary_keys = [column for column, builder in column_builders.items() if builder.primary_key]
        if table_builder.primary_key_column and table_builder.primary_key_column not in primary_keys:
            primary_keys.append(table_builder.primary_key_column)
        if len(primary_keys) > 1:
            raise TypeMappingError(f"Table {schema}.{name} needs exactly one primary key column")

        for column, builder in column_builders.items():
            is_primary_key = column in primary_keys
            self.add_column(
                name,
                column,
                builder.build_sql_type(),
                schema=schema,
                nullable=builder.nullable,
                default_sql=builder.build_default(),
                primary_key=is_primary_key,
                identity=builder.identity_generation,
            )
            if builder.unique and not is_primary_key:
                self.add_unique(name, column, schema=schema)

        for op in table_builder.unique_constraints + table_builder.check_constraints + table_builder.foreign_keys:
            self._add(op)

        return table_builder

    def drop_table(self, name: str, schema: str = "public") -> None:
        self._add(MigrationOperation(OpType.DROP_TABLE, schema, name))

    def add_column(
        self,
        table: str,
        column: str,
        sql_type: str,
        schema: str = "public",
        nullable: bool = True,
        default_sql: Optional[str] = None,
        primary_key: bool = False,
        identity: Optional[str] = None,
    ) -> None:
        """Add a column.

        Args:
            table: Table name
            column: Column name
            sql_type: Full SQL type, e.g. ``VARCHAR(100)``
            schema: Schema name
            nullable: Whether NULL is allowed
            default_sql: Raw SQL default expression
            primary_key: Whether the column is the primary key
            identity: Identity generation (``ALWAYS`` or ``BY DEFAULT``), None for no identity
        """
        self._add(
            MigrationOperation(
                OpType.ADD_COLUMN,
                schema,
                table,
                column=column,
                sql_type=sql_type,
                is_nullable=nullable,
                default_sql=default_sql,
                is_primary_key=primary_key,
                is_identity=identity is not None,
                identity_generation=normalize_rule(identity),
            )
        )

    def drop_column(self, table: str, column: str, schema: str = "public") -> None:
        self._add(MigrationOperation(OpType.DROP_COLUMN, schema, table, column=column))

    def alter_column_type(self, table: str, column: str, sql_type: str, schema: str = "public") -> None:
        self._add(MigrationOperation(OpType.ALTER_COLUMN_TYPE, schema, table, column=column, sql_type=sql_type))

    def alter_nullability(self, table: str, column: str, nullable: bool, schema: str = "public") -> None:
        self._add(MigrationOperation(OpType.ALTER_NULLABILITY, schema, table, column=column, is_nullable=nullable))

    def set_default(self, table: str, column: str, default_sql: str, schema: str = "public") -> None:
        self._add(MigrationOperation(OpType.SET_DEFAULT, schema, table, column=column, default_sql=default_sql))

    def drop_default(self, table: str, column: str, schema: str = "public") -> None:
        self._add(MigrationOperation(OpType.DROP_DEFAULT, schema, table, column=column))

    def add_unique(
        self, table: str, column: str, schema: str = "public", constraint_name: Optional[str] = None
    ) -> None:
        self._add(
            MigrationOperation(OpType.ADD_UNIQUE, schema, table, column=column, constraint_name=constraint_name)
        )

    def add_check(self, table: str, constraint_name: str, sql: str, schema: str = "public") -> None:
        self._add(
            MigrationOperation(
                OpType.ADD_CHECK, schema, table, constraint_name=constraint_name, check_expression=sql
            )
        )

    def drop_constraint(self, table: str, constraint_name: str, schema: str = "public") -> None:
        self._add(MigrationOperation(OpType.DROP_CONSTRAINT, schema, table, constraint_name=constraint_name))

    def add_foreign_key(
        self,
        table: str,
        column: str,
        principal_table: str,
        principal_column: str = "id",
        schema: str = "public",
        principal_schema: str = "public",
        constraint_name: Optional[str] = None,
        on_delete: Action = None,
        on_update: Action = None,
    ) -> None:
        self._add(
            MigrationOperation(
                OpType.ADD_FOREIGN_KEY,
                schema,
                table,
                column=column,
                constraint_name=constraint_name,
                ref_schema=principal_schema,
                ref_table=principal_table,
                ref_column=principal_column,
                on_delete_rule=ReferentialAction.parse(on_delete).to_sql(),
                on_update_rule=ReferentialAction.parse(on_update).to_sql(),
            )
        )
