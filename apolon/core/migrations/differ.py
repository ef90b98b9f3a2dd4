"""Schema differ: computes the operations that turn the actual schema into the expected one."""

import logging
from typing import List

from apolon.core.migrations.models import ColumnSnapshot, SchemaSnapshot, TableSnapshot
from apolon.core.migrations.normalization import constraint_name
from apolon.core.migrations.operations import MigrationOperation, MigrationOperationType
from apolon.core.migrations.sorter import sort_operations

logger = logging.getLogger(__name__)

OpType = MigrationOperationType


def _add_column(table: TableSnapshot, column: ColumnSnapshot) -> MigrationOperation:
    return MigrationOperation(
        OpType.ADD_COLUMN,
        table.schema,
        table.table,
        column=column.column_name,
        sql_type=column.data_type,
        character_maximum_length=column.character_maximum_length,
        numeric_precision=column.numeric_precision,
        numeric_scale=column.numeric_scale,
        datetime_precision=column.datetime_precision,
        is_nullable=column.is_nullable,
        default_sql=column.column_default,
        is_primary_key=column.is_primary_key,
        is_identity=column.is_identity,
        identity_generation=column.identity_generation,
    )


def _add_unique(table: TableSnapshot, column: ColumnSnapshot) -> MigrationOperation:
    return MigrationOperation(
        OpType.ADD_UNIQUE,
        table.schema,
        table.table,
        column=column.column_name,
        constraint_name=column.unique_constraint_name,
    )


def _add_foreign_key(table: TableSnapshot, column: ColumnSnapshot) -> MigrationOperation:
    return MigrationOperation(
        OpType.ADD_FOREIGN_KEY,
        table.schema,
        table.table,
        column=column.column_name,
        constraint_name=column.fk_constraint_name,
        ref_schema=column.references_schema,
        ref_table=column.references_table,
        ref_column=column.references_column,
        on_delete_rule=column.fk_delete_rule,
        on_update_rule=column.fk_update_rule,
    )


def _drop_constraint(table: TableSnapshot, name: str) -> MigrationOperation:
    return MigrationOperation(OpType.DROP_CONSTRAINT, table.schema, table.table, constraint_name=name)


def _drop_foreign_key(table: TableSnapshot, column: ColumnSnapshot) -> MigrationOperation:
    name = column.fk_constraint_name or constraint_name(table.table, column.column_name, "fkey")
    return _drop_constraint(table, name)


class SchemaDiffer:
    """Compares an expected snapshot against an actual one."""

    def diff(self, expected: SchemaSnapshot, actual: SchemaSnapshot) -> List[MigrationOperation]:
        """
        Compute the operations that transform ``actual`` into ``expected``.

        Tables missing from ``actual`` are created column by column in declared
        order; tables missing from ``expected`` are dropped whole. Shared tables
        are compared column by column. The result is sorted for execution, and
        diffing two equal snapshots yields no operations.

        Args:
            expected: Desired schema, usually built from the model
            actual: Current schema, usually read from the database

        Returns:
            Ordered list of operations
        """
        actual_tables = {table.key: table for table in actual.tables}
        expected_tables = {table.key: table for table in expected.tables}

        schemas: List[MigrationOperation] = []
        foreign_key_drops: List[MigrationOperation] = []
        unique_drops: List[MigrationOperation] = []
        changes: List[MigrationOperation] = []
        table_drops: List[MigrationOperation] = []

        for table in expected.tables:
            if table.key in actual_tables:
                continue
            schemas.append(MigrationOperation(OpType.CREATE_SCHEMA, table.schema))
            changes.append(MigrationOperation(OpType.CREATE_TABLE, table.schema, table.table))
            for column in table.columns:
                changes.extend(self._add_column_operations(table, column))

        for table in expected.tables:
            actual_table = actual_tables.get(table.key)
            if actual_table is None:
                continue
            self._diff_table(table, actual_table, foreign_key_drops, unique_drops, changes)

        for table in actual.tables:
            if table.key in expected_tables:
                continue
            table_drops.append(MigrationOperation(OpType.DROP_TABLE, table.schema, table.table))
            # Foreign keys into surviving tables must go before those tables drop columns
            for column in table.columns:
                if column.is_foreign_key and (column.references_schema, column.references_table) in expected_tables:
                    foreign_key_drops.append(_drop_foreign_key(table, column))

        # Foreign keys are dropped before the unique constraints they may rely on
        return sort_operations(schemas + foreign_key_drops + unique_drops + changes + table_drops)

    def _add_column_operations(self, table: TableSnapshot, column: ColumnSnapshot) -> List[MigrationOperation]:
        operations = [_add_column(table, column)]
        if column.is_unique:
            operations.append(_add_unique(table, column))
        if column.is_foreign_key:
            operations.append(_add_foreign_key(table, column))
        return operations

    def _diff_table(
        self,
        expected: TableSnapshot,
        actual: TableSnapshot,
        foreign_key_drops: List[MigrationOperation],
        unique_drops: List[MigrationOperation],
        changes: List[MigrationOperation],
    ) -> None:
        actual_columns = {column.column_name: column for column in actual.columns}
        expected_names = {column.column_name for column in expected.columns}

        for column in expected.columns:
            actual_column = actual_columns.get(column.column_name)
            if actual_column is None:
                changes.extend(self._add_column_operations(expected, column))
            else:
                self._diff_column(expected, column, actual_column, foreign_key_drops, unique_drops, changes)

        for column in actual.columns:
            if column.column_name not in expected_names:
                if column.is_foreign_key:
                    foreign_key_drops.append(_drop_foreign_key(actual, column))
                changes.append(
                    MigrationOperation(OpType.DROP_COLUMN, actual.schema, actual.table, column=column.column_name)
                )

    def _diff_column(
        self,
        table: TableSnapshot,
        expected: ColumnSnapshot,
        actual: ColumnSnapshot,
        foreign_key_drops: List[MigrationOperation],
        unique_drops: List[MigrationOperation],
        changes: List[MigrationOperation],
    ) -> None:
        name = expected.column_name

        if expected.type_signature() != actual.type_signature():
            changes.append(
                MigrationOperation(
                    OpType.ALTER_COLUMN_TYPE,
                    table.schema,
                    table.table,
                    column=name,
                    sql_type=expected.data_type,
                    character_maximum_length=expected.character_maximum_length,
                    numeric_precision=expected.numeric_precision,
                    numeric_scale=expected.numeric_scale,
                    datetime_precision=expected.datetime_precision,
                )
            )

        if expected.is_nullable != actual.is_nullable:
            changes.append(
                MigrationOperation(
                    OpType.ALTER_NULLABILITY, table.schema, table.table, column=name, is_nullable=expected.is_nullable
                )
            )

        if expected.column_default != actual.column_default:
            if expected.column_default is None:
                changes.append(MigrationOperation(OpType.DROP_DEFAULT, table.schema, table.table, column=name))
            else:
                changes.append(
                    MigrationOperation(
                        OpType.SET_DEFAULT, table.schema, table.table, column=name, default_sql=expected.column_default
                    )
                )

        unique_changed = (expected.is_unique, expected.unique_constraint_name) != (
            actual.is_unique,
            actual.unique_constraint_name,
        )
        if unique_changed:
            if actual.is_unique:
                unique_drops.append(_drop_constraint(table, actual.unique_constraint_name))
            if expected.is_unique:
                changes.append(_add_unique(table, expected))

        if expected.foreign_key_signature() != actual.foreign_key_signature():
            if actual.is_foreign_key:
                foreign_key_drops.append(_drop_foreign_key(table, actual))
            if expected.is_foreign_key:
                changes.append(_add_foreign_key(table, expected))

        if (expected.is_primary_key, expected.is_identity, expected.identity_generation) != (
            actual.is_primary_key,
            actual.is_identity,
            actual.identity_generation,
        ):
            logger.warning(
                f"Primary key or identity of {table.qualified_name}.{name} differs from the model; "
                "this change is not migrated automatically"
            )
