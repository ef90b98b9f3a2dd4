"""Data models for schema snapshots and migration management."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ColumnSnapshot:
    """Canonical description of one column, with its constraint membership projected onto it."""

    column_name: str
    data_type: str
    udt_name: str
    character_maximum_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None
    datetime_precision: Optional[int] = None
    is_nullable: bool = True
    column_default: Optional[str] = None
    is_identity: bool = False
    identity_generation: Optional[str] = None
    is_generated: bool = False
    generation_expression: Optional[str] = None
    is_primary_key: bool = False
    pk_constraint_name: Optional[str] = None
    is_unique: bool = False
    unique_constraint_name: Optional[str] = None
    is_foreign_key: bool = False
    fk_constraint_name: Optional[str] = None
    references_schema: Optional[str] = None
    references_table: Optional[str] = None
    references_column: Optional[str] = None
    fk_update_rule: Optional[str] = None
    fk_delete_rule: Optional[str] = None

    def type_signature(self) -> Tuple:
        """Fields that decide whether the column's type must be altered."""
        return (
            self.data_type,
            self.character_maximum_length,
            self.numeric_precision,
            self.numeric_scale,
            self.datetime_precision,
        )

    def foreign_key_signature(self) -> Optional[Tuple]:
        """Fields that identify the column's foreign key, or None when it has none."""
        if not self.is_foreign_key:
            return None
        return (
            self.fk_constraint_name,
            self.references_schema,
            self.references_table,
            self.references_column,
            self.fk_update_rule,
            self.fk_delete_rule,
        )


class TableSnapshot:
    """Canonical description of a table; equality ignores column order."""

    def __init__(self, schema: str, table: str, columns: Optional[List[ColumnSnapshot]] = None):
        self.schema = schema
        self.table = table
        self.columns: Tuple[ColumnSnapshot, ...] = tuple(columns or ())

        seen = set()
        for column in self.columns:
            if column.column_name in seen:
                raise ValueError(f"Duplicate column '{column.column_name}' in table {self.qualified_name}")
            seen.add(column.column_name)

    @property
    def key(self) -> Tuple[str, str]:
        return self.schema, self.table

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.table}"

    def column(self, name: str) -> Optional[ColumnSnapshot]:
        for column in self.columns:
            if column.column_name == name:
                return column
        return None

    def _canonical(self) -> Tuple:
        return self.schema, self.table, tuple(sorted(self.columns, key=lambda c: c.column_name))

    def __eq__(self, other) -> bool:
        if not isinstance(other, TableSnapshot):
            return NotImplemented
        return self._canonical() == other._canonical()

    def __hash__(self) -> int:
        return hash(self._canonical())

    def __repr__(self) -> str:
        return f"<TableSnapshot({self.qualified_name}, columns={len(self.columns)})>"


class SchemaSnapshot:
    """Canonical description of a whole schema; equality ignores table and column order."""

    def __init__(self, tables: Optional[List[TableSnapshot]] = None):
        self.tables: Tuple[TableSnapshot, ...] = tuple(tables or ())

        seen = set()
        for table in self.tables:
            if table.key in seen:
                raise ValueError(f"Duplicate table {table.qualified_name} in snapshot")
            seen.add(table.key)

    def table(self, schema: str, name: str) -> Optional[TableSnapshot]:
        for table in self.tables:
            if table.key == (schema, name):
                return table
        return None

    def _canonical(self) -> Tuple:
        return tuple(table._canonical() for table in sorted(self.tables, key=lambda t: t.key))

    def __eq__(self, other) -> bool:
        if not isinstance(other, SchemaSnapshot):
            return NotImplemented
        return self._canonical() == other._canonical()

    def __hash__(self) -> int:
        return hash(self._canonical())

    def __len__(self) -> int:
        return len(self.tables)

    def __repr__(self) -> str:
        return f"<SchemaSnapshot(tables={len(self.tables)})>"

    def describe_differences(self, other: "SchemaSnapshot") -> List[str]:
        """
        Human-readable list of differences between this snapshot and another.

        This snapshot is treated as the expected side and ``other`` as the actual one.

        Args:
            other: Snapshot to compare against

        Returns:
            One line per missing/extra table or column and per differing column field
        """
        issues = []
        mine: Dict[Tuple[str, str], TableSnapshot] = {t.key: t for t in self.tables}
        theirs: Dict[Tuple[str, str], TableSnapshot] = {t.key: t for t in other.tables}

        for key in sorted(mine.keys() | theirs.keys()):
            name = f"{key[0]}.{key[1]}"
            if key not in theirs:
                issues.append(f"Missing table {name}")
                continue
            if key not in mine:
                issues.append(f"Extra table {name}")
                continue

            expected_columns = {c.column_name: c for c in mine[key].columns}
            actual_columns = {c.column_name: c for c in theirs[key].columns}
            for column_name in sorted(expected_columns.keys() | actual_columns.keys()):
                if column_name not in actual_columns:
                    issues.append(f"Missing column {name}.{column_name}")
                    continue
                if column_name not in expected_columns:
                    issues.append(f"Extra column {name}.{column_name}")
                    continue

                expected = expected_columns[column_name]
                actual = actual_columns[column_name]
                for column_field in fields(ColumnSnapshot):
                    expected_value = getattr(expected, column_field.name)
                    actual_value = getattr(actual, column_field.name)
                    if expected_value != actual_value:
                        issues.append(
                            f"{name}.{column_name}: {column_field.name} expected "
                            f"{expected_value!r}, got {actual_value!r}"
                        )

        return issues


@dataclass
class MigrationInfo:
    """Information about a single migration."""

    name: str
    timestamp: str
    applied: bool
    applied_at: Optional[datetime] = None
    product_version: Optional[str] = None
    description: Optional[str] = None


@dataclass
class MigrationStatus:
    """Complete migration status."""

    current_migration: Optional[str]
    applied: List[MigrationInfo] = field(default_factory=list)
    pending: List[MigrationInfo] = field(default_factory=list)
    orphaned: List[str] = field(default_factory=list)


@dataclass
class MigrationResult:
    """Result of a migration run, rollback or sync."""

    success: bool
    applied_migrations: List[str] = field(default_factory=list)
    rolled_back_migrations: List[str] = field(default_factory=list)
    statements: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.applied_migrations)

    @property
    def rolled_back_count(self) -> int:
        return len(self.rolled_back_migrations)


@dataclass
class VerificationResult:
    """Result of comparing the model against the live schema."""

    schema_match: bool
    issues: List[str] = field(default_factory=list)
    operations: List = field(default_factory=list)
