"""Schema snapshots, diffing and versioned migrations for PostgreSQL."""

from apolon.core.migrations.builder import ColumnBuilder, CreateTableBuilder, MigrationBuilder
from apolon.core.migrations.differ import SchemaDiffer
from apolon.core.migrations.history import HistoryEntry, MigrationHistoryRepository
from apolon.core.migrations.migration import Migration, discover_migrations, load_migration
from apolon.core.migrations.models import (
    ColumnSnapshot,
    MigrationInfo,
    MigrationResult,
    MigrationStatus,
    SchemaSnapshot,
    TableSnapshot,
    VerificationResult,
)
from apolon.core.migrations.operations import MigrationOperation, MigrationOperationType
from apolon.core.migrations.reporter import MigrationReporter
from apolon.core.migrations.runner import MigrationRunner
from apolon.core.migrations.snapshot_builder import ModelSnapshotBuilder
from apolon.core.migrations.snapshot_reader import SnapshotReader
from apolon.core.migrations.sql import compile_operation, compile_operations

__all__ = [
    "ColumnBuilder",
    "CreateTableBuilder",
    "MigrationBuilder",
    "SchemaDiffer",
    "HistoryEntry",
    "MigrationHistoryRepository",
    "Migration",
    "discover_migrations",
    "load_migration",
    "ColumnSnapshot",
    "TableSnapshot",
    "SchemaSnapshot",
    "MigrationInfo",
    "MigrationStatus",
    "MigrationResult",
    "VerificationResult",
    "MigrationOperation",
    "MigrationOperationType",
    "MigrationReporter",
    "MigrationRunner",
    "ModelSnapshotBuilder",
    "SnapshotReader",
    "compile_operation",
    "compile_operations",
]
