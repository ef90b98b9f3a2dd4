"""Migration runner: applies and rolls back migrations and syncs the schema to the model."""

import logging
from typing import Iterable, List, Optional, Tuple, Union

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from apolon.core.config import Settings, get_settings
from apolon.core.exceptions import DataAccessError, MigrationExecutionError, MigrationStateError
from apolon.core.logging import (
    log_migration_applied,
    log_migration_failed,
    log_migration_rolled_back,
    log_schema_synced,
)
from apolon.core.mapping.metadata import EntityMetadata
from apolon.core.mapping.registry import MetadataRegistry
from apolon.core.migrations.builder import MigrationBuilder
from apolon.core.migrations.differ import SchemaDiffer
from apolon.core.migrations.history import HistoryEntry, MigrationHistoryRepository
from apolon.core.migrations.migration import Migration, discover_migrations, order_migrations
from apolon.core.migrations.models import (
    MigrationInfo,
    MigrationResult,
    MigrationStatus,
    SchemaSnapshot,
    VerificationResult,
)
from apolon.core.migrations.operations import MigrationOperation
from apolon.core.migrations.snapshot_builder import ModelSnapshotBuilder
from apolon.core.migrations.snapshot_reader import SnapshotReader
from apolon.core.migrations.sql import compile_operations

logger = logging.getLogger(__name__)

UP = "up"
DOWN = "down"

# DDL goes to the driver verbatim, % signs included
NO_PARAMETERS = {"no_parameters": True}

Entities = Optional[Iterable[Union[str, EntityMetadata]]]
Plan = List[Tuple[Migration, List[str]]]


def _error_message(exc: SQLAlchemyError) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig).strip()
    return str(exc)


class MigrationRunner:
    """Runs versioned migrations and model syncs against one database."""

    def __init__(
        self,
        engine: Engine,
        migrations: Optional[Iterable[Migration]] = None,
        registry: Optional[MetadataRegistry] = None,
        history: Optional[MigrationHistoryRepository] = None,
        reader: Optional[SnapshotReader] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize migration runner.

        Args:
            engine: SQLAlchemy engine for the target database
            migrations: Known migrations; discovered from MIGRATIONS_PATH when omitted
            registry: Entity metadata used by diff, sync and verify
            history: History repository; built from settings when omitted
            reader: Snapshot reader; built from settings when omitted
            settings: Settings; the cached settings when omitted
        """
        self.settings = settings or get_settings()
        self.engine = engine
        if migrations is None:
            self.migrations = discover_migrations(self.settings.MIGRATIONS_PATH)
        else:
            self.migrations = order_migrations(migrations)
        self.registry = registry if registry is not None else MetadataRegistry()
        self.history = history or MigrationHistoryRepository(self.settings.HISTORY_SCHEMA, self.settings.HISTORY_TABLE)
        self.reader = reader or SnapshotReader(self.settings.HISTORY_SCHEMA, self.settings.HISTORY_TABLE)
        self.snapshot_builder = ModelSnapshotBuilder(self.registry)
        self.differ = SchemaDiffer()
        self._history_ready = False

    # History

    def ensure_history_table(self) -> None:
        """Create the history schema and table on first use."""
        if self._history_ready:
            return
        try:
            with self.engine.begin() as connection:
                self.history.ensure_table(connection)
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to create migration history table: {_error_message(exc)}") from exc
        self._history_ready = True

    def get_history(self) -> List[HistoryEntry]:
        self.ensure_history_table()
        try:
            with self.engine.connect() as connection:
                return self.history.get_applied(connection)
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to read migration history: {_error_message(exc)}") from exc

    def get_applied_migrations(self) -> List[str]:
        """Get names of applied migrations in the order they were applied."""
        return [entry.migration_name for entry in self.get_history()]

    def get_status(self) -> MigrationStatus:
        """Get applied, pending and orphaned migrations.

        Returns:
            MigrationStatus object
        """
        history = self.get_history()
        by_name = {entry.migration_name: entry for entry in history}
        known = {migration.full_name for migration in self.migrations}

        applied = []
        pending = []
        for migration in self.migrations:
            entry = by_name.get(migration.full_name)
            info = MigrationInfo(
                name=migration.full_name,
                timestamp=migration.timestamp,
                applied=entry is not None,
                applied_at=entry.applied_at if entry else None,
                product_version=entry.product_version if entry else None,
                description=migration.description,
            )
            (applied if entry else pending).append(info)

        return MigrationStatus(
            current_migration=applied[-1].name if applied else None,
            applied=applied,
            pending=pending,
            orphaned=[entry.migration_name for entry in history if entry.migration_name not in known],
        )

    # Planning

    def find_migration(self, target: str) -> Migration:
        """Find a migration by full or bare name.

        Raises:
            MigrationStateError: If no known migration matches
        """
        for migration in self.migrations:
            if migration.matches(target):
                return migration
        raise MigrationStateError(f"Target migration '{target}' not found")

    def determine_migrations_to_run(self, applied: List[str], target: Optional[str] = None) -> List[Migration]:
        """Pending migrations in ascending order, up to and including ``target`` when given."""
        limit = self.find_migration(target).full_name if target else None
        applied_names = set(applied)
        to_run = []
        for migration in self.migrations:
            if limit is not None and migration.full_name > limit:
                break
            if migration.full_name not in applied_names:
                to_run.append(migration)
        return to_run

    def determine_migrations_to_rollback(self, applied: List[str], target: str) -> List[Migration]:
        """Applied migrations after ``target``, most recent first.

        Raises:
            MigrationStateError: If the target is unknown or was never applied
        """
        target_migration = self.find_migration(target)
        if target_migration.full_name not in applied:
            raise MigrationStateError(f"Target migration '{target}' has not been applied")
        applied_names = set(applied)
        return [
            migration
            for migration in reversed(self.migrations)
            if migration.full_name > target_migration.full_name and migration.full_name in applied_names
        ]

    def _plan(self, migrations: List[Migration], direction: str) -> Plan:
        """Build and compile every migration before any of them runs."""
        plan = []
        for migration in migrations:
            builder = MigrationBuilder()
            getattr(migration, direction)(builder)
            plan.append((migration, compile_operations(builder.operations)))
        return plan

    # Execution

    @staticmethod
    def _execute_statements(connection: Connection, statements: List[str]) -> None:
        for statement in statements:
            connection.exec_driver_sql(statement, execution_options=NO_PARAMETERS)

    def _execute(self, plan: Plan, direction: str) -> Tuple[List[str], List[str]]:
        """Run each migration in its own transaction, stopping at the first failure.

        Returns:
            Tuple of (completed migration names, executed statements)
        """
        completed: List[str] = []
        executed: List[str] = []

        for migration, statements in plan:
            current: Optional[str] = None
            try:
                with self.engine.begin() as connection:
                    for current in statements:
                        self._execute_statements(connection, [current])
                    current = None
                    if direction == UP:
                        self.history.record(connection, migration.full_name, self.settings.PRODUCT_VERSION)
                    else:
                        self.history.remove(connection, migration.full_name)
            except SQLAlchemyError as exc:
                message = _error_message(exc)
                log_migration_failed(migration.full_name, direction, current, message)
                raise MigrationExecutionError(
                    migration.full_name, message, statement=current, completed=completed
                ) from exc

            completed.append(migration.full_name)
            executed.extend(statements)
            if direction == UP:
                log_migration_applied(migration.full_name, len(statements))
            else:
                log_migration_rolled_back(migration.full_name, len(statements))

        return completed, executed

    def apply_migrations(self, target: Optional[str] = None) -> MigrationResult:
        """Apply pending migrations, optionally stopping after ``target``.

        Returns:
            MigrationResult with the applied migration names

        Raises:
            MigrationStateError: If the target is unknown
            MigrationExecutionError: If a migration fails; earlier ones stay applied
        """
        applied = self.get_applied_migrations()
        to_run = self.determine_migrations_to_run(applied, target)
        if not to_run:
            return MigrationResult(success=True, warnings=["No pending migrations"])

        completed, statements = self._execute(self._plan(to_run, UP), UP)
        return MigrationResult(success=True, applied_migrations=completed, statements=statements)

    def rollback(self, target: str) -> MigrationResult:
        """Roll back every applied migration after ``target``, most recent first.

        Raises:
            MigrationStateError: If the target is unknown or was never applied
            MigrationExecutionError: If a Down fails; earlier rollbacks stay committed
        """
        applied = self.get_applied_migrations()
        to_rollback = self.determine_migrations_to_rollback(applied, target)

        known = {migration.full_name for migration in self.migrations}
        limit = self.find_migration(target).full_name
        warnings = [
            f"Applied migration '{name}' is not among the known migrations and was not rolled back"
            for name in applied
            if name > limit and name not in known
        ]

        if not to_rollback:
            return MigrationResult(success=True, warnings=warnings + [f"Nothing to roll back after '{target}'"])

        completed, statements = self._execute(self._plan(to_rollback, DOWN), DOWN)
        return MigrationResult(
            success=True, rolled_back_migrations=completed, statements=statements, warnings=warnings
        )

    def update(self, target: Optional[str] = None) -> MigrationResult:
        """Move the database to ``target``: apply up to it or roll back to it.

        Without a target every pending migration is applied.
        """
        if target is None:
            return self.apply_migrations()

        target_name = self.find_migration(target).full_name
        applied = self.get_applied_migrations()
        if target_name in applied:
            if any(name > target_name for name in applied):
                return self.rollback(target)
            return MigrationResult(success=True, warnings=[f"Database is already at '{target_name}'"])
        return self.apply_migrations(target)

    # Model sync

    def read_snapshot(self) -> SchemaSnapshot:
        """Read the live schema.

        Raises:
            DataAccessError: If the connection or catalog read fails
        """
        try:
            with self.engine.connect() as connection:
                return self.reader.read(connection)
        except DataAccessError:
            raise
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to connect to the database: {_error_message(exc)}") from exc

    def build_snapshot(self, entities: Entities = None) -> SchemaSnapshot:
        return self.snapshot_builder.build(entities)

    def diff(self, entities: Entities = None) -> List[MigrationOperation]:
        """Operations that bring the live schema in line with the model."""
        expected = self.build_snapshot(entities)
        return self.differ.diff(expected, self.read_snapshot())

    def preview_sync(self, entities: Entities = None) -> List[str]:
        """Statements a sync would execute, without executing them."""
        return compile_operations(self.diff(entities))

    def sync(self, entities: Entities = None) -> MigrationResult:
        """Apply the model diff directly in one transaction, without touching history.

        Raises:
            DataAccessError: If a statement fails; the whole sync is rolled back
        """
        statements = self.preview_sync(entities)
        if not statements:
            return MigrationResult(success=True, warnings=["Schema is already in sync with the model"])

        try:
            with self.engine.begin() as connection:
                self._execute_statements(connection, statements)
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Schema sync failed: {_error_message(exc)}") from exc

        log_schema_synced(len(statements))
        return MigrationResult(success=True, statements=statements)

    def verify(self, entities: Entities = None) -> VerificationResult:
        """Compare the model against the live schema without changing anything."""
        expected = self.build_snapshot(entities)
        actual = self.read_snapshot()
        return VerificationResult(
            schema_match=expected == actual,
            issues=expected.describe_differences(actual),
            operations=self.differ.diff(expected, actual),
        )
