"""Migration management commands."""

import importlib
from typing import Optional

import typer
from rich.console import Console
from sqlalchemy import MetaData

from apolon.core.config import get_settings
from apolon.core.db.session import get_engine
from apolon.core.exceptions import ApolonError, MigrationExecutionError
from apolon.core.mapping.registry import MetadataRegistry
from apolon.core.migrations.migration import discover_migrations
from apolon.core.migrations.reporter import MigrationReporter
from apolon.core.migrations.runner import MigrationRunner

app = typer.Typer(help="Migration management commands")
console = Console()

MODELS_HELP = "Model metadata as module:attribute (a SQLAlchemy MetaData or a MetadataRegistry)"


def load_registry(models: str) -> MetadataRegistry:
    """Import ``module:attribute`` and turn it into a MetadataRegistry.

    Raises:
        typer.BadParameter: If the reference cannot be imported or has the wrong type
    """
    module_name, _, attribute = models.partition(":")
    if not module_name or not attribute:
        raise typer.BadParameter(f"Expected module:attribute, got '{models}'")

    try:
        target = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as e:
        raise typer.BadParameter(f"Cannot load '{models}': {e}") from e

    if isinstance(target, MetadataRegistry):
        return target
    if isinstance(target, MetaData):
        return MetadataRegistry.from_sqlalchemy(target)
    raise typer.BadParameter(f"'{models}' is neither a MetaData nor a MetadataRegistry")


def _get_runner(models: Optional[str] = None) -> tuple[MigrationRunner, MigrationReporter]:
    """Get an initialized runner and reporter.

    Returns:
        Tuple of (runner, reporter)
    """
    settings = get_settings()
    registry = load_registry(models) if models else None
    runner = MigrationRunner(
        get_engine(),
        migrations=discover_migrations(settings.MIGRATIONS_PATH),
        registry=registry,
        settings=settings,
    )
    return runner, MigrationReporter()


def _fail(error: ApolonError) -> None:
    console.print(f"\n[red]✗ {error}[/red]")
    if isinstance(error, MigrationExecutionError):
        if error.statement:
            console.print(f"  Statement: {error.statement}")
        if error.completed:
            console.print(f"  Completed before the failure: {', '.join(error.completed)}")
    raise typer.Exit(1)


@app.command()
def status() -> None:
    """Show migration status."""
    try:
        runner, reporter = _get_runner()
        reporter.print_status_report(runner.get_status())
    except ApolonError as e:
        _fail(e)


@app.command()
def update(
    target: Optional[str] = typer.Argument(None, help="Migration to move to; all pending when omitted"),
) -> None:
    """Apply pending migrations, or move to a target migration in either direction."""
    try:
        runner, reporter = _get_runner()
        result = runner.update(target)
    except ApolonError as e:
        _fail(e)
    console.print(reporter.format_migration_result(result))


@app.command()
def rollback(
    target: str = typer.Argument(..., help="Migration to roll back to; it stays applied"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Roll back every migration applied after TARGET.

    Down migrations may drop tables and columns. Use with caution as this may cause data loss.
    """
    try:
        runner, reporter = _get_runner()
        to_rollback = runner.determine_migrations_to_rollback(runner.get_applied_migrations(), target)
    except ApolonError as e:
        _fail(e)

    if not to_rollback:
        console.print("[yellow]No migrations to rollback[/yellow]")
        raise typer.Exit(0)

    console.print("\n[bold yellow]⚠ WARNING: This will rollback the following migrations:[/bold yellow]")
    for i, migration in enumerate(to_rollback, 1):
        console.print(f"  {i}. {migration.full_name}")

    if not yes:
        console.print("\n[red]This action may cause data loss![/red]")
        confirm = typer.confirm("Are you sure you want to rollback these migrations?", default=False)
        if not confirm:
            console.print("[yellow]Rollback cancelled[/yellow]")
            raise typer.Exit(0)

    try:
        result = runner.rollback(target)
    except ApolonError as e:
        _fail(e)
    console.print(f"\n{reporter.format_migration_result(result)}")


@app.command()
def diff(
    models: str = typer.Option(..., "--models", "-m", help=MODELS_HELP),
    sql: bool = typer.Option(False, "--sql", help="Print the DDL instead of the operation table"),
) -> None:
    """Show the changes needed to bring the database in line with the models."""
    try:
        runner, reporter = _get_runner(models)
        if sql:
            console.print(reporter.format_statements(runner.preview_sync()), markup=False)
        else:
            console.print(reporter.format_operations(runner.diff()), markup=False)
    except ApolonError as e:
        _fail(e)


@app.command()
def sync(
    models: str = typer.Option(..., "--models", "-m", help=MODELS_HELP),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only print the statements"),
) -> None:
    """Apply the model diff directly, without writing a migration."""
    try:
        runner, reporter = _get_runner(models)
        statements = runner.preview_sync()
    except ApolonError as e:
        _fail(e)

    console.print(reporter.format_statements(statements), markup=False)
    if dry_run or not statements:
        raise typer.Exit(0)

    if not yes:
        confirm = typer.confirm(f"Execute {len(statements)} statement(s)?", default=False)
        if not confirm:
            console.print("[yellow]Sync cancelled[/yellow]")
            raise typer.Exit(0)

    try:
        result = runner.sync()
    except ApolonError as e:
        _fail(e)
    console.print(f"\n{reporter.format_migration_result(result)}")


@app.command()
def verify(
    models: str = typer.Option(..., "--models", "-m", help=MODELS_HELP),
) -> None:
    """Verify the database schema matches the models."""
    try:
        runner, reporter = _get_runner(models)
        result = runner.verify()
    except ApolonError as e:
        _fail(e)

    reporter.print_verification_report(result)
    if not result.schema_match:
        raise typer.Exit(1)
