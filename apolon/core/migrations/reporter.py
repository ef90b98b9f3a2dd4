"""Migration reporter for generating formatted reports."""

from typing import List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from tabulate import tabulate

from apolon.core.migrations.models import (
    MigrationInfo,
    MigrationResult,
    MigrationStatus,
    VerificationResult,
)
from apolon.core.migrations.operations import MigrationOperation

console = Console()


def _shorten(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def _operation_detail(op: MigrationOperation) -> str:
    """Short human description of what an operation changes."""
    if op.sql_type is not None:
        detail = op.get_sql_type()
        if op.is_nullable is False:
            detail += " NOT NULL"
        if op.default_sql is not None:
            detail += f" DEFAULT {op.default_sql}"
        return detail
    if op.ref_table is not None:
        return f"-> {op.ref_schema}.{op.ref_table}({op.ref_column}) ON DELETE {op.on_delete_rule or 'NO ACTION'}"
    if op.check_expression is not None:
        return f"{op.constraint_name}: {op.check_expression}"
    if op.constraint_name is not None:
        return op.constraint_name
    if op.is_nullable is not None:
        return "NULL" if op.is_nullable else "NOT NULL"
    if op.default_sql is not None:
        return op.default_sql
    return ""


class MigrationReporter:
    """Reporter for generating formatted migration reports."""

    def __init__(self):
        """Initialize migration reporter."""
        self.console = console

    def generate_status_report(self, status: MigrationStatus) -> str:
        """Print the status report with Rich and return its plain-text form.

        Args:
            status: MigrationStatus object

        Returns:
            Formatted status report string
        """
        self.console.print(
            Panel.fit(
                "[bold cyan]Migration Status Report[/bold cyan]",
                border_style="cyan",
            )
        )

        current = status.current_migration or "None (no migrations applied)"
        self.console.print(f"\n[bold]Current Migration:[/bold] {current}")

        if status.applied:
            table = Table(title="Applied Migrations", show_header=True, header_style="bold green")
            table.add_column("Migration", style="cyan")
            table.add_column("Applied At", style="white")
            table.add_column("Version", style="white")
            table.add_column("Description", style="dim")

            for migration in status.applied:
                applied_at = migration.applied_at.strftime("%Y-%m-%d %H:%M:%S") if migration.applied_at else "-"
                table.add_row(
                    migration.name,
                    applied_at,
                    migration.product_version or "-",
                    _shorten(migration.description or "No description", 50),
                )

            self.console.print(f"\n[green]✓ Applied Migrations ({len(status.applied)}):[/green]")
            self.console.print(table)
        else:
            self.console.print("\n[yellow]⚠ No migrations applied[/yellow]")

        if status.pending:
            table = Table(title="Pending Migrations", show_header=True, header_style="bold yellow")
            table.add_column("Migration", style="cyan")
            table.add_column("Description", style="dim")

            for migration in status.pending:
                table.add_row(migration.name, _shorten(migration.description or "No description", 50))

            self.console.print(f"\n[yellow]⏳ Pending Migrations ({len(status.pending)}):[/yellow]")
            self.console.print(table)
        else:
            self.console.print("\n[green]✓ No pending migrations[/green]")

        if status.orphaned:
            self.console.print(f"\n[red]⚠ Orphaned Migrations ({len(status.orphaned)}):[/red]")
            for orphaned in status.orphaned:
                self.console.print(f"  • {orphaned}")

        return self._status_to_text(status)

    def _status_to_text(self, status: MigrationStatus) -> str:
        """Convert status to text representation."""
        lines = []
        lines.append("=" * 60)
        lines.append("Migration Status Report")
        lines.append("=" * 60)
        lines.append(f"\nCurrent Migration: {status.current_migration or 'None'}")
        lines.append(f"\nApplied Migrations ({len(status.applied)}):")
        for migration in status.applied:
            lines.append(f"  ✓ {migration.name}")
            if migration.description:
                lines.append(f"    {migration.description}")

        lines.append(f"\nPending Migrations ({len(status.pending)}):")
        for migration in status.pending:
            lines.append(f"  ⏳ {migration.name}")
            if migration.description:
                lines.append(f"    {migration.description}")

        if status.orphaned:
            lines.append(f"\nOrphaned Migrations ({len(status.orphaned)}):")
            for orphaned in status.orphaned:
                lines.append(f"  ⚠ {orphaned}")

        return "\n".join(lines)

    def format_migration_list(self, migrations: List[MigrationInfo]) -> str:
        """Format list of migrations.

        Args:
            migrations: List of MigrationInfo objects

        Returns:
            Formatted migration list
        """
        if not migrations:
            return "No migrations"

        table_data = []
        for migration in migrations:
            status = "✓" if migration.applied else "⏳"
            desc = _shorten(migration.description or "No description", 40)
            table_data.append([status, migration.timestamp, migration.name, desc])

        return tabulate(
            table_data,
            headers=["Status", "Timestamp", "Migration", "Description"],
            tablefmt="grid",
        )

    def format_operations(self, operations: List[MigrationOperation]) -> str:
        """Format pending schema changes as a table.

        Args:
            operations: Operations in execution order

        Returns:
            Formatted operation table
        """
        if not operations:
            return "✓ No differences found"

        table_data = [
            [index, op.type.value, op.qualified_table, op.column or "", _operation_detail(op)]
            for index, op in enumerate(operations, start=1)
        ]
        return tabulate(
            table_data,
            headers=["#", "Operation", "Table", "Column", "Detail"],
            tablefmt="grid",
        )

    def format_statements(self, statements: List[str]) -> str:
        if not statements:
            return "-- Schema is already in sync with the model"
        return "\n".join(statements)

    def generate_verification_report(self, result: VerificationResult) -> str:
        """Generate verification report.

        Args:
            result: VerificationResult object

        Returns:
            Formatted verification report string
        """
        lines = []
        lines.append("=" * 60)
        lines.append("Schema Verification Report")
        lines.append("=" * 60)

        status_icon = "✓" if result.schema_match else "✗"
        status_text = "OK" if result.schema_match else "FAILED"
        lines.append(f"\nSchema Match: {status_icon} {status_text}")

        if result.issues:
            lines.append(f"\nIssues Found ({len(result.issues)}):")
            for issue in result.issues:
                lines.append(f"  • {issue}")
        else:
            lines.append("\n✓ No issues found")

        if result.operations:
            lines.append(f"\nOperations Needed ({len(result.operations)}):")
            for op in result.operations:
                column = f".{op.column}" if op.column else ""
                lines.append(f"  • {op.type.value} {op.qualified_table}{column}")

        return "\n".join(lines)

    def format_migration_result(self, result: MigrationResult) -> str:
        """Format migration operation result.

        Args:
            result: MigrationResult object

        Returns:
            Formatted result string
        """
        lines = []
        lines.append("=" * 60)
        if result.success:
            lines.append("✓ Migration Operation Successful")
        else:
            lines.append("✗ Migration Operation Failed")
        lines.append("=" * 60)

        if result.applied_count > 0:
            lines.append(f"\nApplied Migrations: {result.applied_count}")
            for migration in result.applied_migrations:
                lines.append(f"  • {migration}")

        if result.rolled_back_count > 0:
            lines.append(f"\nRolled Back Migrations: {result.rolled_back_count}")
            for migration in result.rolled_back_migrations:
                lines.append(f"  • {migration}")

        if result.statements:
            lines.append(f"\nStatements Executed: {len(result.statements)}")

        if result.warnings:
            lines.append(f"\nWarnings ({len(result.warnings)}):")
            for warning in result.warnings:
                lines.append(f"  ⚠ {warning}")

        return "\n".join(lines)

    def print_status_report(self, status: MigrationStatus) -> None:
        """Print status report to console using Rich.

        Args:
            status: MigrationStatus object
        """
        self.generate_status_report(status)

    def print_verification_report(self, result: VerificationResult) -> None:
        """Print verification report to console.

        Args:
            result: VerificationResult object
        """
        report = self.generate_verification_report(result)
        border_style = "green" if result.schema_match else "red"
        self.console.print(Panel(report, title="Verification Report", border_style=border_style))
