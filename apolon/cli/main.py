"""Main CLI entry point for apolon."""

import typer

from apolon import __version__
from apolon.cli.commands import migrate

app = typer.Typer(
    name="apolon",
    help="apolon - PostgreSQL schema migrations and model sync",
    add_completion=False,
)

# Register subcommands
app.add_typer(migrate.app, name="migrate")


@app.command()
def version() -> None:
    """Show the installed version."""
    typer.echo(__version__)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
