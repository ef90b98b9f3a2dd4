"""Migration base class and discovery of migration modules."""

import importlib.util
import inspect
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Union

from apolon.core.exceptions import MigrationStateError
from apolon.core.migrations.builder import MigrationBuilder

logger = logging.getLogger(__name__)

MIGRATION_FILE_RE = re.compile(r"^(?P<timestamp>\d{14})_(?P<name>\w+)$")


class Migration(ABC):
    """A named, ordered unit of schema change.

    Subclasses set ``timestamp`` (``YYYYMMDDHHMMSS``) and ``name``, or let
    discovery take both from the module file name ``<timestamp>_<name>.py``.
    """

    timestamp: str = ""
    name: str = ""

    @abstractmethod
    def up(self, builder: MigrationBuilder) -> None:
        """Record the forward operations."""
        pass

    @abstractmethod
    def down(self, builder: MigrationBuilder) -> None:
        """Record the operations that undo ``up``."""
        pass

    @property
    def full_name(self) -> str:
        return f"{self.timestamp}_{self.name}"

    @property
    def description(self) -> Optional[str]:
        # Own docstring only, not an inherited one
        doc = type(self).__doc__
        return inspect.cleandoc(doc).splitlines()[0] if doc and doc.strip() else None

    def matches(self, target: str) -> bool:
        """Whether ``target`` names this migration by full or bare name, ignoring case."""
        target = target.lower()
        return target in (self.full_name.lower(), self.name.lower())

    def __repr__(self) -> str:
        return f"<Migration({self.full_name})>"


def _load_module(file_path: Path):
    module_name = f"apolon_migrations.{file_path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def load_migration(file_path: Path) -> Migration:
    """
    Import a migration module and instantiate its Migration subclass.

    Args:
        file_path: Path to ``<timestamp>_<name>.py``

    Returns:
        Migration instance with timestamp and name filled in from the file name

    Raises:
        MigrationStateError: If the module defines no Migration subclass or more than one
    """
    match = MIGRATION_FILE_RE.match(file_path.stem)
    if not match:
        raise MigrationStateError(f"Migration file name must be <timestamp>_<name>.py: {file_path.name}")

    module = _load_module(file_path)
    classes = [
        obj
        for obj in vars(module).values()
        if inspect.isclass(obj)
        and issubclass(obj, Migration)
        and obj is not Migration
        and obj.__module__ == module.__name__
        and not inspect.isabstract(obj)
    ]
    if len(classes) != 1:
        raise MigrationStateError(f"{file_path.name} must define exactly one Migration subclass, found {len(classes)}")

    migration = classes[0]()
    if not migration.timestamp:
        migration.timestamp = match.group("timestamp")
    if not migration.name:
        migration.name = match.group("name")
    return migration


def order_migrations(migrations: Iterable[Migration]) -> List[Migration]:
    """Sort migrations by full name and reject duplicates.

    Raises:
        MigrationStateError: If two migrations share a full name
    """
    ordered = sorted(migrations, key=lambda migration: migration.full_name)
    seen = set()
    for migration in ordered:
        if migration.full_name in seen:
            raise MigrationStateError(f"Duplicate migration name: {migration.full_name}")
        seen.add(migration.full_name)
    return ordered


def discover_migrations(directory: Union[str, Path]) -> List[Migration]:
    """
    Load every migration module in a directory.

    Args:
        directory: Directory containing ``<timestamp>_<name>.py`` files

    Returns:
        Migrations in ascending full-name order (chronological)
    """
    directory = Path(directory)
    if not directory.is_dir():
        logger.warning(f"Migrations directory not found: {directory}")
        return []

    migrations = []
    for file_path in sorted(directory.glob("*.py")):
        if file_path.name == "__init__.py":
            continue
        migrations.append(load_migration(file_path))

    logger.debug(f"Discovered {len(migrations)} migrations in {directory}")
    return order_migrations(migrations)
