"""Migration history table: the record of which migrations have been applied."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, Identity, Integer, MetaData, String, Table, delete, func, insert, select
from sqlalchemy.engine import Connection
from sqlalchemy.schema import CreateSchema

from apolon.core.config import get_settings


@dataclass
class HistoryEntry:
    """One applied migration."""

    migration_name: str
    applied_at: Optional[datetime] = None
    product_version: Optional[str] = None


def build_history_table(schema: str, name: str, metadata: Optional[MetaData] = None) -> Table:
    return Table(
        name,
        metadata if metadata is not None else MetaData(),
        Column("migration_id", Integer, Identity(always=True), primary_key=True),
        Column("migration_name", String(300), nullable=False, unique=True),
        Column("product_version", String(32), nullable=True),
        Column("applied_at", DateTime, nullable=False, server_default=func.now()),
        schema=schema,
    )


class MigrationHistoryRepository:
    """Reads and writes history rows on a caller-supplied connection.

    Writes happen on the connection of the migration's own transaction, so a
    history row commits or rolls back together with the DDL it records.
    """

    def __init__(self, schema: Optional[str] = None, table: Optional[str] = None):
        settings = get_settings()
        self.schema = schema or settings.HISTORY_SCHEMA
        self.table_name = table or settings.HISTORY_TABLE
        self.table = build_history_table(self.schema, self.table_name)

    def ensure_table(self, connection: Connection) -> None:
        """Create the history schema and table if they do not exist."""
        connection.execute(CreateSchema(self.schema, if_not_exists=True))
        self.table.create(connection, checkfirst=True)

    def get_applied(self, connection: Connection) -> List[HistoryEntry]:
        """Get applied migrations, oldest first."""
        statement = select(
            self.table.c.migration_name, self.table.c.applied_at, self.table.c.product_version
        ).order_by(self.table.c.applied_at, self.table.c.migration_id)
        return [
            HistoryEntry(
                migration_name=row.migration_name,
                applied_at=row.applied_at,
                product_version=row.product_version,
            )
            for row in connection.execute(statement)
        ]

    def record(self, connection: Connection, migration_name: str, product_version: Optional[str] = None) -> None:
        connection.execute(
            insert(self.table).values(migration_name=migration_name, product_version=product_version)
        )

    def remove(self, connection: Connection, migration_name: str) -> None:
        connection.execute(delete(self.table).where(self.table.c.migration_name == migration_name))
