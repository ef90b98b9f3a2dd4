"""Reads the actual schema snapshot from the live database catalog."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from apolon.core.config import get_settings
from apolon.core.exceptions import DataAccessError
from apolon.core.migrations.models import ColumnSnapshot, SchemaSnapshot, TableSnapshot
from apolon.core.migrations.normalization import (
    normalize_data_type,
    normalize_default,
    normalize_identifier,
    normalize_rule,
)

logger = logging.getLogger(__name__)

CATALOG_QUERY = text(
    """
    WITH fk AS (
        SELECT kcu.constraint_schema, kcu.constraint_name, kcu.table_schema, kcu.table_name,
               kcu.column_name, kcu.position_in_unique_constraint
        FROM information_schema.key_column_usage kcu
        JOIN information_schema.table_constraints tco
          ON kcu.constraint_schema = tco.constraint_schema
         AND kcu.constraint_name = tco.constraint_name
         AND tco.constraint_type = 'FOREIGN KEY'
    ),
    pk AS (
        SELECT kcu.table_schema, kcu.table_name, kcu.column_name, kcu.constraint_name
        FROM information_schema.key_column_usage kcu
        JOIN information_schema.table_constraints tco
          ON kcu.constraint_schema = tco.constraint_schema
         AND kcu.constraint_name = tco.constraint_name
         AND tco.constraint_type = 'PRIMARY KEY'
    ),
    uq AS (
        SELECT kcu.table_schema, kcu.table_name, kcu.column_name, kcu.constraint_name
        FROM information_schema.key_column_usage kcu
        JOIN information_schema.table_constraints tco
          ON kcu.constraint_schema = tco.constraint_schema
         AND kcu.constraint_name = tco.constraint_name
         AND tco.constraint_type = 'UNIQUE'
    )
    SELECT
        col.table_schema,
        col.table_name,
        col.ordinal_position,
        col.column_name,
        col.data_type,
        col.udt_name,
        col.character_maximum_length,
        col.numeric_precision,
        col.numeric_scale,
        col.datetime_precision,
        col.is_nullable,
        col.column_default,
        col.is_identity,
        col.identity_generation,
        col.is_generated,
        col.generation_expression,
        CASE WHEN pk.constraint_name IS NOT NULL THEN 'YES' ELSE 'NO' END AS is_primary_key,
        pk.constraint_name AS pk_constraint_name,
        CASE WHEN uq.constraint_name IS NOT NULL THEN 'YES' ELSE 'NO' END AS is_unique,
        uq.constraint_name AS unique_constraint_name,
        CASE WHEN fk.constraint_name IS NOT NULL THEN 'YES' ELSE 'NO' END AS is_foreign_key,
        fk.constraint_name AS fk_constraint_name,
        rel.table_schema AS references_schema,
        rel.table_name AS references_table,
        rel.column_name AS references_column,
        rco.update_rule AS fk_update_rule,
        rco.delete_rule AS fk_delete_rule
    FROM information_schema.columns col
    JOIN information_schema.tables tab
      ON tab.table_schema = col.table_schema
     AND tab.table_name = col.table_name
     AND tab.table_type = 'BASE TABLE'
    LEFT JOIN fk
      ON col.table_schema = fk.table_schema
     AND col.table_name = fk.table_name
     AND col.column_name = fk.column_name
    LEFT JOIN information_schema.referential_constraints rco
      ON rco.constraint_name = fk.constraint_name
     AND rco.constraint_schema = fk.constraint_schema
    LEFT JOIN information_schema.key_column_usage rel
      ON rco.unique_constraint_name = rel.constraint_name
     AND rco.unique_constraint_schema = rel.constraint_schema
     AND rel.ordinal_position = fk.position_in_unique_constraint
    LEFT JOIN pk
      ON col.table_schema = pk.table_schema
     AND col.table_name = pk.table_name
     AND col.column_name = pk.column_name
    LEFT JOIN uq
      ON col.table_schema = uq.table_schema
     AND col.table_name = uq.table_name
     AND col.column_name = uq.column_name
    WHERE col.table_schema NOT IN ('information_schema', 'pg_catalog', 'pg_toast')
      AND col.table_schema NOT LIKE 'pg_temp%'
      AND col.table_schema NOT LIKE 'pg_toast_temp%'
      AND NOT (col.table_schema = :history_schema AND col.table_name = :history_table)
    ORDER BY col.table_schema, col.table_name, col.ordinal_position,
             fk.constraint_name, uq.constraint_name
    """
)


def _yes(value: Optional[str]) -> bool:
    return value is not None and str(value).upper() == "YES"


def _int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


class SnapshotReader:
    """Introspects a PostgreSQL catalog into a SchemaSnapshot."""

    def __init__(self, history_schema: Optional[str] = None, history_table: Optional[str] = None):
        """Initialize reader.

        Args:
            history_schema: Schema of the migration history table (excluded from snapshots)
            history_table: Name of the migration history table
        """
        settings = get_settings()
        self.history_schema = history_schema or settings.HISTORY_SCHEMA
        self.history_table = history_table or settings.HISTORY_TABLE

    def read(self, connection: Connection) -> SchemaSnapshot:
        """Read the snapshot of every user table visible to the connection.

        Args:
            connection: Open SQLAlchemy connection

        Returns:
            SchemaSnapshot of the live database

        Raises:
            DataAccessError: If the catalog cannot be read; no partial snapshot is returned
        """
        try:
            rows = (
                connection.execute(
                    CATALOG_QUERY,
                    {"history_schema": self.history_schema, "history_table": self.history_table},
                )
                .mappings()
                .all()
            )
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to read database schema: {exc}") from exc

        snapshot = self.build_snapshot(rows)
        logger.debug(f"Read snapshot with {len(snapshot)} tables from the catalog")
        return snapshot

    def build_snapshot(self, rows: List[Mapping[str, Any]]) -> SchemaSnapshot:
        """Build a snapshot from catalog rows ordered by table and ordinal position."""
        tables: Dict[Tuple[str, str], Dict[str, ColumnSnapshot]] = {}

        for row in rows:
            key = (normalize_identifier(row["table_schema"]), normalize_identifier(row["table_name"]))
            columns = tables.setdefault(key, {})
            column = self.build_column(row)
            # A column in several unique or foreign key constraints yields one row per constraint
            if column.column_name not in columns:
                columns[column.column_name] = column

        return SchemaSnapshot(
            [TableSnapshot(schema, table, list(columns.values())) for (schema, table), columns in tables.items()]
        )

    @staticmethod
    def build_column(row: Mapping[str, Any]) -> ColumnSnapshot:
        is_foreign_key = _yes(row["is_foreign_key"])
        is_unique = _yes(row["is_unique"])
        is_primary_key = _yes(row["is_primary_key"])
        is_identity = _yes(row["is_identity"])

        return ColumnSnapshot(
            column_name=normalize_identifier(row["column_name"]),
            data_type=normalize_data_type(row["data_type"]),
            udt_name=normalize_data_type(row["udt_name"] or row["data_type"]),
            character_maximum_length=_int(row["character_maximum_length"]),
            numeric_precision=_int(row["numeric_precision"]),
            numeric_scale=_int(row["numeric_scale"]),
            datetime_precision=_int(row["datetime_precision"]),
            is_nullable=_yes(row["is_nullable"]),
            column_default=normalize_default(row["column_default"]),
            is_identity=is_identity,
            identity_generation=normalize_rule(row["identity_generation"]) if is_identity else None,
            is_generated=str(row["is_generated"] or "NEVER").upper() != "NEVER",
            generation_expression=row["generation_expression"],
            is_primary_key=is_primary_key,
            pk_constraint_name=normalize_identifier(row["pk_constraint_name"]) if is_primary_key else None,
            is_unique=is_unique,
            unique_constraint_name=normalize_identifier(row["unique_constraint_name"]) if is_unique else None,
            is_foreign_key=is_foreign_key,
            fk_constraint_name=normalize_identifier(row["fk_constraint_name"]) if is_foreign_key else None,
            references_schema=normalize_identifier(row["references_schema"]) if is_foreign_key else None,
            references_table=normalize_identifier(row["references_table"]) if is_foreign_key else None,
            references_column=normalize_identifier(row["references_column"]) if is_foreign_key else None,
            fk_update_rule=normalize_rule(row["fk_update_rule"]) if is_foreign_key else None,
            fk_delete_rule=normalize_rule(row["fk_delete_rule"]) if is_foreign_key else None,
        )
