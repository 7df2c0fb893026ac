"""Additive schema migration for the local store.

Opening the store reconciles the live database with the declared models:
missing tables are created, missing columns are added in place and missing
indexes are built. Nothing is dropped or renamed, and every step checks
before acting, so a migration interrupted halfway is completed by the next
open.
"""

from __future__ import annotations

import logging

from sqlalchemy import Connection, inspect, select, text
from sqlalchemy.schema import CreateColumn, Table

from logistik_sync.contrib.sqlalchemy.models import Base, SchemaVersionModel

logger = logging.getLogger(__name__)

# 1: occurrences + routes
# 2: route_id, coordinates and vehicle data on occurrences
# 3: submission_id, sync_status index
SCHEMA_VERSION = 3


def _add_missing_columns(conn: Connection, table: Table) -> list[str]:
    existing = {col["name"] for col in inspect(conn).get_columns(table.name)}
    added: list[str] = []
    preparer = conn.dialect.identifier_preparer

    for column in table.columns:
        if column.name in existing:
            continue
        if (
            not column.nullable
            and column.server_default is None
            and not column.primary_key
        ):
            logger.warning(
                "Cannot add NOT NULL column %s.%s without a server default",
                table.name,
                column.name,
            )
            continue
        column_ddl = CreateColumn(column).compile(dialect=conn.dialect)
        conn.execute(
            text(
                f"ALTER TABLE {preparer.format_table(table)} "
                f"ADD COLUMN {column_ddl}"
            )
        )
        added.append(column.name)

    return added


def _create_missing_indexes(conn: Connection, table: Table) -> list[str]:
    existing = {idx["name"] for idx in inspect(conn).get_indexes(table.name)}
    created: list[str] = []
    for index in table.indexes:
        if index.name in existing:
            continue
        index.create(conn, checkfirst=True)
        created.append(str(index.name))
    return created


def read_schema_version(conn: Connection) -> int:
    """Return the recorded schema version, 0 for a fresh database."""
    if not inspect(conn).has_table(SchemaVersionModel.__tablename__):
        return 0
    version = conn.execute(
        select(SchemaVersionModel.version).where(SchemaVersionModel.id == 1)
    ).scalar_one_or_none()
    return version or 0


def migrate(conn: Connection) -> int:
    """Bring the database up to SCHEMA_VERSION. Returns the final version."""
    current = read_schema_version(conn)
    if current > SCHEMA_VERSION:
        logger.warning(
            "Local store schema version %d is newer than supported %d, "
            "opening without migrating",
            current,
            SCHEMA_VERSION,
        )
        return current

    existing_tables = set(inspect(conn).get_table_names())
    Base.metadata.create_all(conn, checkfirst=True)

    for table in Base.metadata.sorted_tables:
        if table.name not in existing_tables:
            continue
        added = _add_missing_columns(conn, table)
        created = _create_missing_indexes(conn, table)
        if added or created:
            logger.info(
                "Migrated %s: added columns %s, created indexes %s",
                table.name,
                added,
                created,
            )

    version_table = SchemaVersionModel.__table__
    if current == 0:
        conn.execute(
            version_table.insert().values(id=1, version=SCHEMA_VERSION)
        )
    elif current < SCHEMA_VERSION:
        conn.execute(
            version_table.update()
            .where(version_table.c.id == 1)
            .values(version=SCHEMA_VERSION)
        )
    if current != SCHEMA_VERSION:
        logger.info(
            "Local store schema migrated from %d to %d",
            current,
            SCHEMA_VERSION,
        )
    return SCHEMA_VERSION
