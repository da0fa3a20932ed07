import logging
import re

from sqlalchemy import Table, inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.schema import CreateIndex, CreateTable

from waitlist.core.exceptions import STORE_ERRORS, StoreError
from waitlist.models.waitlist_signup import signup_table

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "waitlist_signups"
TABLE_RE = re.compile(r"^[A-Za-z0-9_]+$")


def safe_table_name(value) -> str:
    """Return value if it is a plain identifier, otherwise the default table name."""
    if isinstance(value, str):
        candidate = value.strip()[:128]
        if candidate and TABLE_RE.match(candidate):
            return candidate
    return DEFAULT_TABLE


def _provision(conn: Connection, table: Table) -> list[str]:
    conn.execute(CreateTable(table, if_not_exists=True))

    # Evolve tables created by older deployments: add any missing columns.
    existing = {col["name"] for col in inspect(conn).get_columns(table.name)}
    added = []
    preparer = conn.dialect.identifier_preparer
    for column in table.columns:
        if column.name in existing:
            continue
        column_type = column.type.compile(dialect=conn.dialect)
        conn.execute(
            text(
                f"ALTER TABLE {preparer.quote(table.name)} "
                f"ADD COLUMN {preparer.quote(column.name)} {column_type}"
            )
        )
        added.append(column.name)

    for index in table.indexes:
        conn.execute(CreateIndex(index, if_not_exists=True))

    return added


async def ensure_schema(session: AsyncSession, table_name: str) -> Table:
    """
    Create the signup table and its indexes if they do not exist yet.

    Safe to run on every request and from concurrent requests. The DDL is
    committed immediately so later rollbacks of the request's own work can
    not undo it.
    """
    table = signup_table(safe_table_name(table_name))

    for attempt in (1, 2):
        try:
            conn = await session.connection()
            added = await conn.run_sync(_provision, table)
            await session.commit()
            if added:
                logger.info(f"Added columns to {table.name}: {', '.join(added)}")
            return table
        except STORE_ERRORS as e:
            await session.rollback()
            if attempt == 1:
                # Another request may have created the same objects between our
                # existence checks and our DDL; the second pass sees its result.
                logger.warning(f"Schema provisioning for {table.name} failed, retrying: {e}")
                continue
            logger.error(f"Schema provisioning for {table.name} failed: {e}")
            raise StoreError("Unable to save your email right now.") from e
