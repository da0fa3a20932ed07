from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import Table, desc, func, insert, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from waitlist.core.exceptions import STORE_ERRORS
from waitlist.core.schema import ensure_schema

PG_UNIQUE_VIOLATION = "23505"
PG_UNDEFINED_COLUMN = "42703"
SQLITE_UNIQUE_ERRORS = {"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"}


@dataclass(frozen=True)
class Inserted:
    id: int


@dataclass(frozen=True)
class Conflict:
    pass


@dataclass(frozen=True)
class Failure:
    cause: Exception


InsertResult = Union[Inserted, Conflict, Failure]


def is_unique_violation(exc: DBAPIError) -> bool:
    """Check the driver's structured error code for a uniqueness violation."""
    candidates = [exc.orig, getattr(exc.orig, "__cause__", None)]
    for err in candidates:
        if err is None:
            continue
        sqlstate = getattr(err, "sqlstate", None) or getattr(err, "pgcode", None)
        if sqlstate == PG_UNIQUE_VIOLATION:
            return True
        if getattr(err, "sqlite_errorname", None) in SQLITE_UNIQUE_ERRORS:
            return True
    return False


def is_undefined_column(exc: DBAPIError) -> bool:
    """PostgreSQL reports a column missing from an older table as SQLSTATE 42703."""
    for err in (exc.orig, getattr(exc.orig, "__cause__", None)):
        if err is not None and (getattr(err, "sqlstate", None) or getattr(err, "pgcode", None)) == PG_UNDEFINED_COLUMN:
            return True
    return False


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without tzinfo; they are stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SignupRepository:
    """Repository for waitlist signup rows."""

    def __init__(self, db: AsyncSession, table_name: str):
        self.db = db
        self.table_name = table_name
        self._table: Optional[Table] = None

    @property
    def table(self) -> Table:
        if self._table is None:
            raise RuntimeError("ensure_schema() must run before the signup table is used")
        return self._table

    async def ensure_schema(self) -> Table:
        """Provision the table and indexes (idempotent)."""
        self._table = await ensure_schema(self.db, self.table_name)
        return self._table

    async def email_exists(self, email_normalized: str) -> bool:
        """Check if a signup already holds this dedup key."""
        result = await self.db.execute(
            select(self.table.c.id)
            .where(self.table.c.email_normalized == email_normalized)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def count_recent_by_ip(self, ip_hash: str, since: datetime) -> int:
        """Count submissions from one hashed IP since the given instant."""
        result = await self.db.execute(
            select(func.count(self.table.c.id)).where(
                self.table.c.ip_hash == ip_hash,
                self.table.c.created_at >= since,
            )
        )
        return result.scalar() or 0

    async def insert_signup(self, values: Dict[str, Any]) -> InsertResult:
        """
        Insert one signup row.

        A uniqueness violation means a concurrent request stored the same
        email first; it is returned as Conflict. Any other database error is
        returned as Failure. The caller is responsible for rolling back.
        """
        try:
            result = await self.db.execute(insert(self.table).values(**values))
        except IntegrityError as e:
            if is_unique_violation(e):
                return Conflict()
            return Failure(e)
        except STORE_ERRORS as e:
            return Failure(e)
        return Inserted(id=result.inserted_primary_key[0])

    async def get_total_signups_count(self) -> int:
        result = await self.db.execute(select(func.count(self.table.c.id)))
        return result.scalar() or 0

    async def get_daily_signup_counts(self, days: int = 30) -> List[Dict[str, Any]]:
        """Signup counts per UTC day for the most recent days with activity."""
        day = func.date(self.table.c.created_at).label("day")
        result = await self.db.execute(
            select(day, func.count(self.table.c.id).label("count"))
            .group_by(day)
            .order_by(desc(day))
            .limit(days)
        )
        return [
            {"day": row.day if isinstance(row.day, str) else row.day.isoformat(), "count": row.count}
            for row in result.all()
        ]

    async def get_latest_signups(self, limit: int = 200) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(self.table.c.email, self.table.c.created_at)
            .order_by(desc(self.table.c.created_at), desc(self.table.c.id))
            .limit(limit)
        )
        return [
            {"email": row.email, "created_at": as_utc(row.created_at).isoformat()}
            for row in result.all()
        ]
