from functools import lru_cache

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
)


class SignupStatus:
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


class BlockReason:
    RATE_LIMIT = "rate_limit"


@lru_cache(maxsize=None)
def signup_table(name: str) -> Table:
    """
    Build the waitlist signup table under the given (already validated) name.

    Each name gets its own MetaData so several deployments can share one
    database. Index names are prefixed with the table name because index
    names are schema-global in PostgreSQL.
    """
    metadata = MetaData()
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("email", String(320), nullable=False),
        Column("email_normalized", String(320), nullable=False),  # dedup key
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("cookie_id", String(128), nullable=True),
        Column("ip_hash", String(64), nullable=True),  # sha256(ip + salt), never the raw IP
        Column("status", String(16), nullable=False, default=SignupStatus.ACCEPTED),
        Column("block_reason", String(32), nullable=True),
        # Attribution
        Column("referrer", String(2048), nullable=True),
        Column("landing_path", String(2048), nullable=True),
        Column("utm_source", String(256), nullable=True),
        Column("utm_medium", String(256), nullable=True),
        Column("utm_campaign", String(256), nullable=True),
        Column("utm_content", String(512), nullable=True),
        Column("utm_term", String(512), nullable=True),
        # Edge geolocation
        Column("country", String(8), nullable=True),
        Column("region", String(128), nullable=True),
        Column("city", String(128), nullable=True),
        Column("postal_code", String(32), nullable=True),
        Column("timezone", String(64), nullable=True),
        Column("latitude", Float, nullable=True),
        Column("longitude", Float, nullable=True),
        Column("continent", String(8), nullable=True),
        # Client context
        Column("user_agent", String(2048), nullable=True),
        Column("accept_language", String(256), nullable=True),
        Column("locale", String(64), nullable=True),
        Column("client_time", String(64), nullable=True),
        Column("cookies_enabled", Boolean, nullable=True),
        # Raw snapshots kept for audit
        Column("location_json", JSON, nullable=True),
        Column("client_json", JSON, nullable=True),
        Index(f"{name}_email_normalized_idx", "email_normalized", unique=True),
        Index(f"{name}_created_at_idx", "created_at"),
        Index(f"{name}_ip_hash_created_at_idx", "ip_hash", "created_at"),
        Index(f"{name}_country_idx", "country"),
    )
