from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from waitlist.core.config import get_settings


def engine_options(database_url: str) -> dict:
    options = {
        "echo": False,  # Disable SQLAlchemy query logging
        "pool_pre_ping": True,
    }
    if make_url(database_url).get_driver_name() == "asyncpg":
        # Stats bucket signups by date(created_at), which follows the session TimeZone.
        options["connect_args"] = {"server_settings": {"timezone": "UTC"}}
    return options


engine = create_async_engine(
    get_settings().DATABASE_URL,
    **engine_options(get_settings().DATABASE_URL),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
