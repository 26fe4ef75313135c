from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from heritage.cache import discard_pending_purge, purge_after_commit
from heritage.config import settings
from heritage.middleware import install_query_counter

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Yield a session; commit when the request succeeds, roll back otherwise.

    Cached list pages are purged only after a successful commit.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            discard_pending_purge(session)
            await session.rollback()
            raise
        await purge_after_commit(session)
