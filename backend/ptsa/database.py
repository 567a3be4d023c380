from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.echo_sql,
    isolation_level=settings.db_isolation_level,
    pool_pre_ping=True,
    pool_recycle=settings.db_pool_recycle,
)

# Rows outlive the commit: routers serialize them after `session.begin()` exits.
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
