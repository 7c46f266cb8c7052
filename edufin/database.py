import re
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import async_sessionmaker
from edufin.config import settings


def normalize_database_url(url: str) -> str:
    """
    Rewrite a plain postgres URL so it uses the asyncpg driver.

    Hosted databases hand out ``postgresql://...?sslmode=require`` URLs;
    asyncpg does not understand ``sslmode`` so it is stripped and SSL is
    driven by ``settings.DB_SSL`` instead. Other URLs pass through untouched.
    """
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return re.sub(r'[?&]sslmode=[^&]*', '', url)


db_url = normalize_database_url(settings.DATABASE_URL)

connect_args = {}
if db_url.startswith("postgresql+asyncpg") and settings.DB_SSL:
    connect_args["ssl"] = True

# Create async SQLAlchemy engine
engine = create_async_engine(
    db_url,
    echo=False,
    future=True,
    connect_args=connect_args,
)

# Create base class for models
Base = declarative_base()

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)

# Dependency to get DB session
async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
