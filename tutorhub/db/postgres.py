from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from tutorhub.core.config import settings

engine = create_async_engine(
    settings.POSTGRES_URL,
    echo=False,
    future=True,
    pool_size=10,
    max_overflow=20,
)

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()

async def init_db(bind=None):
    # Import models so that Base.metadata knows about them
    import tutorhub.db.models  # noqa: F401

    async with (bind if bind is not None else engine).begin() as conn:
        # Create all tables if they don't exist
        await conn.run_sync(Base.metadata.create_all)
