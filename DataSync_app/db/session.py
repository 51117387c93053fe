from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from DataSync_app.config import settings
from DataSync_app.db.models import Base

engine = create_async_engine(
    settings.database_url,          # postgresql+asyncpg://...
    pool_pre_ping=True,
)
async_session = async_sessionmaker(engine, expire_on_commit=False)

async def init_db():
    # create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def dispose_db():
    await engine.dispose()
