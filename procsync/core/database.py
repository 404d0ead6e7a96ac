from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from procsync.core.config import settings


# NullPool: every connect() opens a fresh connection and close() really closes it,
# so a procedure call never shares its handle with another call
def create_procedure_engine(url: str = None, **kwargs) -> AsyncEngine:
    return create_async_engine(url or settings.DATABASE_URL, poolclass=NullPool, **kwargs)


engine = create_procedure_engine()
