from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine as sa_create_async_engine

from district_linkage.config.settings import get_settings

_engine: AsyncEngine | None = None


def get_engine(echo: bool = False) -> AsyncEngine:
    """Return a cached async engine bound to ``DISTRICT_LINKAGE_DATABASE_URL``."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = sa_create_async_engine(settings.database_url, echo=echo)
    return _engine


async def dispose_engine() -> None:
    """Close pooled connections; the next ``get_engine`` call starts fresh."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
