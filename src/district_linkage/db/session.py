from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from district_linkage.db.engine import get_engine

_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return a cached session factory bound to the engine.

    ``expire_on_commit=False`` keeps ledger rows readable after the
    per-record transaction that wrote them has committed.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


def reset_session_factory() -> None:
    """Forget the cached factory, e.g. after ``dispose_engine``."""
    global _session_factory
    _session_factory = None
