from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Async engine for the transactions database (``postgresql+asyncpg://...``).

    ``pool_pre_ping`` drops dead pooled connections before they are handed out,
    so most stale-connection failures never reach the executor's retry.
    """
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)
