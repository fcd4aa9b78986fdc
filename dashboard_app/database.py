import ssl
import logging
import urllib.parse
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from fastapi import Request

logger = logging.getLogger(__name__)

Base = declarative_base()


def normalize_database_url(url: str):
    """
    Returns (url, connect_args) ready for create_async_engine.

    Postgres URLs get the asyncpg driver; sslmode/channel_binding are
    stripped from the query and replaced by an explicit SSL context since
    asyncpg does not understand them as URL params.
    """
    connect_args = {}
    if not url.startswith("postgresql"):
        return url, connect_args

    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    parsed = urllib.parse.urlparse(url)
    query_params = urllib.parse.parse_qs(parsed.query)

    if "sslmode" in query_params or "channel_binding" in query_params:
        new_query = urllib.parse.urlencode({
            k: v for k, v in query_params.items()
            if k not in ['sslmode', 'channel_binding']
        }, doseq=True)
        url = urllib.parse.urlunparse(parsed._replace(query=new_query))

        ssl_ctx = ssl.create_default_context()
        ssl_ctx.check_hostname = False
        ssl_ctx.verify_mode = ssl.CERT_NONE
        connect_args = {
            "ssl": ssl_ctx,
            "timeout": 300,
            "command_timeout": 300
        }

    return url, connect_args


class Database:
    """
    Owns the engine and session factory. Created once at startup and
    disposed at shutdown; handed to request handlers through get_db.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url, connect_args = normalize_database_url(url)
        self.engine = create_async_engine(self.url, echo=echo, connect_args=connect_args)
        self.session_factory = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def init(self):
        # models must be imported so their tables are registered on Base
        from . import models  # noqa: F401

        logger.info("Connecting to %s", self.url.split('@')[-1])
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified.")

    async def dispose(self):
        await self.engine.dispose()

    def session(self) -> AsyncSession:
        return self.session_factory()


async def get_db(request: Request):
    async with request.app.state.db.session() as session:
        yield session
