"""
Database connection management for PostgreSQL (SQLAlchemy async + asyncpg)
"""
import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from utils.logging_setup import get_logger

logger = get_logger(__name__)

load_dotenv()

Base = declarative_base()


def build_database_url() -> str:
    """DATABASE_URL wins; otherwise the URL is assembled from POSTGRES_* variables."""
    url = os.getenv('DATABASE_URL')
    if url:
        # Hosted providers hand out plain postgres:// URLs
        if url.startswith('postgres://'):
            url = 'postgresql+asyncpg://' + url[len('postgres://'):]
        elif url.startswith('postgresql://'):
            url = 'postgresql+asyncpg://' + url[len('postgresql://'):]
        return url

    host = os.getenv('POSTGRES_HOST', '127.0.0.1')
    port = os.getenv('POSTGRES_PORT', '5432')
    database = os.getenv('POSTGRES_DB', 'postgres')
    username = os.getenv('POSTGRES_USER', 'postgres')
    password = os.getenv('POSTGRES_PASSWORD', '')
    return f"postgresql+asyncpg://{username}:{password}@{host}:{port}/{database}"


class DatabaseConnection:
    """Owns the async engine and session factory"""

    def __init__(self, url: Optional[str] = None):
        self.url = url or build_database_url()
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    async def initialize(self, create_schema: bool = True) -> bool:
        """Create the engine, check connectivity and (optionally) create tables"""
        try:
            logger.info("Initializing PostgreSQL connection...")
            self.engine = create_async_engine(
                self.url,
                echo=False,
                pool_size=10,
                max_overflow=20,
                pool_recycle=3600,
                pool_pre_ping=True,
            )
            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            await self.test_connection()

            if create_schema:
                # Import registers the models on Base.metadata
                from . import models  # noqa: F401
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)

            logger.info("PostgreSQL connection initialized")
            return True

        except Exception as e:
            logger.error("Failed to initialize PostgreSQL connection: %s", e)
            return False

    async def test_connection(self) -> None:
        async with self.engine.begin() as conn:
            result = await conn.execute(text("SELECT 1"))
            if result.scalar() != 1:
                raise RuntimeError("Database connection test failed")
        logger.info("PostgreSQL connection test passed")

    def get_session(self) -> AsyncSession:
        if not self.session_factory:
            raise RuntimeError("Database not initialized")
        return self.session_factory()

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            logger.info("SQLAlchemy engine disposed")
