"""
Database configuration and connection management for WaterMe.

This module provides async SQLAlchemy setup with connection pooling,
health checks, and connection lifecycle management.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional, Dict, Any
from urllib.parse import urlparse

from sqlalchemy import text, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    async_sessionmaker,
    AsyncSession
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
import structlog

from waterme.shared.exceptions import (
    ConfigurationError,
    DuplicateResourceError,
    StoreUnavailableError,
)

logger = structlog.get_logger(__name__)

# SQLAlchemy base class for all models
Base = declarative_base()

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./waterme.db"
SUPPORTED_SCHEMES = ['postgresql+asyncpg', 'sqlite+aiosqlite']


class DatabaseConfig:
    """Database configuration with validation and connection pooling settings."""

    def __init__(
        self,
        url: str,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        pool_pre_ping: bool = True
    ):
        self.url = self._validate_url(url)
        self.echo = echo
        self.pool_size = self._validate_positive_int(pool_size, "pool_size")
        self.max_overflow = self._validate_positive_int(max_overflow, "max_overflow")
        self.pool_timeout = self._validate_positive_int(pool_timeout, "pool_timeout")
        self.pool_recycle = self._validate_positive_int(pool_recycle, "pool_recycle")
        self.pool_pre_ping = pool_pre_ping

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Build the configuration from DATABASE_* environment variables."""
        try:
            return cls(
                url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
                echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
                pool_size=int(os.getenv("DATABASE_POOL_SIZE", "10")),
                max_overflow=int(os.getenv("DATABASE_MAX_OVERFLOW", "20")),
                pool_timeout=int(os.getenv("DATABASE_POOL_TIMEOUT", "30")),
                pool_recycle=int(os.getenv("DATABASE_POOL_RECYCLE", "3600")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid database setting: {e}")

    @staticmethod
    def _validate_url(url: str) -> str:
        """Validate database URL format."""
        if not url:
            raise ConfigurationError("Database URL cannot be empty")

        parsed = urlparse(url)
        if not parsed.scheme:
            raise ConfigurationError("Database URL must include a scheme (e.g., postgresql+asyncpg://)")
        if parsed.scheme not in SUPPORTED_SCHEMES:
            raise ConfigurationError(f"Unsupported database scheme: {parsed.scheme}")

        return url

    @staticmethod
    def _validate_positive_int(value: int, name: str) -> int:
        """Validate that a value is a positive integer."""
        if not isinstance(value, int) or value <= 0:
            raise ConfigurationError(f"{name} must be a positive integer, got: {value}")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')

    @property
    def is_memory(self) -> bool:
        return self.is_sqlite and (":memory:" in self.url or self.url.rstrip("/").endswith("sqlite+aiosqlite:"))

    def to_engine_kwargs(self) -> Dict[str, Any]:
        """Convert config to SQLAlchemy engine kwargs."""
        kwargs: Dict[str, Any] = {
            "echo": self.echo,
            "pool_pre_ping": self.pool_pre_ping,
        }

        if not self.is_sqlite:
            kwargs.update({
                "pool_size": self.pool_size,
                "max_overflow": self.max_overflow,
                "pool_timeout": self.pool_timeout,
                "pool_recycle": self.pool_recycle,
                "connect_args": {
                    "server_settings": {"application_name": "WaterMe"}
                }
            })
        elif self.is_memory:
            # One shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}

        return kwargs


class DatabaseManager:
    """Manages database connections, health checks, and lifecycle."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._health_check_query = text("SELECT 1")

    async def initialize(self) -> None:
        """Initialize database engine and session factory."""
        try:
            engine_kwargs = self.config.to_engine_kwargs()
            self.engine = create_async_engine(self.config.url, **engine_kwargs)

            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=True
            )

            self._setup_event_listeners()

            logger.info("Database initialized", url=self._sanitize_url(self.config.url))

        except SQLAlchemyError as e:
            logger.error("Failed to initialize database", error=str(e))
            raise StoreUnavailableError(f"Database initialization failed: {e}", operation="initialize")

    def _setup_event_listeners(self) -> None:
        """Setup SQLAlchemy event listeners for connection management."""
        if not self.engine:
            return

        @event.listens_for(self.engine.sync_engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            """Configure connection on connect."""
            logger.debug("New database connection established", connection=id(dbapi_connection))

            # SQLite only enforces foreign keys when asked to
            if self.config.is_sqlite:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

    async def health_check(self) -> Dict[str, Any]:
        """Perform database health check."""
        if not self.engine:
            raise StoreUnavailableError("Database not initialized", operation="health_check")

        try:
            async with self.engine.begin() as conn:
                await conn.execute(self._health_check_query)

            return {
                "status": "healthy",
                "url": self._sanitize_url(self.config.url),
                "pool": self._get_pool_status(),
                "timestamp": asyncio.get_running_loop().time()
            }

        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
                "timestamp": asyncio.get_running_loop().time()
            }

    def _get_pool_status(self) -> Dict[str, Any]:
        """Get connection pool status."""
        if not self.engine or not hasattr(self.engine, 'pool'):
            return {"type": "no_pool"}

        pool = self.engine.pool
        return {
            "type": pool.__class__.__name__,
            "size": getattr(pool, 'size', lambda: 0)(),
            "checked_in": getattr(pool, 'checkedin', lambda: 0)(),
            "checked_out": getattr(pool, 'checkedout', lambda: 0)(),
            "overflow": getattr(pool, 'overflow', lambda: 0)()
        }

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """Remove sensitive information from database URL."""
        parsed = urlparse(url)
        if parsed.password:
            return url.replace(parsed.password, "***")
        return url

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a session; one session is one transaction."""
        if not self.session_factory:
            raise StoreUnavailableError("Database not initialized", operation="session")

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            logger.warning("Integrity error during write", error=str(e.orig))
            raise DuplicateResourceError("record", str(e.orig))
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error("Database session error", error=str(e))
            raise StoreUnavailableError(f"Database operation failed: {e}", operation="session")
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self) -> None:
        """Close database connections and cleanup."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            logger.info("Database connections closed")

    async def cleanup(self) -> None:
        await self.close()

    async def create_tables(self) -> None:
        """Create all database tables."""
        if not self.engine:
            raise StoreUnavailableError("Database not initialized", operation="create_tables")

        # Models register themselves on Base.metadata at import
        from waterme.infrastructure.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created successfully")
        except SQLAlchemyError as e:
            logger.error("Failed to create tables", error=str(e))
            raise StoreUnavailableError(f"Table creation failed: {e}", operation="create_tables")
