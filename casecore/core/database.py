"""
Database configuration and session management with connection pooling and retry logic
"""

import asyncio
import time
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
import structlog

from casecore.core.config import settings

logger = structlog.get_logger()

# Create declarative base
Base = declarative_base()

class DatabaseConnectionManager:
    """Database connection manager with pooling and retry logic"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.DATABASE_URL
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._connection_validated = False
        self._last_validation_time = 0
        self._validation_interval = 300  # 5 minutes

    def create_engine(self) -> AsyncEngine:
        """Create database engine with pooling suited to the backend"""
        if self.engine is not None:
            return self.engine

        engine_args = {"echo": settings.DEBUG}

        if settings.TESTING:
            # NullPool keeps connections from leaking across event loops
            engine_args["poolclass"] = NullPool
        elif not self.database_url.startswith("sqlite"):
            engine_args.update({
                "pool_size": 10,
                "max_overflow": 20,
                "pool_pre_ping": True,
                "pool_recycle": 3600,
                "pool_timeout": 30,
            })

        self.engine = create_async_engine(self.database_url, **engine_args)
        logger.info("Database engine created", backend=self.engine.dialect.name)
        return self.engine

    def create_session_factory(self) -> async_sessionmaker:
        """Create session factory with proper configuration"""
        if self.session_factory is not None:
            return self.session_factory

        if self.engine is None:
            self.create_engine()

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=True,
        )

        return self.session_factory

    async def validate_connection(self, force: bool = False) -> bool:
        """
        Validate database connection with caching to avoid excessive checks

        Args:
            force: Force validation even if recently validated

        Returns:
            bool: True if connection is valid
        """
        current_time = time.time()

        if (not force and
            self._connection_validated and
            (current_time - self._last_validation_time) < self._validation_interval):
            return True

        try:
            if self.engine is None:
                self.create_engine()

            async with self.engine.begin() as conn:
                result = await conn.execute(text("SELECT 1 AS test"))
                row = result.fetchone()

            if row and row.test == 1:
                self._connection_validated = True
                self._last_validation_time = current_time
                logger.info("Database connection validation successful")
                return True

            logger.error("Database connection validation failed: unexpected result")
            self._connection_validated = False
            return False

        except (DisconnectionError, OperationalError, ConnectionError, OSError) as e:
            logger.error("Database connection validation failed", error=str(e))
            self._connection_validated = False
            return False

    async def get_session_with_retry(self, max_retries: int = 3, retry_delay: float = 1.0) -> AsyncSession:
        """
        Get database session with retry logic for transient failures

        Args:
            max_retries: Maximum number of retry attempts
            retry_delay: Initial delay between retries (exponential backoff)

        Returns:
            AsyncSession: Database session

        Raises:
            OperationalError: If all retry attempts fail
        """
        if self.session_factory is None:
            self.create_session_factory()

        last_exception = None

        for attempt in range(max_retries + 1):
            session = self.session_factory()
            try:
                await session.execute(text("SELECT 1"))
                logger.debug("Database session created successfully", attempt=attempt + 1)
                return session

            except (DisconnectionError, OperationalError, ConnectionError) as e:
                last_exception = e
                await session.close()

                if attempt < max_retries:
                    delay = retry_delay * (2 ** attempt)
                    logger.warning(
                        "Database connection attempt failed, retrying",
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay=delay,
                        error=str(e)
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(
                        "All database connection attempts failed",
                        attempts=max_retries + 1,
                        error=str(e)
                    )

        raise last_exception

    async def create_all(self) -> None:
        """Create all tables registered on the declarative base"""
        # Models must be imported so their tables are registered
        import casecore.models  # noqa: F401

        if self.engine is None:
            self.create_engine()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized")

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            self._connection_validated = False

# Global database connection manager
db_manager = DatabaseConnectionManager()
