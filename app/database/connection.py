import aiomysql
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

class Database:
    """aiomysql pool shared by the search store and the health check"""

    def __init__(self):
        self.pool = None

    @property
    def is_connected(self) -> bool:
        return self.pool is not None and not self.pool.closed

    async def connect(self):
        try:
            self.pool = await aiomysql.create_pool(
                host=settings.DATABASE_HOST,
                port=settings.DATABASE_PORT,
                user=settings.DATABASE_USER,
                password=settings.DATABASE_PASSWORD,
                db=settings.DATABASE_NAME,
                autocommit=True,
                minsize=settings.DATABASE_POOL_MIN_SIZE,
                maxsize=settings.DATABASE_POOL_MAX_SIZE,
                connect_timeout=settings.DATABASE_CONNECT_TIMEOUT_SECONDS,
                charset="utf8mb4"
            )
            logger.info(
                f"Search database pool ready ({settings.DATABASE_HOST}:{settings.DATABASE_PORT}/{settings.DATABASE_NAME})"
            )
        except Exception as e:
            logger.error(f"Failed to connect to search database: {e}")
            raise

    async def disconnect(self):
        if self.pool:
            self.pool.close()
            await self.pool.wait_closed()
            self.pool = None
            logger.info("Search database pool closed")

    async def ping(self) -> bool:
        """True when a pooled connection answers a trivial query"""
        if not self.is_connected:
            return False
        async with self.pool.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute("SELECT 1")
                return (await cursor.fetchone()) is not None

# Global database instance
database = Database()
