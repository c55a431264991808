import psycopg
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from src.config.settings import settings
from src.utils.logging import logger

SCHEMA_STATEMENTS = [
    "CREATE EXTENSION IF NOT EXISTS vector",
    """
    CREATE TABLE IF NOT EXISTS indexed_documents (
        document_id TEXT PRIMARY KEY,
        modified_at TIMESTAMPTZ NOT NULL,
        chunk_count INTEGER NOT NULL DEFAULT 0,
        indexed_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS document_chunks (
        id BIGSERIAL PRIMARY KEY,
        chunk_id TEXT NOT NULL UNIQUE,
        document_id TEXT NOT NULL REFERENCES indexed_documents (document_id) ON DELETE CASCADE,
        sequence INTEGER NOT NULL,
        content TEXT NOT NULL,
        metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
        modified_at TIMESTAMPTZ NOT NULL,
        embedding vector({dimension}) NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS document_chunks_document_id_idx ON document_chunks (document_id)",
    """
    CREATE TABLE IF NOT EXISTS conversation_turns (
        id BIGSERIAL PRIMARY KEY,
        session_id TEXT NOT NULL,
        role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
        content TEXT NOT NULL,
        image_ref TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS conversation_turns_session_idx ON conversation_turns (session_id, id)",
]

class DatabaseService:
    """Owns the async Postgres connection pool shared by the index and the conversation store."""

    def __init__(self):
        self.pool = None
        self.init_pool()

    def init_pool(self):
        """Create the connection pool; it is opened by ``open()``."""
        try:
            conn_params = {
                "dbname": settings.POSTGRES_DB,
                "user": settings.POSTGRES_USER,
                "password": settings.POSTGRES_PASSWORD,
                "host": settings.POSTGRES_HOST,
                "port": settings.POSTGRES_PORT,
            }

            debug_params = conn_params.copy()
            debug_params["password"] = "****"
            logger.info(f"Connection parameters: {debug_params}")

            self.pool = AsyncConnectionPool(
                conninfo=" ".join([f"{k}={v}" for k, v in conn_params.items()]),
                min_size=1,
                max_size=10,
                timeout=30,
                open=False
            )
        except Exception as e:
            logger.error(f"Failed to initialize connection pool: {e}")
            raise

    async def open(self):
        await self.pool.open()

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
        reraise=True
    )
    async def _ping(self):
        async with self.pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")

    async def check_health(self) -> bool:
        """Check database connectivity."""
        try:
            await self._ping()
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def init_schema(self, dimension: int = None):
        """Create the pgvector extension and tables if they do not exist."""
        dimension = int(dimension or settings.EMBEDDING_DIMENSION)
        async with self.pool.connection() as conn:
            async with conn.transaction():
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(statement.format(dimension=dimension))
        logger.info(f"Database schema ready (embedding dimension {dimension})")
