import itertools
import json
import math
from datetime import datetime
from typing import Dict, List, Tuple
import psycopg
from psycopg.rows import dict_row
from src.core.models.documents import Document, EmbeddingRecord, ScoredPassage
from src.core.services.db_service import DatabaseService
from src.utils.errors import ConfigurationError, IndexUnavailable, IndexWriteFailure, RetrievalFailure
from src.utils.logging import logger


def cosine_similarity(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class PostgresVectorIndex:
    """Embedding records stored in pgvector, one row per chunk.

    ``indexed_documents`` remembers every indexed document with its source
    timestamp, including documents that produced no chunks.
    """

    def __init__(self, db_service: DatabaseService):
        self.db_service = db_service

    async def check_dimension(self, expected: int):
        async with self.db_service.pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT atttypmod FROM pg_attribute
                    WHERE attrelid = 'document_chunks'::regclass AND attname = 'embedding'
                    """
                )
                row = await cur.fetchone()
        if row is None or row[0] != expected:
            actual = row[0] if row else None
            raise ConfigurationError(
                f"document_chunks.embedding has dimension {actual}, expected {expected}"
            )

    async def document_timestamps(self) -> Dict[str, datetime]:
        try:
            async with self.db_service.pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT document_id, modified_at FROM indexed_documents")
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            logger.error(f"Error reading indexed documents: {e}")
            raise IndexUnavailable(f"Could not read indexed documents: {e}") from e
        return {document_id: modified_at for document_id, modified_at in rows}

    async def replace_document(self, document: Document, records: List[EmbeddingRecord]):
        """Swap all records of a document in one transaction."""
        try:
            async with self.db_service.pool.connection() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "DELETE FROM document_chunks WHERE document_id = %s",
                        (document.id,)
                    )
                    await conn.execute(
                        """
                        INSERT INTO indexed_documents (document_id, modified_at, chunk_count, indexed_at)
                        VALUES (%s, %s, %s, now())
                        ON CONFLICT (document_id) DO UPDATE
                        SET modified_at = EXCLUDED.modified_at,
                            chunk_count = EXCLUDED.chunk_count,
                            indexed_at = now()
                        """,
                        (document.id, document.modified_time, len(records))
                    )
                    async with conn.cursor() as cur:
                        await cur.executemany(
                            """
                            INSERT INTO document_chunks (
                                chunk_id, document_id, sequence, content,
                                metadata, modified_at, embedding
                            ) VALUES (%s, %s, %s, %s, %s::jsonb, %s, %s::vector)
                            """,
                            [
                                (
                                    r.chunk_id, r.document_id, r.sequence, r.text,
                                    json.dumps(r.metadata), r.modified_time, r.vector
                                )
                                for r in records
                            ]
                        )
        except psycopg.Error as e:
            logger.error(f"Error replacing records of {document.id}: {e}")
            raise IndexWriteFailure(f"Could not write records of {document.id}: {e}") from e

    async def upsert(self, record: EmbeddingRecord):
        try:
            async with self.db_service.pool.connection() as conn:
                async with conn.transaction():
                    await conn.execute(
                        """
                        INSERT INTO indexed_documents (document_id, modified_at, chunk_count)
                        VALUES (%s, %s, 0)
                        ON CONFLICT (document_id) DO NOTHING
                        """,
                        (record.document_id, record.modified_time)
                    )
                    await conn.execute(
                        """
                        INSERT INTO document_chunks (
                            chunk_id, document_id, sequence, content,
                            metadata, modified_at, embedding
                        ) VALUES (%s, %s, %s, %s, %s::jsonb, %s, %s::vector)
                        ON CONFLICT (chunk_id) DO UPDATE
                        SET content = EXCLUDED.content,
                            metadata = EXCLUDED.metadata,
                            modified_at = EXCLUDED.modified_at,
                            embedding = EXCLUDED.embedding
                        """,
                        (
                            record.chunk_id, record.document_id, record.sequence, record.text,
                            json.dumps(record.metadata), record.modified_time, record.vector
                        )
                    )
        except psycopg.Error as e:
            raise IndexWriteFailure(f"Could not upsert {record.chunk_id}: {e}") from e

    async def delete_document(self, document_id: str):
        try:
            async with self.db_service.pool.connection() as conn:
                # Chunks go with the registry row (ON DELETE CASCADE)
                await conn.execute(
                    "DELETE FROM indexed_documents WHERE document_id = %s",
                    (document_id,)
                )
        except psycopg.Error as e:
            raise IndexWriteFailure(f"Could not delete {document_id}: {e}") from e

    async def delete_chunk(self, chunk_id: str):
        try:
            async with self.db_service.pool.connection() as conn:
                await conn.execute("DELETE FROM document_chunks WHERE chunk_id = %s", (chunk_id,))
        except psycopg.Error as e:
            raise IndexWriteFailure(f"Could not delete {chunk_id}: {e}") from e

    async def similarity_search(
        self,
        vector: List[float],
        top_k: int,
        min_score: float
    ) -> List[ScoredPassage]:
        if top_k <= 0:
            return []
        try:
            async with self.db_service.pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        WITH scored AS (
                            SELECT
                                id, chunk_id, document_id, content, metadata,
                                1 - (embedding <=> %s::vector) AS similarity
                            FROM document_chunks
                        )
                        SELECT chunk_id, document_id, content, metadata, similarity
                        FROM scored
                        WHERE similarity > %s
                        ORDER BY similarity DESC, id ASC
                        LIMIT %s
                        """,
                        (vector, min_score, top_k)
                    )
                    rows = await cur.fetchall()
        except psycopg.Error as e:
            logger.error(f"Error searching documents: {e}")
            raise RetrievalFailure(f"Vector search failed: {e}") from e

        return [
            ScoredPassage(
                chunk_id=row["chunk_id"],
                document_id=row["document_id"],
                text=row["content"],
                metadata=row["metadata"] or {},
                score=float(row["similarity"])
            )
            for row in rows
        ]


class InMemoryVectorIndex:
    """Process-local index with the same contract as PostgresVectorIndex.

    Used for development without a database and by the test-suite.
    """

    def __init__(self, dimension: int = None):
        self.dimension = dimension
        self._documents: Dict[str, datetime] = {}
        # chunk_id -> (insertion number, record)
        self._records: Dict[str, Tuple[int, EmbeddingRecord]] = {}
        self._counter = itertools.count()

    async def check_dimension(self, expected: int):
        if self.dimension is not None and self.dimension != expected:
            raise ConfigurationError(f"Index dimension is {self.dimension}, expected {expected}")

    def _validate(self, record: EmbeddingRecord):
        if self.dimension is not None and len(record.vector) != self.dimension:
            raise IndexWriteFailure(
                f"{record.chunk_id} has {len(record.vector)} dimensions, expected {self.dimension}"
            )

    async def document_timestamps(self) -> Dict[str, datetime]:
        return dict(self._documents)

    async def replace_document(self, document: Document, records: List[EmbeddingRecord]):
        for record in records:
            self._validate(record)
        # No await below: the swap is atomic with respect to other tasks
        for chunk_id in [cid for cid, (_, r) in self._records.items() if r.document_id == document.id]:
            del self._records[chunk_id]
        for record in records:
            self._records[record.chunk_id] = (next(self._counter), record)
        self._documents[document.id] = document.modified_time

    async def upsert(self, record: EmbeddingRecord):
        self._validate(record)
        existing = self._records.get(record.chunk_id)
        number = existing[0] if existing else next(self._counter)
        self._records[record.chunk_id] = (number, record)
        self._documents.setdefault(record.document_id, record.modified_time)

    async def delete_document(self, document_id: str):
        for chunk_id in [cid for cid, (_, r) in self._records.items() if r.document_id == document_id]:
            del self._records[chunk_id]
        self._documents.pop(document_id, None)

    async def delete_chunk(self, chunk_id: str):
        self._records.pop(chunk_id, None)

    def records_for(self, document_id: str) -> List[EmbeddingRecord]:
        entries = sorted(
            (n, r) for n, r in self._records.values() if r.document_id == document_id
        )
        return [r for _, r in entries]

    async def similarity_search(
        self,
        vector: List[float],
        top_k: int,
        min_score: float
    ) -> List[ScoredPassage]:
        if top_k <= 0:
            return []
        scored = []
        for number, record in self._records.values():
            score = cosine_similarity(vector, record.vector)
            if score > min_score:
                scored.append((-score, number, record))
        scored.sort(key=lambda item: (item[0], item[1]))

        return [
            ScoredPassage(
                chunk_id=record.chunk_id,
                document_id=record.document_id,
                text=record.text,
                metadata=dict(record.metadata),
                score=-neg_score
            )
            for neg_score, _, record in scored[:top_k]
        ]
