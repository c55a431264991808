import asyncio
from typing import List
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from src.utils.errors import ConfigurationError, EmbeddingFailure
from src.utils.logging import logger
from src.config.settings import settings

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.ResourceExhausted,
    google_exceptions.TooManyRequests,
    asyncio.TimeoutError,
    ConnectionError,
)

MAX_INPUT_CHARS = 8000


class EmbeddingService:
    def __init__(
        self,
        model: str = None,
        dimension: int = None,
        batch_size: int = None
    ):
        genai.configure(api_key=settings.GOOGLE_API_KEY)
        self.model = model or settings.EMBEDDING_MODEL
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE

    @staticmethod
    def _prepare(text: str) -> str:
        text = text.replace("\n", " ")
        if len(text) > MAX_INPUT_CHARS:
            text = text[:MAX_INPUT_CHARS] + "..."
        return text

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True
    )
    async def _embed_batch(self, texts: List[str], task_type: str) -> List[List[float]]:
        response = await genai.embed_content_async(
            model=self.model,
            content=texts,
            task_type=task_type,
            output_dimensionality=self.dimension
        )
        return response['embedding']

    def _check_dimension(self, vectors: List[List[float]]):
        for vector in vectors:
            if len(vector) != self.dimension:
                raise ConfigurationError(
                    f"Embedding model {self.model} returned {len(vector)} dimensions, "
                    f"expected {self.dimension}"
                )

    async def _embed(self, texts: List[str], task_type: str) -> List[List[float]]:
        vectors = []
        for offset in range(0, len(texts), self.batch_size):
            batch = [self._prepare(t) for t in texts[offset:offset + self.batch_size]]
            try:
                batch_vectors = await self._embed_batch(batch, task_type)
            except Exception as e:
                logger.error(f"Error getting embeddings: {e}")
                raise EmbeddingFailure(f"Embedding request failed: {e}") from e
            if len(batch_vectors) != len(batch):
                raise EmbeddingFailure(
                    f"Embedding model returned {len(batch_vectors)} vectors for {len(batch)} texts"
                )
            vectors.extend(batch_vectors)
        self._check_dimension(vectors)
        return vectors

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return await self._embed(texts, "retrieval_document")

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self._embed([text], "retrieval_query")
        return vectors[0]

    async def verify_dimension(self):
        """Fail fast when the model's output does not match the configured dimension."""
        await self.embed_query("dimension check")
        logger.info(f"Embedding model {self.model} produces {self.dimension}-dimensional vectors")
