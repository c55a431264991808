from collections import OrderedDict
from typing import List, Optional, Tuple
from src.config.settings import RagConfig
from src.core.models.documents import ScoredPassage
from src.core.services.embedding import EmbeddingService
from src.utils.errors import AppError, ConfigurationError, RetrievalFailure
from src.utils.logging import logger

CacheKey = Tuple[str, int, float]


class Retriever:
    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_index,
        config: RagConfig,
        cache_size: int = 0
    ):
        self.embedding_service = embedding_service
        self.vector_index = vector_index
        self.config = config
        self.cache_size = cache_size
        self._cache: "OrderedDict[CacheKey, List[ScoredPassage]]" = OrderedDict()
        # Bumped on every invalidation; results read before a bump are not cached
        self._generation = 0

    def invalidate_cache(self):
        self._generation += 1
        if self._cache:
            logger.info(f"Dropping {len(self._cache)} cached retrieval results")
        self._cache.clear()

    def _cache_get(self, key: CacheKey) -> Optional[List[ScoredPassage]]:
        if key not in self._cache:
            return None
        self._cache.move_to_end(key)
        return list(self._cache[key])

    def _cache_put(self, key: CacheKey, passages: List[ScoredPassage]):
        if self.cache_size <= 0:
            return
        self._cache[key] = list(passages)
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    async def search(
        self,
        query_text: str,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None
    ) -> List[ScoredPassage]:
        """Return up to ``top_k`` passages scoring above ``min_similarity``, best first.

        An empty list means no grounding was found; it is not an error.
        """
        top_k = self.config.top_k if top_k is None else top_k
        min_similarity = self.config.min_similarity if min_similarity is None else min_similarity
        if top_k <= 0 or not query_text or not query_text.strip():
            return []

        key = (query_text, top_k, min_similarity)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        generation = self._generation
        try:
            query_embedding = await self.embedding_service.embed_query(query_text)
        except ConfigurationError:
            raise
        except AppError as e:
            raise RetrievalFailure(f"Could not embed query: {e}") from e

        if len(query_embedding) != self.config.embedding_dimension:
            raise ConfigurationError(
                f"Query embedding has {len(query_embedding)} dimensions, "
                f"index expects {self.config.embedding_dimension}"
            )

        try:
            passages = await self.vector_index.similarity_search(
                query_embedding, top_k, min_similarity
            )
        except RetrievalFailure:
            raise
        except Exception as e:
            logger.error(f"Error retrieving chunks: {e}")
            raise RetrievalFailure(f"Vector search failed: {e}") from e

        # Stable sort: equal scores keep the index's insertion order
        passages = [p for p in passages if p.score > min_similarity]
        passages.sort(key=lambda p: -p.score)
        passages = passages[:top_k]

        logger.info(f"Retrieved {len(passages)} passages (top_k={top_k}, min_similarity={min_similarity})")
        if generation == self._generation:
            self._cache_put(key, passages)
        return passages
