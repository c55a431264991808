from typing import Optional
from src.config.settings import Settings, settings as default_settings
from src.core.services.chat_service import ChatService
from src.core.services.conversation_store import InMemoryConversationStore, PostgresConversationStore
from src.core.services.db_service import DatabaseService
from src.core.services.embedding import EmbeddingService
from src.core.services.generation import GenerationService
from src.core.services.retriever import Retriever
from src.core.services.vector_index import InMemoryVectorIndex, PostgresVectorIndex
from src.processing.chunker import Chunker
from src.processing.document_source import LocalFolderSource
from src.processing.indexer import Indexer
from src.utils.errors import ConfigurationError
from src.utils.logging import logger


class ServiceContainer:
    """Builds every service once from settings and owns their lifecycle."""

    def __init__(
        self,
        settings: Settings = None,
        embedding_service: EmbeddingService = None,
        generation_service: GenerationService = None,
        vector_index=None,
        conversation_store=None,
        source=None
    ):
        self.settings = settings or default_settings
        self.config = self.settings.rag_config
        self.db_service: Optional[DatabaseService] = None

        backend = self.settings.STORAGE_BACKEND.lower()
        if backend not in ("postgres", "memory"):
            raise ConfigurationError(f"Unknown STORAGE_BACKEND: {self.settings.STORAGE_BACKEND}")
        if backend == "postgres" and (vector_index is None or conversation_store is None):
            self.db_service = DatabaseService()

        self.embedding_service = embedding_service or EmbeddingService(
            dimension=self.config.embedding_dimension
        )
        self.generation_service = generation_service or GenerationService()
        if vector_index is None:
            vector_index = (
                PostgresVectorIndex(self.db_service) if self.db_service
                else InMemoryVectorIndex(self.config.embedding_dimension)
            )
        if conversation_store is None:
            conversation_store = (
                PostgresConversationStore(self.db_service) if self.db_service
                else InMemoryConversationStore()
            )
        self.vector_index = vector_index
        self.conversation_store = conversation_store
        self.source = source or LocalFolderSource(
            self.settings.SOURCE_DIR,
            self.settings.source_extensions_list
        )

        self.retriever = Retriever(
            self.embedding_service,
            self.vector_index,
            self.config,
            cache_size=self.settings.RETRIEVAL_CACHE_SIZE
        )
        self.indexer = Indexer(
            self.vector_index,
            self.embedding_service,
            Chunker.from_config(self.config),
            on_corpus_changed=self.retriever.invalidate_cache
        )
        self.chat_service = ChatService(
            self.retriever,
            self.generation_service,
            self.conversation_store,
            self.config,
            system_prompt=self.settings.SYSTEM_PROMPT,
            retrieval_timeout=self.settings.RETRIEVAL_TIMEOUT
        )

    async def startup(self, check_embeddings: bool = True):
        """Open storage and run the configuration checks; errors here must stop the process."""
        if self.db_service is not None:
            await self.db_service.open()
            if not await self.db_service.check_health():
                raise RuntimeError("Failed to connect to database")
            await self.db_service.init_schema(self.config.embedding_dimension)
        await self.vector_index.check_dimension(self.config.embedding_dimension)
        if check_embeddings:
            await self.embedding_service.verify_dimension()
        logger.info("Services started")

    async def shutdown(self):
        if self.db_service is not None:
            await self.db_service.close()
