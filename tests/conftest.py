"""Shared pytest fixtures and in-process fakes for the external services."""

import os

os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("SYNC_INTERVAL_HOURS", "0")

import re
import zlib
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from src.config.settings import RagConfig
from src.core.models.documents import Document
from src.core.services.chat_service import ChatService
from src.core.services.conversation_store import InMemoryConversationStore
from src.core.services.retriever import Retriever
from src.core.services.vector_index import InMemoryVectorIndex
from src.processing.chunker import Chunker
from src.processing.indexer import Indexer
from src.utils.errors import EmbeddingFailure, GenerationFailure, ImageAnalysisFailure, SourceUnavailable

DIMENSION = 256
BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def bag_of_words(text: str, dimension: int = DIMENSION) -> List[float]:
    vector = [0.0] * dimension
    for word in re.findall(r"\w+", text.lower()):
        vector[zlib.crc32(word.encode()) % dimension] += 1.0
    return vector


class FakeEmbeddingService:
    """Deterministic bag-of-words embeddings; texts containing a poisoned word fail."""

    def __init__(self, dimension: int = DIMENSION, fail_on: Optional[str] = None):
        self.dimension = dimension
        self.fail_on = fail_on
        self.document_calls = 0
        self.query_calls = 0

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.document_calls += 1
        if self.fail_on and any(self.fail_on in t for t in texts):
            raise EmbeddingFailure(f"quota exceeded while embedding '{self.fail_on}'")
        return [bag_of_words(t, self.dimension) for t in texts]

    async def embed_query(self, text: str) -> List[float]:
        self.query_calls += 1
        return bag_of_words(text, self.dimension)

    async def verify_dimension(self):
        return None


class FakeGenerationService:
    def __init__(
        self,
        reply: str = "Here is what the documentation says [1].",
        fail: bool = False,
        image_description: Optional[str] = "a screenshot of an error dialog",
        image_fails: bool = False
    ):
        self.reply = reply
        self.fail = fail
        self.image_description = image_description
        self.image_fails = image_fails
        self.calls: List[dict] = []

    async def generate(self, system_prompt, history, passages, user_text, image=None) -> str:
        self.calls.append({
            "system_prompt": system_prompt,
            "history": list(history),
            "passages": list(passages),
            "user_text": user_text,
            "image": image,
        })
        if self.fail:
            raise GenerationFailure("model unavailable")
        return self.reply

    async def describe_image(self, image) -> str:
        if self.image_fails:
            raise ImageAnalysisFailure("vision model unavailable")
        return self.image_description


class FakeSource:
    """Document source over an in-memory dict of id -> (modified_time, text)."""

    def __init__(self, files: Optional[Dict[str, tuple]] = None, broken: Optional[set] = None):
        self.files = dict(files or {})
        self.broken = set(broken or ())
        self.downloads: List[str] = []

    def put(self, doc_id: str, text: str, modified: datetime):
        self.files[doc_id] = (modified, text)

    async def enumerate(self) -> List[Document]:
        documents = []
        for doc_id, (modified, _) in sorted(self.files.items()):
            category = doc_id.rsplit("/", 1)[0] if "/" in doc_id else ""
            documents.append(Document(
                id=doc_id,
                path=doc_id,
                category=category,
                mime_type="text/markdown",
                modified_time=modified
            ))
        return documents

    async def download(self, document: Document) -> Document:
        self.downloads.append(document.id)
        if document.id in self.broken:
            raise SourceUnavailable(f"cannot read {document.id}", document_id=document.id)
        return document.model_copy(update={"content": self.files[document.id][1]})


def at(hours: float) -> datetime:
    return BASE_TIME + timedelta(hours=hours)


@pytest.fixture
def rag_config():
    return RagConfig(
        chunk_size=200,
        chunk_overlap=40,
        top_k=4,
        min_similarity=0.3,
        history_window=10,
        embedding_dimension=DIMENSION
    )


@pytest.fixture
def vector_index():
    return InMemoryVectorIndex(DIMENSION)


@pytest.fixture
def embedding_service():
    return FakeEmbeddingService()


@pytest.fixture
def generation_service():
    return FakeGenerationService()


@pytest.fixture
def conversation_store():
    return InMemoryConversationStore()


@pytest.fixture
def retriever(embedding_service, vector_index, rag_config):
    return Retriever(embedding_service, vector_index, rag_config, cache_size=16)


@pytest.fixture
def indexer(vector_index, embedding_service, rag_config, retriever):
    return Indexer(
        vector_index,
        embedding_service,
        Chunker.from_config(rag_config),
        on_corpus_changed=retriever.invalidate_cache
    )


@pytest.fixture
def chat_service(retriever, generation_service, conversation_store, rag_config):
    return ChatService(
        retriever,
        generation_service,
        conversation_store,
        rag_config,
        system_prompt="Answer from the documentation.",
        retrieval_timeout=5.0
    )
