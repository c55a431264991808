from pathlib import Path
from typing import List
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


DEFAULT_SYSTEM_PROMPT = (
    "You are a documentation assistant. Answer the user's question using only the "
    "documentation passages provided with the question. Cite passages by their "
    "number in square brackets, e.g. [1]. If the passages do not contain the answer, "
    "say \"I could not find this in the documentation.\" and do not invent one."
)


class RagConfig(BaseModel):
    """Tuning options shared by the Chunker, Retriever and ChatService."""
    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=200, ge=0)
    top_k: int = Field(default=5, ge=0)
    min_similarity: float = Field(default=0.7, ge=-1.0, le=1.0)
    history_window: int = Field(default=10, ge=0)
    embedding_dimension: int = Field(default=768, ge=1)

    @model_validator(mode="after")
    def check_overlap(self) -> "RagConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self


class Settings(BaseSettings):
    # API Settings
    API_VERSION: str = "0.1.0"
    API_TITLE: str = "Docs Expert API"
    API_DESCRIPTION: str = "API for chatting with a documentation corpus using RAG-powered responses"

    # Google AI Settings
    GOOGLE_API_KEY: str
    LLM_MODEL: str = "gemini-1.5-flash-latest"
    VISION_MODEL: str = "gemini-1.5-flash-latest"
    EMBEDDING_MODEL: str = "text-embedding-004"

    # Storage Settings
    STORAGE_BACKEND: str = "postgres"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "docs_expert"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432

    # Security
    BEARER_TOKEN: str = ""
    CORS_ORIGINS: str = "*"

    # Document Source Settings
    SOURCE_DIR: str = "documents"
    SOURCE_EXTENSIONS: str = ".md,.markdown,.txt,.rst,.pdf"

    # RAG Settings
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200
    TOP_K: int = 5
    MIN_SIMILARITY: float = 0.7
    HISTORY_WINDOW: int = 10
    EMBEDDING_DIMENSION: int = 768
    EMBEDDING_BATCH_SIZE: int = 50
    RETRIEVAL_CACHE_SIZE: int = 256
    RETRIEVAL_TIMEOUT: float = 15.0

    # Chat Settings
    SYSTEM_PROMPT: str = DEFAULT_SYSTEM_PROMPT
    CHAT_TIMEOUT: float = 60.0

    # Indexing Schedule (0 disables the scheduled trigger)
    SYNC_INTERVAL_HOURS: float = 24.0

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    @property
    def bearer_tokens_list(self) -> List[str]:
        if not self.BEARER_TOKEN:
            return []
        return [x.strip() for x in self.BEARER_TOKEN.split(',') if x.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [x.strip() for x in self.CORS_ORIGINS.split(',') if x.strip()]

    @property
    def source_extensions_list(self) -> List[str]:
        extensions = []
        for x in self.SOURCE_EXTENSIONS.split(','):
            x = x.strip().lower()
            if x:
                extensions.append(x if x.startswith('.') else f".{x}")
        return extensions

    @property
    def rag_config(self) -> RagConfig:
        return RagConfig(
            chunk_size=self.CHUNK_SIZE,
            chunk_overlap=self.CHUNK_OVERLAP,
            top_k=self.TOP_K,
            min_similarity=self.MIN_SIMILARITY,
            history_window=self.HISTORY_WINDOW,
            embedding_dimension=self.EMBEDDING_DIMENSION,
        )

    class Config:
        env_file = ".env"

settings = Settings()
