from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Document(BaseModel):
    """A source artifact. Enumeration fills everything but ``content``."""
    id: str
    path: str
    category: str = ""
    mime_type: str = "text/plain"
    modified_time: datetime
    content: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class Chunk(BaseModel):
    document_id: str
    sequence: int
    text: str
    start_index: int
    overlap: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def chunk_id(self) -> str:
        return f"{self.document_id}#{self.sequence}"


class EmbeddingRecord(BaseModel):
    chunk_id: str
    document_id: str
    sequence: int
    text: str
    vector: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)
    modified_time: datetime


class ScoredPassage(BaseModel):
    chunk_id: str
    document_id: str
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    score: float


class FailedDocument(BaseModel):
    document_id: str
    error: str


class IndexReport(BaseModel):
    added: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failed: List[FailedDocument] = Field(default_factory=list)
    cancelled: bool = False
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)

    def summary(self) -> str:
        return (
            f"added={len(self.added)} updated={len(self.updated)} "
            f"removed={len(self.removed)} skipped={len(self.skipped)} "
            f"failed={len(self.failed)}"
        )
