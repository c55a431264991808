from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field
from src.core.models.documents import utc_now


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TurnState(str, Enum):
    RECEIVED = "received"
    IMAGE_DESCRIBED = "image_described"
    RETRIEVED = "retrieved"
    GENERATING = "generating"
    RESPONDED = "responded"
    FAILED = "failed"


class ConversationTurn(BaseModel):
    session_id: str
    role: Role
    content: str
    image_ref: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    sequence: int = 0


class ImageInput(BaseModel):
    mime_type: str
    data: bytes


class TurnInput(BaseModel):
    text: str = ""
    session_id: Optional[str] = None
    image: Optional[ImageInput] = None


class SourceRef(BaseModel):
    document_id: str
    filepath: str
    filename: str
    category: str = ""


class TurnResult(BaseModel):
    session_id: str
    answer: str
    sources: List[SourceRef] = Field(default_factory=list)
    grounded: bool = False
    failed: bool = False
    state: TurnState = TurnState.RESPONDED
