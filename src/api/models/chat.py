import base64
import binascii
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from src.core.models.chat import ImageInput, TurnInput

class ImageAttachment(BaseModel):
    mime_type: str = Field(..., description="MIME type of the image, e.g. image/png")
    data: str = Field(..., description="Base64-encoded image bytes")

    @field_validator("mime_type")
    @classmethod
    def check_mime_type(cls, value: str) -> str:
        if not value.startswith("image/"):
            raise ValueError("mime_type must be an image type")
        return value

    @field_validator("data")
    @classmethod
    def check_data(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("data must be valid base64")
        return value

    def to_image_input(self) -> ImageInput:
        return ImageInput(mime_type=self.mime_type, data=base64.b64decode(self.data))

class Source(BaseModel):
    document_id: str = Field(..., description="Id of the source document")
    filepath: str = Field(..., description="Path of the source document")
    filename: str = Field(..., description="File name of the source document")
    category: str = Field(default="", description="Folder the document belongs to")

class ChatRequest(BaseModel):
    session_id: Optional[str] = Field(
        default=None,
        description="Conversation id; a new one is generated when omitted"
    )
    text: str = Field(default="", description="The user's message")
    image: Optional[ImageAttachment] = Field(default=None, description="Optional image attachment")

    def to_turn_input(self) -> TurnInput:
        return TurnInput(
            session_id=self.session_id,
            text=self.text,
            image=self.image.to_image_input() if self.image else None
        )

class ChatResponse(BaseModel):
    session_id: str = Field(..., description="Conversation id to send with the next turn")
    answer: str = Field(..., description="Generated response")
    sources: List[Source] = Field(default=[], description="Source documents used for the response")
    grounded: bool = Field(..., description="Whether documentation passages were found")
