"""Pydantic request/response schemas for the FastAPI endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CredentialsRequest(BaseModel):
    """Request body for registration and login."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class OcrResultResponse(ORMModel):
    text: str
    created_at: datetime


class ChatMessageResponse(ORMModel):
    id: int
    thread_id: int
    role: str
    content: str
    created_at: datetime


class ChatThreadResponse(ORMModel):
    id: int
    user_id: int
    document_id: int
    created_at: datetime


class ThreadWithMessagesResponse(ChatThreadResponse):
    messages: list[ChatMessageResponse]


class DocumentResponse(ORMModel):
    """A document with its OCR result."""

    id: int
    user_id: int
    original_name: str
    mime_type: str
    size_bytes: int
    created_at: datetime
    ocr: OcrResultResponse | None = None


class DocumentDetailResponse(DocumentResponse):
    """A document with its OCR result and full chat history."""

    threads: list[ThreadWithMessagesResponse]


class ThreadDetailResponse(ThreadWithMessagesResponse):
    """A thread with its messages and the document it discusses."""

    document: DocumentResponse


class UserMessageRequest(BaseModel):
    """Request body for posting a question to a thread."""

    content: str = Field(min_length=1, max_length=4000)

    @field_validator("content")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be blank")
        return value


class ChatTurnResponse(ORMModel):
    user_message: ChatMessageResponse
    assistant_message: ChatMessageResponse


class UserDeletionResponse(ORMModel):
    deleted: int


class ChatDeletionResponse(ORMModel):
    deleted_threads: int
    deleted_messages: int


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
