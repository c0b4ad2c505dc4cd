"""Shared test fixtures for the invoice chat test suite."""

import io
from collections.abc import Callable, Iterator
from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from sqlalchemy.orm import Session

from invoice_chat.db import repository
from invoice_chat.db.database import build_engine, build_session_factory, init_db
from invoice_chat.db.models import Document, User
from invoice_chat.errors import OcrEngineError
from invoice_chat.llm.client import HistoryTurn
from invoice_chat.ocr.tesseract_engine import Recognition
from invoice_chat.services.chat import ChatOrchestrator
from invoice_chat.services.documents import DocumentService
from invoice_chat.storage.uploads import StoredUpload, save_upload
from invoice_chat.utils.config import (
    AppConfig,
    AuthConfig,
    DatabaseConfig,
    StorageConfig,
)

INVOICE_TEXT = "Invoice #001\nDate: 01/15/2024\nTotal: $500.00"


class FakeOcrEngine:
    """OCR engine returning canned text, or failing when ``fail`` is set."""

    def __init__(self, text: str = INVOICE_TEXT) -> None:
        self.text = text
        self.fail = False
        self.calls: list[tuple[Path, str]] = []

    def recognize(self, file_path: Path, lang: str) -> Recognition:
        self.calls.append((file_path, lang))
        if self.fail:
            raise OcrEngineError("tesseract exploded")
        return Recognition(text=self.text, language=lang)


class FakeAnswerClient:
    """Language model stand-in recording every call it receives."""

    def __init__(self, reply: str = "The total is $500.00.") -> None:
        self.reply = reply
        self.error: Exception | None = None
        self.calls: list[dict] = []

    def answer(
        self,
        ocr_text: str,
        question: str,
        history: list[HistoryTurn] | None = None,
    ) -> str:
        self.calls.append(
            {"ocr_text": ocr_text, "question": question, "history": list(history or [])}
        )
        if self.error is not None:
            raise self.error
        return self.reply


def _encode_image(fmt: str, size: tuple[int, int]) -> bytes:
    array = np.full((size[1], size[0], 3), 255, dtype=np.uint8)
    array[20:40, 20 : size[0] - 20] = 0
    buf = io.BytesIO()
    Image.fromarray(array).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def invoice_text() -> str:
    return INVOICE_TEXT


@pytest.fixture
def image_bytes() -> Callable[..., bytes]:
    """Factory encoding a synthetic invoice-like image as PNG or JPEG."""

    def _make(fmt: str = "PNG", size: tuple[int, int] = (300, 200)) -> bytes:
        return _encode_image(fmt, size)

    return _make


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """Configuration with an in-memory database and a temporary upload dir."""
    return AppConfig(
        database=DatabaseConfig(url="sqlite://"),
        storage=StorageConfig(upload_dir=str(tmp_path / "uploads")),
        auth=AuthConfig(secret_key="test-secret", bcrypt_rounds=4),
    )


@pytest.fixture
def session(config: AppConfig) -> Iterator[Session]:
    """Open a session on a fresh in-memory database."""
    engine = build_engine(config.database)
    init_db(engine)
    factory = build_session_factory(engine)
    with factory() as db:
        yield db
    engine.dispose()


def _add_user(session: Session, email: str) -> User:
    user = repository.create_user(session, email, "not-a-real-hash")
    session.commit()
    return user


@pytest.fixture
def alice(session: Session) -> User:
    return _add_user(session, "alice@example.com")


@pytest.fixture
def bob(session: Session) -> User:
    return _add_user(session, "bob@example.com")


@pytest.fixture
def ocr_engine() -> FakeOcrEngine:
    return FakeOcrEngine()


@pytest.fixture
def answer_client() -> FakeAnswerClient:
    return FakeAnswerClient()


@pytest.fixture
def document_service(ocr_engine: FakeOcrEngine, config: AppConfig) -> DocumentService:
    return DocumentService(ocr_engine, config.ocr)


@pytest.fixture
def chat_service(
    answer_client: FakeAnswerClient, config: AppConfig
) -> ChatOrchestrator:
    return ChatOrchestrator(answer_client, config.llm)


@pytest.fixture
def store_image(config: AppConfig) -> Callable[..., StoredUpload]:
    """Factory writing a synthetic image through the upload boundary."""

    def _store(
        fmt: str = "PNG",
        name: str = "invoice.png",
        size: tuple[int, int] = (300, 200),
    ) -> StoredUpload:
        mime_type = "image/png" if fmt == "PNG" else "image/jpeg"
        return save_upload(config.storage, name, mime_type, _encode_image(fmt, size))

    return _store


@pytest.fixture
def make_document(
    session: Session,
    document_service: DocumentService,
    store_image: Callable[..., StoredUpload],
) -> Callable[..., Document]:
    """Factory ingesting a synthetic invoice image for a user."""

    def _make(user: User, fmt: str = "PNG", name: str = "invoice.png") -> Document:
        return document_service.create_and_ocr(
            session, user.id, store_image(fmt=fmt, name=name)
        )

    return _make
