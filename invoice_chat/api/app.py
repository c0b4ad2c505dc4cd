"""FastAPI boundary for the invoice chat service.

Authenticates the caller, validates input, and passes the caller id and
validated values explicitly to the core services. Ownership denials come
back as values and are mapped to 404/403 here; collaborator and render
failures are logged and mapped to 5xx responses.

Handlers are plain ``def`` functions: FastAPI runs them in its worker
thread pool, so blocking OCR, database and model calls do not stall the
event loop.
"""

import shutil
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Annotated, TypeVar

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from invoice_chat import __version__
from invoice_chat.auth.service import AuthService
from invoice_chat.core.ownership import Denied, Forbidden, NotFound, Ok
from invoice_chat.db import repository
from invoice_chat.db.database import (
    build_engine,
    build_session_factory,
    init_db,
    session_scope,
)
from invoice_chat.errors import (
    AuthenticationError,
    EmailAlreadyRegisteredError,
    OcrEngineError,
    ReportRenderError,
    UploadValidationError,
)
from invoice_chat.llm.client import AnswerClient, InvoiceQAClient
from invoice_chat.ocr.tesseract_engine import OcrEngine, TesseractEngine
from invoice_chat.report.compositor import ReportCompositor
from invoice_chat.services.chat import ChatOrchestrator
from invoice_chat.services.cleanup import BulkCleanup
from invoice_chat.services.documents import DocumentService
from invoice_chat.storage.uploads import save_upload
from invoice_chat.utils.config import AppConfig
from invoice_chat.utils.logger import get_logger

from .schemas import (
    ChatDeletionResponse,
    ChatThreadResponse,
    ChatTurnResponse,
    CredentialsRequest,
    DocumentDetailResponse,
    DocumentResponse,
    HealthResponse,
    ThreadDetailResponse,
    TokenResponse,
    UserDeletionResponse,
    UserMessageRequest,
)

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class Components:
    """Services shared by all requests, built once per application."""

    config: AppConfig
    engine: Engine
    session_factory: sessionmaker[Session]
    auth: AuthService
    documents: DocumentService
    chats: ChatOrchestrator
    reports: ReportCompositor
    cleanup: BulkCleanup


def build_components(
    config: AppConfig,
    ocr_engine: OcrEngine | None = None,
    answer_client: AnswerClient | None = None,
) -> Components:
    """Wire the services from configuration.

    Args:
        config: Application configuration.
        ocr_engine: OCR engine override; Tesseract by default.
        answer_client: Language-model override; OpenAI by default.

    Returns:
        Ready-to-use components with the database schema created.
    """
    engine = build_engine(config.database)
    init_db(engine)
    return Components(
        config=config,
        engine=engine,
        session_factory=build_session_factory(engine),
        auth=AuthService(config.auth),
        documents=DocumentService(ocr_engine or TesseractEngine(config.ocr), config.ocr),
        chats=ChatOrchestrator(answer_client or InvoiceQAClient(config.llm), config.llm),
        reports=ReportCompositor(config.report),
        cleanup=BulkCleanup(),
    )


# ---------- Dependencies ----------


def get_components(request: Request) -> Components:
    return request.app.state.components


def get_session(
    components: Annotated[Components, Depends(get_components)],
) -> Iterator[Session]:
    yield from session_scope(components.session_factory)


_bearer = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
    components: Annotated[Components, Depends(get_components)],
    session: Annotated[Session, Depends(get_session)],
) -> int:
    """Resolve the caller's user id from the bearer token."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        user_id = components.auth.decode_token(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    if repository.get_user(session, user_id) is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user_id


ComponentsDep = Annotated[Components, Depends(get_components)]
SessionDep = Annotated[Session, Depends(get_session)]
UserIdDep = Annotated[int, Depends(get_current_user_id)]


def _unwrap(access: Ok[T] | Denied) -> T:
    """Return the granted value or raise the matching HTTP error."""
    if isinstance(access, NotFound):
        raise HTTPException(status_code=404, detail=access.message)
    if isinstance(access, Forbidden):
        raise HTTPException(status_code=403, detail=access.message)
    return access.value


# ---------- Routes ----------

system_router = APIRouter(tags=["system"])
auth_router = APIRouter(prefix="/auth", tags=["auth"])
documents_router = APIRouter(prefix="/documents", tags=["documents"])
chats_router = APIRouter(prefix="/chats", tags=["chats"])


@system_router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        tesseract_available=shutil.which("tesseract") is not None,
    )


@auth_router.post("/register", response_model=TokenResponse, status_code=201)
def register(
    body: CredentialsRequest, components: ComponentsDep, session: SessionDep
) -> TokenResponse:
    try:
        token = components.auth.register(session, body.email, body.password)
    except EmailAlreadyRegisteredError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return TokenResponse(access_token=token)


@auth_router.post("/login", response_model=TokenResponse)
def login(
    body: CredentialsRequest, components: ComponentsDep, session: SessionDep
) -> TokenResponse:
    try:
        token = components.auth.login(session, body.email, body.password)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return TokenResponse(access_token=token)


@documents_router.post("/upload", response_model=DocumentResponse, status_code=201)
def upload_document(
    file: Annotated[UploadFile, File(...)],
    user_id: UserIdDep,
    components: ComponentsDep,
    session: SessionDep,
) -> DocumentResponse:
    """Store an invoice image and run OCR on it.

    Args:
        file: PNG or JPEG image, at most ``storage.max_upload_bytes``.

    Returns:
        The new document with its OCR result.
    """
    storage = components.config.storage
    data = file.file.read(storage.max_upload_bytes + 1)
    try:
        upload = save_upload(storage, file.filename, file.content_type, data)
    except UploadValidationError as exc:
        logger.warning("Rejected upload from user %s: %s", user_id, exc)
        raise HTTPException(
            status_code=413 if exc.too_large else 400, detail=str(exc)
        ) from exc

    try:
        document = components.documents.create_and_ocr(session, user_id, upload)
    except OcrEngineError as exc:
        logger.error("OCR ingestion failed: %s", exc)
        raise HTTPException(status_code=502, detail="OCR failed") from exc
    return DocumentResponse.model_validate(document)


@documents_router.get("", response_model=list[DocumentDetailResponse])
def list_documents(
    user_id: UserIdDep, components: ComponentsDep, session: SessionDep
) -> list[DocumentDetailResponse]:
    documents = components.documents.list_for_user(session, user_id)
    return [DocumentDetailResponse.model_validate(d) for d in documents]


@documents_router.delete("", response_model=UserDeletionResponse)
def delete_all_documents(
    user_id: UserIdDep, components: ComponentsDep, session: SessionDep
) -> UserDeletionResponse:
    result = components.cleanup.delete_all_for_user(session, user_id)
    return UserDeletionResponse.model_validate(result)


@documents_router.get("/{document_id}", response_model=DocumentDetailResponse)
def get_document(
    document_id: int, user_id: UserIdDep, components: ComponentsDep, session: SessionDep
) -> DocumentDetailResponse:
    document = _unwrap(components.documents.get_for_user(session, user_id, document_id))
    return DocumentDetailResponse.model_validate(document)


@documents_router.get("/{document_id}/file")
def download_document_file(
    document_id: int, user_id: UserIdDep, components: ComponentsDep, session: SessionDep
) -> FileResponse:
    stored = _unwrap(
        components.documents.get_file_for_user(session, user_id, document_id)
    )
    if not stored.path.is_file():
        logger.error("Stored file missing for document %s: %s", document_id, stored.path)
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(
        stored.path,
        media_type=stored.document.mime_type,
        filename=stored.document.original_name,
    )


@documents_router.get("/{document_id}/export")
def export_document_pdf(
    document_id: int, user_id: UserIdDep, components: ComponentsDep, session: SessionDep
) -> Response:
    try:
        pdf_bytes = _unwrap(
            components.reports.export_pdf_for_user(session, user_id, document_id)
        )
    except ReportRenderError as exc:
        logger.error("Export of document %s failed: %s", document_id, exc)
        raise HTTPException(status_code=500, detail="Could not render report") from exc
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="document-export.pdf"'},
    )


@documents_router.delete("/{document_id}/chat", response_model=ChatDeletionResponse)
def delete_document_chat(
    document_id: int, user_id: UserIdDep, components: ComponentsDep, session: SessionDep
) -> ChatDeletionResponse:
    result = _unwrap(
        components.cleanup.delete_chat_for_document(session, user_id, document_id)
    )
    return ChatDeletionResponse.model_validate(result)


@chats_router.post(
    "/{document_id}/threads", response_model=ChatThreadResponse, status_code=201
)
def create_thread(
    document_id: int, user_id: UserIdDep, components: ComponentsDep, session: SessionDep
) -> ChatThreadResponse:
    thread = _unwrap(components.chats.create_thread(session, user_id, document_id))
    return ChatThreadResponse.model_validate(thread)


@chats_router.post("/{thread_id}/messages", response_model=ChatTurnResponse)
def add_message(
    thread_id: int,
    body: UserMessageRequest,
    user_id: UserIdDep,
    components: ComponentsDep,
    session: SessionDep,
) -> ChatTurnResponse:
    turn = _unwrap(
        components.chats.add_user_message_and_reply(
            session, user_id, thread_id, body.content
        )
    )
    return ChatTurnResponse.model_validate(turn)


@chats_router.get("/{thread_id}", response_model=ThreadDetailResponse)
def get_thread(
    thread_id: int, user_id: UserIdDep, components: ComponentsDep, session: SessionDep
) -> ThreadDetailResponse:
    thread = _unwrap(components.chats.get_thread(session, user_id, thread_id))
    return ThreadDetailResponse.model_validate(thread)


@chats_router.delete("/{thread_id}", response_model=ChatDeletionResponse)
def delete_thread(
    thread_id: int, user_id: UserIdDep, components: ComponentsDep, session: SessionDep
) -> ChatDeletionResponse:
    result = _unwrap(components.cleanup.delete_thread(session, user_id, thread_id))
    return ChatDeletionResponse.model_validate(result)


def create_app(
    config: AppConfig,
    ocr_engine: OcrEngine | None = None,
    answer_client: AnswerClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Application configuration, loaded once at process start.
        ocr_engine: OCR engine override.
        answer_client: Language-model override.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Invoice Chat API",
        description="Upload invoices, ask questions about them, export PDF reports",
        version=__version__,
    )
    app.state.components = build_components(config, ocr_engine, answer_client)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    for router in (system_router, auth_router, documents_router, chats_router):
        app.include_router(router)
    return app
