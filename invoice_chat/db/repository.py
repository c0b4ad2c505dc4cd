"""Query and write helpers over the ORM models.

Each read function states in its name which relations it loads, so the
join shape is part of the contract instead of an implicit query option.
Writes add and flush; committing is left to the calling service.
"""

from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, joinedload, selectinload

from .models import ChatMessage, ChatRole, ChatThread, Document, OcrResult, User

# ---------- Users ----------


def get_user(session: Session, user_id: int) -> User | None:
    return session.get(User, user_id)


def get_user_by_email(session: Session, email: str) -> User | None:
    return session.scalars(select(User).where(User.email == email)).first()


def create_user(session: Session, email: str, password_hash: str) -> User:
    user = User(email=email, password_hash=password_hash)
    session.add(user)
    session.flush()
    return user


# ---------- Documents ----------


def get_document(session: Session, document_id: int) -> Document | None:
    """Return the bare document row, no relations loaded."""
    return session.get(Document, document_id)


def get_document_with_ocr(session: Session, document_id: int) -> Document | None:
    """Return the document joined with its OCR result."""
    stmt = (
        select(Document)
        .options(joinedload(Document.ocr))
        .where(Document.id == document_id)
        .execution_options(populate_existing=True)
    )
    return session.scalars(stmt).unique().first()


def get_document_with_ocr_and_chat(
    session: Session, document_id: int
) -> Document | None:
    """Return the document with its OCR result, threads and ordered messages."""
    stmt = (
        select(Document)
        .options(
            joinedload(Document.ocr),
            selectinload(Document.threads).selectinload(ChatThread.messages),
        )
        .where(Document.id == document_id)
        .execution_options(populate_existing=True)
    )
    return session.scalars(stmt).unique().first()


def list_documents_with_ocr_and_chat(
    session: Session, user_id: int
) -> Sequence[Document]:
    """Return a user's documents, newest first, with OCR and chat loaded."""
    stmt = (
        select(Document)
        .options(
            joinedload(Document.ocr),
            selectinload(Document.threads).selectinload(ChatThread.messages),
        )
        .where(Document.user_id == user_id)
        .order_by(Document.created_at.desc(), Document.id.desc())
        .execution_options(populate_existing=True)
    )
    return session.scalars(stmt).unique().all()


def add_document_with_ocr(
    session: Session,
    user_id: int,
    original_name: str,
    mime_type: str,
    size_bytes: int,
    storage_path: str,
    text: str,
) -> Document:
    """Stage a document and its OCR result in the current transaction."""
    document = Document(
        user_id=user_id,
        original_name=original_name,
        mime_type=mime_type,
        size_bytes=size_bytes,
        storage_path=storage_path,
    )
    session.add(document)
    session.flush()
    session.add(OcrResult(document_id=document.id, text=text))
    session.flush()
    return document


def document_ids_for_user(session: Session, user_id: int) -> list[int]:
    return list(session.scalars(select(Document.id).where(Document.user_id == user_id)))


def storage_paths_for_documents(session: Session, document_ids: list[int]) -> list[str]:
    stmt = select(Document.storage_path).where(Document.id.in_(document_ids))
    return list(session.scalars(stmt))


# ---------- Threads & messages ----------


def create_thread(session: Session, user_id: int, document_id: int) -> ChatThread:
    thread = ChatThread(user_id=user_id, document_id=document_id)
    session.add(thread)
    session.flush()
    return thread


def get_thread_with_document_and_ocr(
    session: Session, thread_id: int
) -> ChatThread | None:
    """Return the thread joined with its document and the document's OCR.

    A single joined SELECT, so the ownership check and the OCR text come
    from one consistent read.
    """
    stmt = (
        select(ChatThread)
        .options(joinedload(ChatThread.document).joinedload(Document.ocr))
        .where(ChatThread.id == thread_id)
        .execution_options(populate_existing=True)
    )
    return session.scalars(stmt).unique().first()


def get_thread_with_messages_document_and_ocr(
    session: Session, thread_id: int
) -> ChatThread | None:
    """Return the thread with ordered messages, its document and OCR."""
    stmt = (
        select(ChatThread)
        .options(
            joinedload(ChatThread.document).joinedload(Document.ocr),
            selectinload(ChatThread.messages),
        )
        .where(ChatThread.id == thread_id)
        .execution_options(populate_existing=True)
    )
    return session.scalars(stmt).unique().first()


def thread_ids_for_documents(session: Session, document_ids: list[int]) -> list[int]:
    stmt = select(ChatThread.id).where(ChatThread.document_id.in_(document_ids))
    return list(session.scalars(stmt))


def recent_messages(session: Session, thread_id: int, limit: int) -> list[ChatMessage]:
    """Return the last ``limit`` messages of a thread in ascending order."""
    if limit <= 0:
        return []
    stmt = (
        select(ChatMessage)
        .where(ChatMessage.thread_id == thread_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
    )
    return list(reversed(session.scalars(stmt).all()))


def create_message(
    session: Session, thread_id: int, role: ChatRole, content: str
) -> ChatMessage:
    message = ChatMessage(thread_id=thread_id, role=role.value, content=content)
    session.add(message)
    session.flush()
    return message


# ---------- Bulk deletes (children before parents) ----------


def delete_messages_for_threads(session: Session, thread_ids: list[int]) -> int:
    result = session.execute(
        delete(ChatMessage).where(ChatMessage.thread_id.in_(thread_ids))
    )
    return result.rowcount or 0


def delete_threads(session: Session, thread_ids: list[int]) -> int:
    result = session.execute(delete(ChatThread).where(ChatThread.id.in_(thread_ids)))
    return result.rowcount or 0


def delete_ocr_for_documents(session: Session, document_ids: list[int]) -> int:
    result = session.execute(
        delete(OcrResult).where(OcrResult.document_id.in_(document_ids))
    )
    return result.rowcount or 0


def delete_documents(session: Session, document_ids: list[int]) -> int:
    result = session.execute(delete(Document).where(Document.id.in_(document_ids)))
    return result.rowcount or 0
