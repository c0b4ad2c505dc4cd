"""Ownership guard for documents and chat threads.

Every operation on a document or thread starts here. The guard returns
``Ok`` or a ``Denied`` value rather than raising: ``Ok`` carries the
loaded entity, ``NotFound`` means the row does not exist, ``Forbidden``
means it exists but belongs to someone else. Only the owner can tell the
two failures apart from a success, and the HTTP boundary maps them to 404
and 403.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from invoice_chat.db import repository
from invoice_chat.db.models import ChatThread, Document
from invoice_chat.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """The caller owns the entity; ``value`` is the loaded result."""

    value: T


@dataclass(frozen=True)
class NotFound:
    """The referenced entity does not exist."""

    entity: str
    entity_id: int

    @property
    def message(self) -> str:
        return f"{self.entity} not found"


@dataclass(frozen=True)
class Forbidden:
    """The entity exists but is owned by another user."""

    entity: str
    entity_id: int

    @property
    def message(self) -> str:
        return "Access denied"


Denied = NotFound | Forbidden


def check_document_ownership(
    session: Session, user_id: int, document_id: int
) -> Ok[Document] | Denied:
    """Verify that ``user_id`` owns the document.

    Args:
        session: Open database session.
        user_id: Caller identity.
        document_id: Document to check.

    Returns:
        ``Ok`` with the bare document row, ``NotFound`` or ``Forbidden``.
    """
    document = repository.get_document(session, document_id)
    if document is None:
        return NotFound("Document", document_id)
    if document.user_id != user_id:
        logger.warning(
            "User %s denied access to document %s", user_id, document_id
        )
        return Forbidden("Document", document_id)
    return Ok(document)


def check_thread_ownership(
    session: Session, user_id: int, thread_id: int
) -> Ok[ChatThread] | Denied:
    """Verify that ``user_id`` owns the thread and its parent document.

    The thread is loaded together with its document and the document's
    OCR result in one query; the whole chain is checked, not only the
    thread's own ``user_id``.

    Args:
        session: Open database session.
        user_id: Caller identity.
        thread_id: Thread to check.

    Returns:
        ``Ok`` with the thread (document and OCR loaded), ``NotFound`` or
        ``Forbidden``.
    """
    thread = repository.get_thread_with_document_and_ocr(session, thread_id)
    if thread is None:
        return NotFound("Thread", thread_id)
    if thread.user_id != user_id or thread.document.user_id != user_id:
        logger.warning("User %s denied access to thread %s", user_id, thread_id)
        return Forbidden("Thread", thread_id)
    return Ok(thread)
