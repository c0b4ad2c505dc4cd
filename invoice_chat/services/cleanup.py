"""Cascading deletion of documents and chat history.

Rows are deleted children first (messages, threads, OCR results, documents)
inside one transaction, so foreign keys are never violated. Every
operation is a no-op returning zero counts when there is nothing to delete.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from invoice_chat.core.ownership import (
    Denied,
    Ok,
    check_document_ownership,
    check_thread_ownership,
)
from invoice_chat.db import repository
from invoice_chat.storage.uploads import remove_stored_file
from invoice_chat.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class UserDeletion:
    deleted: int


@dataclass
class ChatDeletion:
    deleted_threads: int
    deleted_messages: int


class BulkCleanup:
    """Deletes a user's documents or the chat history of one document."""

    def delete_all_for_user(self, session: Session, user_id: int) -> UserDeletion:
        """Delete every document of ``user_id`` with its OCR and chat.

        Stored image files are removed once the transaction has committed.

        Args:
            session: Open database session.
            user_id: Caller identity; only the caller's own rows are touched.

        Returns:
            Number of deleted documents.
        """
        document_ids = repository.document_ids_for_user(session, user_id)
        if not document_ids:
            return UserDeletion(deleted=0)

        storage_paths = repository.storage_paths_for_documents(session, document_ids)
        try:
            thread_ids = repository.thread_ids_for_documents(session, document_ids)
            messages = repository.delete_messages_for_threads(session, thread_ids)
            threads = repository.delete_threads(session, thread_ids)
            repository.delete_ocr_for_documents(session, document_ids)
            deleted = repository.delete_documents(session, document_ids)
            session.commit()
        except Exception:
            session.rollback()
            raise

        for path in storage_paths:
            remove_stored_file(path)

        logger.info(
            "Deleted %d documents, %d threads, %d messages for user %s",
            deleted,
            threads,
            messages,
            user_id,
        )
        return UserDeletion(deleted=deleted)

    def delete_chat_for_document(
        self, session: Session, user_id: int, document_id: int
    ) -> Ok[ChatDeletion] | Denied:
        """Delete all threads and messages of a document the caller owns."""
        access = check_document_ownership(session, user_id, document_id)
        if not isinstance(access, Ok):
            return access

        thread_ids = repository.thread_ids_for_documents(session, [document_id])
        if not thread_ids:
            return Ok(ChatDeletion(deleted_threads=0, deleted_messages=0))
        return Ok(self._delete_threads(session, thread_ids))

    def delete_thread(
        self, session: Session, user_id: int, thread_id: int
    ) -> Ok[ChatDeletion] | Denied:
        """Delete one thread the caller owns, with its messages."""
        access = check_thread_ownership(session, user_id, thread_id)
        if not isinstance(access, Ok):
            return access
        return Ok(self._delete_threads(session, [thread_id]))

    def _delete_threads(self, session: Session, thread_ids: list[int]) -> ChatDeletion:
        try:
            messages = repository.delete_messages_for_threads(session, thread_ids)
            threads = repository.delete_threads(session, thread_ids)
            session.commit()
        except Exception:
            session.rollback()
            raise
        logger.info("Deleted %d threads and %d messages", threads, messages)
        return ChatDeletion(deleted_threads=threads, deleted_messages=messages)
