"""Chat threads and question-answering turns over a document's OCR text.

A turn always produces two persisted messages. The user message is
committed before the language model is called; if the model fails for any
reason the assistant message carries ``FALLBACK_REPLY`` instead, so a
question is never lost and a conversation is never blocked.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from invoice_chat.core.ownership import (
    Denied,
    NotFound,
    Ok,
    check_document_ownership,
    check_thread_ownership,
)
from invoice_chat.db import repository
from invoice_chat.db.models import ChatMessage, ChatRole, ChatThread
from invoice_chat.llm.client import AnswerClient, HistoryTurn
from invoice_chat.utils.config import LLMConfig
from invoice_chat.utils.logger import get_logger

logger = get_logger(__name__)

FALLBACK_REPLY = (
    "Sorry, I couldn't answer that right now. Please try again in a moment."
)


@dataclass
class ChatTurn:
    """The two messages written by one question-answering turn."""

    user_message: ChatMessage
    assistant_message: ChatMessage


class ChatOrchestrator:
    """Manages chat threads and drives question-answering turns.

    Args:
        answer_client: Language-model collaborator.
        config: Limits on the OCR context and history passed to the model.
    """

    def __init__(self, answer_client: AnswerClient, config: LLMConfig) -> None:
        self.answer_client = answer_client
        self.config = config

    def create_thread(
        self, session: Session, user_id: int, document_id: int
    ) -> Ok[ChatThread] | Denied:
        """Open a new thread on a document the caller owns."""
        access = check_document_ownership(session, user_id, document_id)
        if not isinstance(access, Ok):
            return access

        document = access.value
        thread = repository.create_thread(session, document.user_id, document.id)
        session.commit()
        logger.info("Created thread %s on document %s", thread.id, document.id)
        return Ok(thread)

    def add_user_message_and_reply(
        self, session: Session, user_id: int, thread_id: int, content: str
    ) -> Ok[ChatTurn] | Denied:
        """Store the question, ask the model, store the answer.

        Args:
            session: Open database session.
            user_id: Caller identity.
            thread_id: Thread receiving the message.
            content: The user's question, already validated as non-empty.

        Returns:
            ``Ok`` with both persisted messages, or the guard's denial.
        """
        access = check_thread_ownership(session, user_id, thread_id)
        if not isinstance(access, Ok):
            return access

        thread = access.value
        ocr = thread.document.ocr
        ocr_text = (ocr.text if ocr is not None else "").strip()
        history = [
            HistoryTurn(role=m.role, content=m.content)
            for m in repository.recent_messages(
                session, thread.id, self.config.max_history_turns
            )
        ]

        user_message = repository.create_message(
            session, thread.id, ChatRole.USER, content
        )
        session.commit()

        try:
            reply = self.answer_client.answer(
                ocr_text=ocr_text[: self.config.max_ocr_chars],
                question=content,
                history=history,
            )
        except Exception as exc:
            logger.warning("Answering failed on thread %s: %s", thread.id, exc)
            reply = FALLBACK_REPLY

        if not reply or not reply.strip():
            reply = FALLBACK_REPLY
        assistant_message = repository.create_message(
            session, thread.id, ChatRole.ASSISTANT, reply
        )
        session.commit()
        return Ok(ChatTurn(user_message=user_message, assistant_message=assistant_message))

    def get_thread(
        self, session: Session, user_id: int, thread_id: int
    ) -> Ok[ChatThread] | Denied:
        """Return the thread with ordered messages, its document and OCR."""
        access = check_thread_ownership(session, user_id, thread_id)
        if not isinstance(access, Ok):
            return access
        thread = repository.get_thread_with_messages_document_and_ocr(
            session, thread_id
        )
        if thread is None:
            return NotFound("Thread", thread_id)
        return Ok(thread)
