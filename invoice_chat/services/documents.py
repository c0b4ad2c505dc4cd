"""Document ingestion and owner-scoped document reads.

``create_and_ocr`` runs the OCR engine on the stored upload first and then
writes the Document and its OcrResult in a single transaction, so a
document is never visible without its OCR result and no database
transaction is held open while Tesseract runs.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.orm import Session

from invoice_chat.core.ownership import (
    Denied,
    NotFound,
    Ok,
    check_document_ownership,
)
from invoice_chat.db import repository
from invoice_chat.db.models import Document
from invoice_chat.ocr.tesseract_engine import OcrEngine
from invoice_chat.storage.uploads import StoredUpload, normalize_path, remove_stored_file
from invoice_chat.utils.config import OCRConfig
from invoice_chat.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class StoredFile:
    """A document together with the resolved path of its image on disk."""

    document: Document
    path: Path


class DocumentService:
    """Creates documents from uploads and serves them to their owners.

    Args:
        ocr_engine: Engine used to recognize uploaded images.
        config: OCR configuration (language).
    """

    def __init__(self, ocr_engine: OcrEngine, config: OCRConfig) -> None:
        self.ocr_engine = ocr_engine
        self.config = config

    def create_and_ocr(
        self, session: Session, user_id: int, upload: StoredUpload
    ) -> Document:
        """Ingest a stored upload: OCR it, then persist Document + OcrResult.

        Args:
            session: Open database session.
            user_id: Owner of the new document.
            upload: File accepted by the upload boundary.

        Returns:
            The new document with its OCR result loaded.

        Raises:
            OcrEngineError: If recognition fails. On this or any other
                failure nothing is persisted and the stored file is removed.
        """
        storage_path = normalize_path(upload.storage_path)
        try:
            recognition = self.ocr_engine.recognize(
                Path(storage_path), self.config.default_lang
            )
        except Exception:
            logger.error("OCR failed for upload %s, discarding it", storage_path)
            remove_stored_file(storage_path)
            raise

        try:
            document = repository.add_document_with_ocr(
                session,
                user_id=user_id,
                original_name=upload.original_name,
                mime_type=upload.mime_type,
                size_bytes=upload.size_bytes,
                storage_path=storage_path,
                text=recognition.text or "",
            )
            session.commit()
        except Exception:
            session.rollback()
            remove_stored_file(storage_path)
            raise

        logger.info(
            "Ingested document %s for user %s (%d OCR characters)",
            document.id,
            user_id,
            len(recognition.text or ""),
        )
        return repository.get_document_with_ocr(session, document.id)

    def list_for_user(self, session: Session, user_id: int) -> Sequence[Document]:
        """Return the caller's documents, newest first, with OCR and chat."""
        return repository.list_documents_with_ocr_and_chat(session, user_id)

    def get_for_user(
        self, session: Session, user_id: int, document_id: int
    ) -> Ok[Document] | Denied:
        """Return one document with OCR, threads and ordered messages."""
        access = check_document_ownership(session, user_id, document_id)
        if not isinstance(access, Ok):
            return access
        document = repository.get_document_with_ocr_and_chat(session, document_id)
        if document is None:
            return NotFound("Document", document_id)
        return Ok(document)

    def get_file_for_user(
        self, session: Session, user_id: int, document_id: int
    ) -> Ok[StoredFile] | Denied:
        """Return the document and the on-disk path of its original image."""
        access = check_document_ownership(session, user_id, document_id)
        if not isinstance(access, Ok):
            return access
        document = access.value
        return Ok(StoredFile(document=document, path=Path(document.storage_path)))
