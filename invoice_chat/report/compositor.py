"""PDF report rendering with PyMuPDF.

Page 1 carries the original invoice image scaled to fit; the following
pages carry the header, OCR text and every chat thread, word-wrapped and
paginated between the margins. Characters the report font has no glyph
for are set in the fallback font, which is embedded alongside it.
"""

import io
from pathlib import Path

import fitz  # PyMuPDF
from PIL import Image
from sqlalchemy.orm import Session

from invoice_chat.core.ownership import (
    Denied,
    NotFound,
    Ok,
    check_document_ownership,
)
from invoice_chat.db import repository
from invoice_chat.db.models import Document
from invoice_chat.errors import ReportRenderError
from invoice_chat.utils.config import ReportConfig
from invoice_chat.utils.logger import get_logger

from .layout import build_report_lines, fit_image, paginate, split_logical_lines, wrap_text

logger = get_logger(__name__)

# Multi-picture JPEGs (phone cameras) decode as MPO but embed as plain JPEG.
SUPPORTED_IMAGE_FORMATS = {
    "image/png": {"PNG"},
    "image/jpeg": {"JPEG", "MPO"},
    "image/jpg": {"JPEG", "MPO"},
}


class ReportCompositor:
    """Renders a document, its OCR text and its chat history to PDF.

    Args:
        config: Page geometry and typography.
    """

    def __init__(self, config: ReportConfig) -> None:
        self.config = config
        self.font = fitz.Font(config.font_name)
        self.fallback_font = fitz.Font(config.fallback_font_name)

    @property
    def printable_width(self) -> float:
        return self.config.page_width - 2 * self.config.margin

    def measure(self, text: str) -> float:
        """Rendered width of ``text`` as set by ``render``."""
        return sum(
            font.text_length(run, fontsize=self.config.font_size)
            for font, run in self._font_runs(text)
        )

    def _font_runs(self, text: str) -> list[tuple[fitz.Font, str]]:
        """Split ``text`` into runs set in the report or the fallback font."""
        runs: list[tuple[fitz.Font, str]] = []
        for char in text:
            if char.isspace() or self.font.has_glyph(ord(char)):
                font = self.font
            else:
                font = self.fallback_font
            if runs and runs[-1][0] is font:
                runs[-1] = (font, runs[-1][1] + char)
            else:
                runs.append((font, char))
        return runs

    def export_pdf_for_user(
        self, session: Session, user_id: int, document_id: int
    ) -> Ok[bytes] | Denied:
        """Build the PDF report of a document the caller owns.

        Raises:
            ReportRenderError: If the image is missing, unreadable or of an
                unsupported type.
        """
        access = check_document_ownership(session, user_id, document_id)
        if not isinstance(access, Ok):
            return access

        document = repository.get_document_with_ocr_and_chat(session, document_id)
        if document is None:
            return NotFound("Document", document_id)

        pdf_bytes = self.render(document)
        logger.info(
            "Exported document %s for user %s (%d bytes)",
            document_id,
            user_id,
            len(pdf_bytes),
        )
        return Ok(pdf_bytes)

    def wrap_lines(self, document: Document) -> list[str]:
        """Produce the wrapped text lines of the report body."""
        wrapped: list[str] = []
        for logical in split_logical_lines(build_report_lines(document)):
            wrapped.extend(wrap_text(logical, self.printable_width, self.measure))
        return wrapped

    def render(self, document: Document) -> bytes:
        """Render ``document`` to PDF bytes.

        Raises:
            ReportRenderError: If the image cannot be embedded.
        """
        image_bytes, (image_width, image_height) = self._load_image(document)
        cfg = self.config
        pages = paginate(
            self.wrap_lines(document),
            page_height=cfg.page_height,
            margin=cfg.margin,
            line_height=cfg.line_height,
            first_baseline=cfg.margin + cfg.font_size,
        )

        pdf = fitz.open()
        try:
            cover = pdf.new_page(width=cfg.page_width, height=cfg.page_height)
            rect = fitz.Rect(
                *fit_image(image_width, image_height, cfg.page_width, cfg.page_height)
            )
            try:
                cover.insert_image(rect, stream=image_bytes)
            except (RuntimeError, ValueError) as exc:
                raise ReportRenderError(
                    f"Cannot embed image of document {document.id}: {exc}"
                ) from exc

            for placed in pages:
                page = pdf.new_page(width=cfg.page_width, height=cfg.page_height)
                writer = fitz.TextWriter(page.rect)
                for baseline, text in placed:
                    point = fitz.Point(cfg.margin, baseline)
                    for font, run in self._font_runs(text):
                        _, point = writer.append(
                            point, run, font=font, fontsize=cfg.font_size
                        )
                writer.write_text(page)
            return pdf.tobytes(garbage=3, deflate=True)
        finally:
            pdf.close()

    def _load_image(self, document: Document) -> tuple[bytes, tuple[int, int]]:
        """Read and decode the stored image, checking it matches its MIME type.

        Returns:
            Raw file bytes and the pixel size ``(width, height)``.
        """
        expected = SUPPORTED_IMAGE_FORMATS.get(document.mime_type)
        if expected is None:
            raise ReportRenderError(f"Unsupported image type: {document.mime_type}")

        path = Path(document.storage_path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise ReportRenderError(f"Cannot read image file {path}: {exc}") from exc

        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                actual, size = img.format, img.size
        except (OSError, Image.DecompressionBombError) as exc:
            raise ReportRenderError(f"Cannot decode image {path}: {exc}") from exc

        if actual not in expected:
            allowed = " or ".join(sorted(expected))
            raise ReportRenderError(
                f"Image {path} is {actual}, expected {allowed} for {document.mime_type}"
            )
        return data, size
