"""Tesseract OCR engine used by document ingestion.

The ingestion service only depends on the ``OcrEngine`` protocol, so tests
and alternative engines can be substituted without touching it.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np
import pytesseract
from PIL import Image, UnidentifiedImageError

from invoice_chat.errors import OcrEngineError
from invoice_chat.utils.config import OCRConfig
from invoice_chat.utils.logger import get_logger

from .preprocessing import prepare_for_ocr

logger = get_logger(__name__)


@dataclass
class Recognition:
    """Plain text recognized from one image."""

    text: str
    language: str


class OcrEngine(Protocol):
    def recognize(self, file_path: Path, lang: str) -> Recognition: ...


class TesseractEngine:
    """Wrapper around Tesseract for whole-page text extraction.

    Args:
        config: OCR configuration (executable path, page segmentation mode,
            optional preprocessing).
    """

    def __init__(self, config: OCRConfig) -> None:
        if config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = config.tesseract_cmd
        self.config = config

    def recognize(self, file_path: Path, lang: str) -> Recognition:
        """Extract the text of an image file.

        Args:
            file_path: Path to a PNG or JPEG image.
            lang: Tesseract language code, e.g. ``"eng"``.

        Returns:
            Recognized text; an empty string when nothing was found.

        Raises:
            OcrEngineError: If the file cannot be opened or Tesseract fails.
        """
        try:
            with Image.open(file_path) as img:
                image = img.convert("RGB")
        except (OSError, UnidentifiedImageError) as exc:
            raise OcrEngineError(f"Cannot open image {file_path}: {exc}") from exc

        source: Image.Image = image
        if self.config.preprocess:
            source = Image.fromarray(prepare_for_ocr(np.array(image), self.config))

        try:
            text = pytesseract.image_to_string(
                source, lang=lang, config=f"--psm {self.config.psm}"
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as exc:
            raise OcrEngineError(f"Tesseract failed on {file_path}: {exc}") from exc

        text = text or ""
        logger.info(
            "OCR extracted %d characters from %s (lang=%s)",
            len(text),
            file_path.name,
            lang,
        )
        return Recognition(text=text, language=lang)
