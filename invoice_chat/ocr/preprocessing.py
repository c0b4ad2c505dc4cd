"""Optional clean-up of invoice scans before OCR.

Grayscale conversion, noise reduction and binarization with OpenCV. Phone
photos of paper invoices tend to have uneven lighting; adaptive
thresholding usually gives Tesseract a cleaner page.
"""

import cv2
import numpy as np

from invoice_chat.utils.config import OCRConfig
from invoice_chat.utils.logger import get_logger

logger = get_logger(__name__)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an RGB, RGBA or grayscale array to single-channel grayscale."""
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)


def denoise(image: np.ndarray, method: str = "bilateral") -> np.ndarray:
    """Reduce noise while keeping character edges.

    Args:
        image: Grayscale image.
        method: ``"bilateral"`` or ``"gaussian"``.

    Returns:
        Denoised image.

    Raises:
        ValueError: If an unsupported method is specified.
    """
    if method == "bilateral":
        return cv2.bilateralFilter(image, 9, 75, 75)
    if method == "gaussian":
        return cv2.GaussianBlur(image, (5, 5), 0)
    raise ValueError(f"Unsupported denoise method: {method}")


def binarize(image: np.ndarray, method: str = "adaptive") -> np.ndarray:
    """Threshold a grayscale image to black and white.

    Args:
        image: Grayscale image.
        method: ``"adaptive"`` (Gaussian, 11px blocks) or ``"otsu"``.

    Returns:
        Binary image with pixel values 0 or 255.

    Raises:
        ValueError: If an unsupported method is specified.
    """
    if method == "adaptive":
        return cv2.adaptiveThreshold(
            image, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
        )
    if method == "otsu":
        _, binary = cv2.threshold(image, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        return binary
    raise ValueError(f"Unsupported binarize method: {method}")


def prepare_for_ocr(image: np.ndarray, config: OCRConfig) -> np.ndarray:
    """Run the configured clean-up steps on an invoice image.

    Args:
        image: Decoded image array as produced by Pillow.
        config: OCR configuration selecting the methods.

    Returns:
        Binary grayscale image ready for Tesseract.
    """
    result = denoise(to_gray(image), config.denoise_method)
    result = binarize(result, config.binarize_method)
    logger.debug(
        "Prepared image %s for OCR (denoise=%s, binarize=%s)",
        result.shape,
        config.denoise_method,
        config.binarize_method,
    )
    return result
