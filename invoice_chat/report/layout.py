"""Text layout for exported reports: content lines, word wrap, pagination.

Everything here is pure and works on plain strings and numbers; the
renderer supplies a width function for the actual font.
"""

import re
from collections.abc import Callable
from datetime import datetime, timezone

from invoice_chat.db.models import Document

NO_OCR_PLACEHOLDER = "(no OCR text)"
OCR_SECTION = "=== OCR TEXT ==="
CHAT_SECTION = "=== CHAT ==="

_LINE_BREAK = re.compile(r"\r?\n")

Placed = tuple[float, str]


def _iso_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def build_report_lines(document: Document) -> list[str]:
    """List the report's content in order: header, OCR text, chat transcript.

    Args:
        document: Document with ``ocr`` and ``threads``/``messages`` loaded.

    Returns:
        Content entries; a single entry may still contain line breaks.
    """
    content = [
        f"Document: {document.original_name}",
        f"Created: {_iso_utc(document.created_at)}",
        "",
        OCR_SECTION,
        document.ocr.text if document.ocr is not None else NO_OCR_PLACEHOLDER,
        "",
        CHAT_SECTION,
    ]
    for thread in document.threads:
        content.extend(f"[{m.role}] {m.content}" for m in thread.messages)
        content.append("")
    return content


def split_logical_lines(content: list[str]) -> list[str]:
    """Join content entries and split on LF or CRLF into logical lines."""
    return _LINE_BREAK.split("\n".join(content))


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> list[str]:
    """Greedily wrap one logical line to ``max_width``.

    Words are added to the current line while the measured width stays
    within the limit. A word wider than the limit on its own gets a line of
    its own and is never split. An empty line becomes ``" "`` so blank
    lines keep their vertical space.

    Args:
        text: One logical line.
        max_width: Printable width in points.
        measure: Returns the rendered width of a string.

    Returns:
        Wrapped lines.
    """
    words = text.split()
    if not words:
        return [" "]

    lines: list[str] = []
    line = ""
    for word in words:
        candidate = f"{line} {word}" if line else word
        if line and measure(candidate) > max_width:
            lines.append(line)
            line = word
        else:
            line = candidate
    lines.append(line)
    return lines


def paginate(
    lines: list[str],
    page_height: float,
    margin: float,
    line_height: float,
    first_baseline: float,
) -> list[list[Placed]]:
    """Assign each line a page and a baseline (measured from the page top).

    Args:
        lines: Wrapped lines in order.
        page_height: Page height in points.
        margin: Top and bottom margin in points.
        line_height: Vertical advance per line.
        first_baseline: Baseline of the first line on every page.

    Returns:
        One list of ``(baseline, text)`` per page. No baseline lies below
        ``page_height - margin``, except when a page cannot hold even one
        line, in which case each page carries exactly one.
    """
    bottom = page_height - margin
    pages: list[list[Placed]] = []
    current: list[Placed] = []
    y = first_baseline

    for line in lines:
        if y > bottom and current:
            pages.append(current)
            current = []
            y = first_baseline
        current.append((y, line))
        y += line_height

    if current:
        pages.append(current)
    return pages


def fit_image(
    image_width: float, image_height: float, page_width: float, page_height: float
) -> tuple[float, float, float, float]:
    """Scale an image uniformly to fit the page and center it.

    Returns:
        ``(x0, y0, x1, y1)`` of the placed image.
    """
    scale = min(page_width / image_width, page_height / image_height)
    width = image_width * scale
    height = image_height * scale
    x0 = (page_width - width) / 2
    y0 = (page_height - height) / 2
    return x0, y0, x0 + width, y0 + height
