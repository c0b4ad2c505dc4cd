"""Invoice Chat.

Upload an invoice image, extract its text with Tesseract OCR, ask questions
about it through a language model grounded in that text, and export a PDF
report combining the image, the OCR text and the chat transcript.
"""

__version__ = "1.0.0"
