"""Exception hierarchy for the invoice chat service.

Authorization outcomes are not exceptions: the ownership guard returns
``NotFound``/``Forbidden`` values instead (see ``invoice_chat.core.ownership``).
"""


class InvoiceChatError(Exception):
    """Base class for all service errors."""


class UploadValidationError(InvoiceChatError):
    """An upload was rejected at the boundary (MIME type, size, empty file)."""

    def __init__(self, message: str, too_large: bool = False) -> None:
        super().__init__(message)
        self.too_large = too_large


class CollaboratorError(InvoiceChatError):
    """An external collaborator (OCR engine, language model) failed."""


class OcrEngineError(CollaboratorError):
    """The OCR engine could not recognize the stored image."""


class LLMError(CollaboratorError):
    """The language model call failed, timed out or returned no content."""


class ReportRenderError(InvoiceChatError):
    """The PDF report could not be rendered (missing or undecodable image)."""


class AuthenticationError(InvoiceChatError):
    """Credentials or bearer token are invalid."""


class EmailAlreadyRegisteredError(InvoiceChatError):
    """A user with the requested email already exists."""
