"""
Custom exceptions for pdfcomposex.

Whole-call failures are raised; per-item failures inside batch operations are
collected as warnings by the caller and never escape the loop.
"""


class PDFComposeXError(Exception):
    """Base exception for all pdfcomposex errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown document pipeline error occurred."


class ValidationError(PDFComposeXError):
    """Raised when user supplied options are invalid."""

    @property
    def default_message(self) -> str:
        return "Invalid pipeline options."


class PageOutOfBoundsError(ValidationError):
    """Raised when a page index or range falls outside the document."""

    @property
    def default_message(self) -> str:
        return "Requested page number is out of bounds."


class UnsupportedMediaError(PDFComposeXError):
    """Raised when a source is neither a known raster nor a PDF."""

    @property
    def default_message(self) -> str:
        return "Unsupported file type."


class DecodeFailure(PDFComposeXError):
    """Raised when a source cannot be decoded."""

    @property
    def default_message(self) -> str:
        return "Failed to decode source."


class InvalidDocumentError(DecodeFailure):
    """Raised when a PDF is corrupted or has no pages."""

    @property
    def default_message(self) -> str:
        return "Invalid or corrupted PDF file."


class EncryptedDocumentError(DecodeFailure):
    """Raised when a PDF is encrypted and cannot be opened."""

    @property
    def default_message(self) -> str:
        return "PDF is password protected. Please unlock it first."


class InvalidRasterError(DecodeFailure):
    """Raised when image bytes cannot be decoded."""

    @property
    def default_message(self) -> str:
        return "Invalid or corrupted image file."


class ResourceUnavailableError(PDFComposeXError):
    """Raised when a required codec or rendering runtime is missing."""

    @property
    def default_message(self) -> str:
        return "A required codec library is not available."


class PipelineError(PDFComposeXError):
    """Raised when a whole call fails (no inputs, nothing succeeded)."""

    @property
    def default_message(self) -> str:
        return "No files processed."


class OperationCancelledError(PDFComposeXError):
    """Raised at the next yield point after cancellation was requested."""

    @property
    def default_message(self) -> str:
        return "Operation cancelled."
