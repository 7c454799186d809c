"""
Error taxonomy for the report analysis pipeline.

Every failure the pipeline can report is a ReportServiceError subclass with a
stable ``code`` and an HTTP status. The API layer renders them as
ErrorResponse bodies: ``{"error", "code", "details"?, "raw"?}``.
"""
from typing import Optional


class ReportServiceError(Exception):
    """Base class for all reportable pipeline failures."""

    code = "server_error"
    status_code = 500
    message = "Server error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[str] = None,
        raw: Optional[str] = None,
    ):
        self.message = message or self.message
        self.details = details
        self.raw = raw
        super().__init__(self.message)


# --- Caller-side input problems ---

class InvalidRequest(ReportServiceError):
    code = "invalid_request"
    status_code = 400
    message = "Invalid request body"


class MissingInput(ReportServiceError):
    code = "missing_input"
    status_code = 400
    message = "No text or image provided"


class EmptyInput(ReportServiceError):
    code = "empty_input"
    status_code = 400
    message = "text_input is empty"


class InputTooLarge(ReportServiceError):
    code = "input_too_large"
    status_code = 413
    message = "Input exceeds the maximum allowed size"


# --- Upstream failures ---

class UpstreamServiceError(ReportServiceError):
    """Failure reported by (or while reaching) an external service."""

    status_code = 502

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[str] = None,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(message, details=details)
        self.upstream_status = upstream_status


class OcrServiceFailed(UpstreamServiceError):
    code = "ocr_service_failed"
    message = "OCR service failed"


class OcrTimeout(UpstreamServiceError):
    code = "ocr_timeout"
    status_code = 504
    message = "OCR service timed out"


class OcrEmptyResult(ReportServiceError):
    code = "ocr_empty_result"
    status_code = 422
    message = "No text could be recognized in the uploaded file"


class CompletionAuthMissing(ReportServiceError):
    code = "completion_auth_missing"
    status_code = 500
    message = "Completion service API key is not configured"


class CompletionServiceFailed(UpstreamServiceError):
    code = "completion_service_failed"
    message = "Gemini API failed"


class CompletionTimeout(UpstreamServiceError):
    code = "completion_timeout"
    status_code = 504
    message = "Gemini API timed out"


class ModelOutputUnparseable(ReportServiceError):
    code = "model_output_unparseable"
    status_code = 502
    message = "Failed to parse Gemini output as JSON"

    def __init__(self, raw: str, details: Optional[str] = None):
        super().__init__(details=details, raw=raw)


class ServerError(ReportServiceError):
    code = "server_error"
    status_code = 500
    message = "Server error"
