"""
Lab Report Relay - FastAPI Backend

Turns a lab report (pasted text or a photo) into a plain-language JSON summary:
  - Uploaded files (photos, scans) go through the external OCR service first
  - Report text is summarized by Gemini with a fixed prompt
  - Model output is cleaned of code fences and parsed as JSON
"""
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from . import __version__
from .completion_client import CompletionBackend, build_completion_client
from .config import Settings, load_settings
from .errors import InvalidRequest, ReportServiceError, ServerError
from .models import (
    AnalysisRequest,
    AnalysisResult,
    AnalyzeReportRequest,
    ErrorResponse,
    HealthResponse,
    UploadedReport,
)
from .ocr_client import OcrClient, TextRecognizer
from .orchestrator import ReportOrchestrator
from .structured_logging import log_event, log_request, set_request_id, setup_logging

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = {"multipart/form-data", "application/x-www-form-urlencoded"}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing, empty or malformed input"},
    413: {"model": ErrorResponse, "description": "Input too large"},
    422: {"model": ErrorResponse, "description": "OCR recognized no text"},
    500: {"model": ErrorResponse, "description": "Server or configuration error"},
    502: {"model": ErrorResponse, "description": "OCR or Gemini failed, or unparseable model output"},
    504: {"model": ErrorResponse, "description": "OCR or Gemini timed out"},
}


def error_response(exc: ReportServiceError, headers: Optional[dict] = None) -> JSONResponse:
    body = ErrorResponse(error=exc.message, code=exc.code, details=exc.details, raw=exc.raw)
    return JSONResponse(body.model_dump(exclude_none=True), status_code=exc.status_code, headers=headers)


def _content_type(request: Request) -> str:
    return request.headers.get("content-type", "").split(";")[0].strip().lower()


def _client_ip(request: Request) -> Optional[str]:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


async def read_form(request: Request) -> FormData:
    """Parse a multipart / urlencoded body; a malformed body is an InvalidRequest."""
    try:
        return await request.form()
    except StarletteHTTPException as e:
        raise InvalidRequest(details=str(e.detail))
    except MultiPartException as e:
        raise InvalidRequest(details=e.message)


def request_from_form(form: FormData) -> AnalysisRequest:
    """Build an AnalysisRequest from multipart / urlencoded form fields."""
    text_input = form.get("text_input")
    if not isinstance(text_input, str):
        text_input = None

    upload = form.get("file")
    report = None
    # Browsers submit an empty, unnamed part when no file was chosen
    if isinstance(upload, UploadFile) and (upload.filename or upload.size):
        report = UploadedReport(
            filename=upload.filename or "",
            content_type=upload.content_type,
            file=upload.file,
        )
    return AnalysisRequest(text_input=text_input, upload=report)


async def request_from_body(request: Request) -> AnalysisRequest:
    """Build an AnalysisRequest from a JSON body (or an empty body)."""
    body = await request.body()
    if not body.strip():
        return AnalysisRequest()

    content_type = _content_type(request)
    if content_type and content_type != "application/json" and not content_type.endswith("+json"):
        raise InvalidRequest(details=f"Unsupported content type: {content_type}")

    try:
        payload = json.loads(body)
    except ValueError:
        raise InvalidRequest(details="Malformed JSON body")

    try:
        parsed = AnalyzeReportRequest.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequest(details=str(e.errors()[0].get("msg", "Invalid request")))
    return AnalysisRequest(text_input=parsed.text_input)


def create_app(
    settings: Optional[Settings] = None,
    recognizer: Optional[TextRecognizer] = None,
    completion: Optional[CompletionBackend] = None,
) -> FastAPI:
    """Build the ASGI app. Clients default to the real OCR / Gemini clients."""
    settings = settings or load_settings()
    recognizer = recognizer or OcrClient(settings.ocr_url, timeout=settings.ocr_timeout_seconds)
    completion = completion or build_completion_client(settings)
    orchestrator = ReportOrchestrator(settings, recognizer, completion)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(level=settings.log_level, use_json=settings.log_json)
        log_event(
            logger,
            logging.INFO,
            "Starting Lab Report Relay",
            version=__version__,
            ocr_url=settings.ocr_url,
            completion_backend=settings.completion_backend,
            model=settings.gemini_model,
        )
        if not settings.completion_configured:
            logger.warning("GEMINI_API_KEY is not set; /analyze-report will fail until it is configured")
        yield
        logger.info("Shutting down...")
        for client in (recognizer, completion):
            close = getattr(client, "close", None)
            if close is not None:
                await close()

    app = FastAPI(
        title="Lab Report Relay",
        description="OCR + Gemini lab report summarization API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        """Request ID tracking and access logging, including for unhandled errors."""
        start_time = time.time()
        request_id = set_request_id(request.headers.get("X-Request-ID"))

        try:
            response = await call_next(request)
        except Exception:
            log_event(logger, logging.ERROR, "Unhandled error", exc_info=True, path=request.url.path)
            request.state.error_code = ServerError.code
            response = error_response(ServerError())

        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=(time.time() - start_time) * 1000,
            client_ip=_client_ip(request),
            error_code=getattr(request.state, "error_code", None),
        )

        response.headers["X-Request-ID"] = request_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=not settings.allow_any_origin,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    @app.exception_handler(ReportServiceError)
    async def report_error_handler(request: Request, exc: ReportServiceError):
        request.state.error_code = exc.code
        return error_response(exc)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(
            completion_backend=settings.completion_backend,
            completion_configured=settings.completion_configured,
        )

    @app.post("/analyze-report", response_model=AnalysisResult, responses=ERROR_RESPONSES)
    async def analyze_report(request: Request):
        """Summarize a lab report given as text_input (JSON or form) or an uploaded file."""
        if _content_type(request) in FORM_CONTENT_TYPES:
            form = await read_form(request)
            try:
                return await orchestrator.analyze(request_from_form(form))
            finally:
                await form.close()

        analysis_request = await request_from_body(request)
        return await orchestrator.analyze(analysis_request)

    return app


app = create_app()


def run():
    import uvicorn
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
