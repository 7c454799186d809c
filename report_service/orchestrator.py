"""
Report Orchestrator - runs one analysis request end to end.

    input text / OCR  ->  prompt  ->  Gemini  ->  JSON recovery

Each stage raises a typed ReportServiceError; nothing is retried and no
partial result is ever returned. Anything unexpected becomes ServerError.
"""
import logging
import time
from contextlib import AsyncExitStack

from .completion_client import CompletionBackend
from .config import Settings
from .errors import ReportServiceError, ServerError
from .input_resolver import InputResolver
from .json_utils import extract_json
from .models import AnalysisRequest, AnalysisResult
from .ocr_client import TextRecognizer
from .prompts import build_analysis_prompt
from .structured_logging import error_fields, log_event

logger = logging.getLogger(__name__)


class ReportOrchestrator:
    def __init__(
        self,
        settings: Settings,
        recognizer: TextRecognizer,
        completion: CompletionBackend,
    ):
        self.settings = settings
        self.completion = completion
        self.resolver = InputResolver(
            recognizer,
            upload_dir=settings.upload_dir,
            max_upload_bytes=settings.max_upload_bytes,
            max_text_length=settings.max_text_length,
        )

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        start_time = time.time()
        try:
            async with AsyncExitStack() as resources:
                input_text = await self.resolver.resolve(request, resources)

                prompt = build_analysis_prompt(input_text)
                raw_output = await self.completion.complete(prompt)
                summary = extract_json(raw_output)
        except ReportServiceError as e:
            logger.warning("analyze-report failed", extra=error_fields(e))
            raise
        except Exception as e:
            logger.exception("analyze-report crashed")
            raise ServerError(details=type(e).__name__) from e

        log_event(
            logger,
            logging.INFO,
            "analyze-report completed",
            source="text" if (request.text_input or "").strip() else "upload",
            input_chars=len(input_text),
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return AnalysisResult(input_text=input_text, summary=summary)
