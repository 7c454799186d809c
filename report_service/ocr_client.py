"""
OCR Client - HTTP client for the external image-to-text service.

The service takes a multipart upload (field ``file``) and answers with
``{"tests_raw": ["line 1", "line 2", ...]}``.
"""
import logging
from typing import List, Optional, Protocol

import httpx

from .errors import OcrEmptyResult, OcrServiceFailed, OcrTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
LINES_FIELD = "tests_raw"


class TextRecognizer(Protocol):
    """Submit image bytes, get recognized report text."""

    async def extract_text(self, path: str, filename: str, content_type: Optional[str]) -> str:
        ...


def _lines_from_payload(payload: object) -> List[str]:
    """Pull the recognized lines out of the OCR response; anything malformed is empty."""
    if not isinstance(payload, dict):
        return []
    lines = payload.get(LINES_FIELD)
    if not isinstance(lines, list):
        return []
    return [line for line in lines if isinstance(line, str)]


class OcrClient:
    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def recognize_lines(
        self,
        path: str,
        filename: str,
        content_type: Optional[str] = None,
    ) -> List[str]:
        """Upload the staged file and return the recognized text lines."""
        logger.info(f"Sending {filename} to OCR service")
        try:
            with open(path, "rb") as fh:
                files = {"file": (filename, fh, content_type or "application/octet-stream")}
                response = await self.client.post(self.url, files=files)
        except httpx.TimeoutException as e:
            logger.error(f"OCR request timed out after {self.timeout}s")
            raise OcrTimeout(details=f"No response within {self.timeout:g}s") from e
        except httpx.RequestError as e:
            logger.error(f"OCR connection error: {e}")
            raise OcrServiceFailed(details=f"Connection failed: {e}") from e

        if not response.is_success:
            logger.error(f"OCR failed: {response.status_code} - {response.text[:500]}")
            raise OcrServiceFailed(
                details=response.text,
                upstream_status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"OCR returned non-JSON body: {response.text[:200]}")
            raise OcrServiceFailed(
                details="OCR service returned a non-JSON response",
                upstream_status=response.status_code,
            ) from e

        lines = _lines_from_payload(payload)
        logger.info(f"OCR recognized {len(lines)} lines")
        return lines

    async def extract_text(
        self,
        path: str,
        filename: str,
        content_type: Optional[str] = None,
    ) -> str:
        """Recognize the file and join its lines; fails if nothing was recognized."""
        lines = await self.recognize_lines(path, filename, content_type)
        text = "\n".join(lines)
        if not text.strip():
            raise OcrEmptyResult()
        return text

    async def close(self):
        await self.client.aclose()
