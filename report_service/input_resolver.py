"""
Input resolution: turn an AnalysisRequest into the report text to summarize.

Policy when both are supplied: non-empty text wins and the upload is ignored.
Uploads of any content type are forwarded to OCR; the OCR service decides
whether it can read them. Uploads are staged to a temp file for the lifetime
of the request; the caller owns that lifetime through the AsyncExitStack
passed to resolve().
"""
import asyncio
import logging
import os
import tempfile
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, BinaryIO, Optional

from .errors import EmptyInput, InputTooLarge, MissingInput
from .input_sanitization import sanitize_filename, split_extension
from .models import AnalysisRequest, UploadedReport
from .ocr_client import TextRecognizer

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def literal_text(request: AnalysisRequest, max_length: Optional[int] = None) -> Optional[str]:
    """Return the trimmed literal text, or None when the upload should be used.

    Raises MissingInput / EmptyInput when there is nothing to work with.
    """
    text = (request.text_input or "").strip()
    if text:
        if max_length and len(text) > max_length:
            raise InputTooLarge(details=f"text_input is {len(text)} characters; limit is {max_length}")
        return text

    if request.upload is not None:
        return None
    if request.text_input is not None:
        raise EmptyInput()
    raise MissingInput()


def release_staged_file(path: str) -> None:
    """Delete a staged upload. Failures are logged, never raised."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove staged upload {path}: {e}")


def copy_upload(source: BinaryIO, fd: int, max_bytes: int) -> int:
    """Copy source into the open descriptor fd in chunks; returns bytes written.

    Blocking; callers on the event loop run it in a worker thread.
    """
    size = 0
    with os.fdopen(fd, "wb") as out:
        while True:
            chunk = source.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                raise InputTooLarge(details=f"Upload exceeds {max_bytes} bytes")
            out.write(chunk)
    return size


@asynccontextmanager
async def staged_upload(upload: UploadedReport, upload_dir: str, max_bytes: int) -> AsyncIterator[str]:
    """Copy an upload stream to a temp file and remove it on exit."""
    os.makedirs(upload_dir, exist_ok=True)
    _, ext = split_extension(sanitize_filename(upload.filename))
    fd, path = tempfile.mkstemp(prefix="report_", suffix=ext[:10], dir=upload_dir)
    try:
        size = await asyncio.to_thread(copy_upload, upload.file, fd, max_bytes)
        logger.info(f"Staged upload {upload.filename} ({size} bytes)")
        yield path
    finally:
        release_staged_file(path)


class InputResolver:
    def __init__(
        self,
        recognizer: TextRecognizer,
        upload_dir: str,
        max_upload_bytes: int,
        max_text_length: Optional[int] = None,
    ):
        self.recognizer = recognizer
        self.upload_dir = upload_dir
        self.max_upload_bytes = max_upload_bytes
        self.max_text_length = max_text_length

    async def resolve(self, request: AnalysisRequest, resources: AsyncExitStack) -> str:
        text = literal_text(request, self.max_text_length)
        if text is not None:
            logger.info(f"Using text input ({len(text)} chars)")
            return text

        upload = request.upload
        filename = sanitize_filename(upload.filename)
        path = await resources.enter_async_context(
            staged_upload(upload, self.upload_dir, self.max_upload_bytes)
        )
        return await self.recognizer.extract_text(path, filename, upload.content_type)
