"""Shared fixtures and stub clients for the report service tests."""
import os

import pytest

from report_service.config import Settings


class StubRecognizer:
    """Stands in for OcrClient; records what it was asked to read."""

    def __init__(self, text: str = "", error: Exception = None):
        self.text = text
        self.error = error
        self.calls = []

    async def extract_text(self, path, filename, content_type=None):
        with open(path, "rb") as fh:
            content = fh.read()
        self.calls.append({
            "path": path,
            "filename": filename,
            "content_type": content_type,
            "content": content,
        })
        if self.error is not None:
            raise self.error
        return self.text


class StubCompletion:
    """Stands in for the Gemini client; returns canned output."""

    def __init__(self, output: str = "", error: Exception = None):
        self.output = output
        self.error = error
        self.prompts = []
        self.closed = False

    async def complete(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.output

    async def close(self):
        self.closed = True


@pytest.fixture
def upload_dir(tmp_path):
    return str(tmp_path / "uploads")


@pytest.fixture
def settings(upload_dir):
    return Settings(
        gemini_api_key="test-key",
        upload_dir=upload_dir,
        max_upload_bytes=1024,
        max_text_length=500,
        log_json=False,
    )


@pytest.fixture
def staged_files(upload_dir):
    """Return a callable listing files currently staged in the upload dir."""
    def _list():
        if not os.path.isdir(upload_dir):
            return []
        return os.listdir(upload_dir)
    return _list
