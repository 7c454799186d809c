"""Tests for input resolution and upload staging."""
import asyncio
import io
import os
import threading
from contextlib import AsyncExitStack
from unittest.mock import patch

import pytest

from conftest import StubRecognizer
from report_service.errors import (
    EmptyInput,
    InputTooLarge,
    MissingInput,
    OcrEmptyResult,
)
from report_service.input_resolver import (
    InputResolver,
    copy_upload,
    literal_text,
    release_staged_file,
    staged_upload,
)
from report_service.models import AnalysisRequest, UploadedReport


def make_upload(content=b"\x89PNG fake image", filename="report.png", content_type="image/png"):
    return UploadedReport(filename=filename, content_type=content_type, file=io.BytesIO(content))


def resolve(resolver, request):
    async def _run():
        async with AsyncExitStack() as resources:
            return await resolver.resolve(request, resources)
    return asyncio.run(_run())


class TestLiteralText:

    def test_text_is_trimmed(self):
        assert literal_text(AnalysisRequest(text_input="  Hemoglobin 10.2 (Low)\n")) == "Hemoglobin 10.2 (Low)"

    def test_inner_whitespace_preserved(self):
        text = "WBC 11.2\n\nRBC 4.1"
        assert literal_text(AnalysisRequest(text_input=text)) == text

    def test_nothing_supplied(self):
        with pytest.raises(MissingInput):
            literal_text(AnalysisRequest())

    def test_blank_text_without_file(self):
        with pytest.raises(EmptyInput):
            literal_text(AnalysisRequest(text_input="   \n\t"))

    def test_blank_text_with_file_defers_to_upload(self):
        assert literal_text(AnalysisRequest(text_input="  ", upload=make_upload())) is None

    def test_text_wins_over_file(self):
        request = AnalysisRequest(text_input="CRP 45 mg/L", upload=make_upload())
        assert literal_text(request) == "CRP 45 mg/L"

    def test_text_too_long(self):
        with pytest.raises(InputTooLarge):
            literal_text(AnalysisRequest(text_input="x" * 11), max_length=10)


def stage(upload, upload_dir, max_bytes, body=None):
    """Enter staged_upload, run body(path) inside it, and return the path."""
    async def _run():
        async with staged_upload(upload, upload_dir, max_bytes=max_bytes) as path:
            if body is not None:
                body(path)
        return path
    return asyncio.run(_run())


class TestStagedUpload:

    def test_file_exists_inside_and_removed_after(self, upload_dir):
        seen = {}

        def check(path):
            with open(path, "rb") as fh:
                seen["content"] = fh.read()

        path = stage(make_upload(b"abc"), upload_dir, 100, check)
        assert os.path.dirname(path) == upload_dir
        assert path.endswith(".png")
        assert seen["content"] == b"abc"
        assert not os.path.exists(path)

    def test_removed_when_body_raises(self, upload_dir, staged_files):
        def fail(path):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            stage(make_upload(), upload_dir, 100, fail)
        assert staged_files() == []

    def test_too_large_upload_is_rejected_and_cleaned(self, upload_dir, staged_files):
        with pytest.raises(InputTooLarge):
            stage(make_upload(b"x" * 200), upload_dir, 100)
        assert staged_files() == []

    def test_copy_runs_off_the_event_loop(self, upload_dir):
        loop_threads = []

        class ThreadCheckingFile(io.BytesIO):
            def read(self, *args):
                loop_threads.append(threading.current_thread() is threading.main_thread())
                return super().read(*args)

        upload = UploadedReport("scan.png", "image/png", ThreadCheckingFile(b"abc"))
        stage(upload, upload_dir, 100)
        assert loop_threads
        assert not any(loop_threads)

    def test_copy_upload_counts_bytes(self, tmp_path):
        fd = os.open(tmp_path / "out.bin", os.O_WRONLY | os.O_CREAT)
        assert copy_upload(io.BytesIO(b"x" * 10), fd, max_bytes=10) == 10
        assert (tmp_path / "out.bin").read_bytes() == b"x" * 10

    def test_release_failure_is_swallowed(self, upload_dir):
        with patch("report_service.input_resolver.os.unlink", side_effect=PermissionError("locked")):
            release_staged_file(os.path.join(upload_dir, "whatever.png"))

    def test_release_of_missing_file_is_silent(self, upload_dir):
        release_staged_file(os.path.join(upload_dir, "gone.png"))


class TestInputResolver:

    def test_text_bypasses_ocr(self, upload_dir):
        ocr = StubRecognizer(text="from image")
        resolver = InputResolver(ocr, upload_dir, max_upload_bytes=1024)
        result = resolve(resolver, AnalysisRequest(text_input=" Hemoglobin 10.2 (Low) ", upload=make_upload()))
        assert result == "Hemoglobin 10.2 (Low)"
        assert ocr.calls == []

    def test_upload_is_sent_to_ocr(self, upload_dir, staged_files):
        ocr = StubRecognizer(text="WBC 11.2\nCRP 45")
        resolver = InputResolver(ocr, upload_dir, max_upload_bytes=1024)
        result = resolve(resolver, AnalysisRequest(upload=make_upload(b"imagebytes", filename="../../lab.png")))
        assert result == "WBC 11.2\nCRP 45"
        assert ocr.calls[0]["filename"] == "lab.png"
        assert ocr.calls[0]["content"] == b"imagebytes"
        assert staged_files() == []

    def test_staged_file_removed_when_ocr_fails(self, upload_dir, staged_files):
        ocr = StubRecognizer(error=OcrEmptyResult())
        resolver = InputResolver(ocr, upload_dir, max_upload_bytes=1024)
        with pytest.raises(OcrEmptyResult):
            resolve(resolver, AnalysisRequest(upload=make_upload()))
        assert len(ocr.calls) == 1
        assert staged_files() == []

    def test_non_image_upload_is_forwarded_to_ocr(self, upload_dir, staged_files):
        ocr = StubRecognizer(text="Glucose 5.4 mmol/L")
        resolver = InputResolver(ocr, upload_dir, max_upload_bytes=1024)
        upload = make_upload(b"%PDF-1.4", filename="report.pdf", content_type="application/pdf")
        assert resolve(resolver, AnalysisRequest(upload=upload)) == "Glucose 5.4 mmol/L"
        assert ocr.calls[0]["filename"] == "report.pdf"
        assert ocr.calls[0]["content_type"] == "application/pdf"
        assert ocr.calls[0]["content"] == b"%PDF-1.4"
        assert staged_files() == []

    def test_untyped_upload_is_forwarded_to_ocr(self, upload_dir):
        ocr = StubRecognizer(text="TSH 2.1")
        resolver = InputResolver(ocr, upload_dir, max_upload_bytes=1024)
        upload = make_upload(filename="scan", content_type=None)
        assert resolve(resolver, AnalysisRequest(upload=upload)) == "TSH 2.1"
        assert ocr.calls[0]["content_type"] is None
