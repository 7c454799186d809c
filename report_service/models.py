"""
Request/response models for the report analysis API.
"""
from dataclasses import dataclass
from typing import BinaryIO, Literal, Optional

from pydantic import BaseModel, ConfigDict


# --- Inbound ---

class AnalyzeReportRequest(BaseModel):
    """JSON body accepted by POST /analyze-report."""
    model_config = ConfigDict(extra="ignore")

    text_input: Optional[str] = None


@dataclass
class UploadedReport:
    filename: str
    content_type: Optional[str]
    file: BinaryIO


@dataclass
class AnalysisRequest:
    """Normalized request: literal text and/or an uploaded report image."""
    text_input: Optional[str] = None
    upload: Optional[UploadedReport] = None


# --- Outbound ---

class AnalysisResult(BaseModel):
    input_text: str
    summary: dict
    status: Literal["ok"] = "ok"


class ErrorResponse(BaseModel):
    error: str
    code: str
    details: Optional[str] = None
    raw: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "healthy"
    completion_backend: str
    completion_configured: bool
