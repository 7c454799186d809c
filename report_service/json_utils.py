"""
JSON recovery for Gemini model output.

Models are asked for bare JSON but routinely wrap it in markdown code fences
or add a sentence before/after it. Recovery is two plain steps:

  1. direct parse of the fence-stripped, trimmed text
  2. parse of the span between the first '{' and the last '}'

This is a heuristic, not a tokenizer: unbalanced braces inside string
literals can still defeat step 2, and such output is reported as unparseable
together with the raw text.
"""
import json
import re
import logging
from dataclasses import dataclass
from typing import Optional, Union

from .errors import ModelOutputUnparseable

logger = logging.getLogger(__name__)

# Opening or closing fence. A language tag (```json, ```JSON) only counts when it
# is attached to the fence and ends the line; "```Sorry, ..." keeps its words.
# Fences need not be paired; every occurrence is removed.
_FENCE_RE = re.compile(r"```(?:[A-Za-z][\w+-]*(?=[ \t]*(?:\r?\n|$)))?", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedJson:
    value: dict


@dataclass(frozen=True)
class UnparseableOutput:
    raw: str
    reason: str


SanitizeResult = Union[ParsedJson, UnparseableOutput]


def strip_code_fences(text: str) -> str:
    """Remove all markdown fence tokens from text and trim it."""
    return _FENCE_RE.sub("", text or "").strip()


def _loads_object(text: str) -> Optional[dict]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def parse_direct(text: str) -> Optional[dict]:
    """Step 1: parse the whole string as a JSON object."""
    if not text:
        return None
    return _loads_object(text)


def parse_brace_span(text: str) -> Optional[dict]:
    """Step 2: parse the substring from the first '{' to the last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return _loads_object(text[start:end + 1])


def sanitize_model_output(raw_output: Optional[str]) -> SanitizeResult:
    """Recover a JSON object from free-form model output.

    Returns ParsedJson on success, or UnparseableOutput carrying the cleaned
    (fence-stripped, trimmed) text verbatim.
    """
    cleaned = strip_code_fences(raw_output or "")
    if not cleaned:
        return UnparseableOutput(raw=cleaned, reason="Model returned no text")

    parsed = parse_direct(cleaned)
    if parsed is not None:
        return ParsedJson(parsed)

    parsed = parse_brace_span(cleaned)
    if parsed is not None:
        logger.info("Recovered JSON object embedded in surrounding text")
        return ParsedJson(parsed)

    if "{" not in cleaned:
        reason = "Model response contained no JSON object"
    else:
        reason = "Model response JSON could not be parsed"
    return UnparseableOutput(raw=cleaned, reason=reason)


def extract_json(raw_output: Optional[str]) -> dict:
    """Like sanitize_model_output, but raises ModelOutputUnparseable on failure."""
    result = sanitize_model_output(raw_output)
    if isinstance(result, ParsedJson):
        return result.value
    logger.error(f"{result.reason}. Raw text: {result.raw[:500]}")
    raise ModelOutputUnparseable(raw=result.raw, details=result.reason)
