"""
Completion Client - sends the analysis prompt to Gemini and returns the raw text.

Two interchangeable backends:
  - GeminiRestClient: plain ``generateContent`` REST call over httpx (default)
  - GeminiSdkClient:  the same call through the google-genai async client

Both return the first candidate's text, or "" when the response has no text,
leaving the "no usable JSON" decision to the response sanitizer.
"""
import asyncio
import logging
from typing import Optional, Protocol

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .config import Settings
from .errors import CompletionAuthMissing, CompletionServiceFailed, CompletionTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class CompletionBackend(Protocol):
    """Submit a prompt, get generated text."""

    async def complete(self, prompt: str) -> str:
        ...

    async def close(self) -> None:
        ...


def extract_candidate_text(data: object) -> str:
    """Return candidates[0].content.parts[0].text, or "" if any step is missing."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""
    return text if isinstance(text, str) else ""


class GeminiRestClient:
    """Gemini generateContent over REST, API key passed as ``key`` query param."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise CompletionAuthMissing()

        logger.info(f"Calling Gemini {self.model} ({len(prompt)} char prompt)")
        try:
            response = await self.client.post(
                self.url,
                params={"key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
            )
        except httpx.TimeoutException as e:
            logger.error(f"Gemini request timed out after {self.timeout}s")
            raise CompletionTimeout(details=f"No response within {self.timeout:g}s") from e
        except httpx.RequestError as e:
            # str(e) can include the request URL, which carries the key
            logger.error(f"Gemini connection error: {type(e).__name__}")
            raise CompletionServiceFailed(details=f"Connection failed: {type(e).__name__}") from e

        if not response.is_success:
            logger.error(f"Gemini HTTP error: {response.status_code} - {response.text[:500]}")
            raise CompletionServiceFailed(
                details=response.text,
                upstream_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            logger.warning("Gemini returned a non-JSON body")
            return ""

        text = extract_candidate_text(data)
        if not text:
            logger.warning("Gemini response had no candidate text")
        return text

    async def close(self) -> None:
        await self.client.aclose()


class GeminiSdkClient:
    """Gemini through the google-genai SDK (async surface)."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[genai.Client] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._client

    async def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise CompletionAuthMissing()

        client = self._get_client()
        logger.info(f"Calling Gemini {self.model} via SDK ({len(prompt)} char prompt)")
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(model=self.model, contents=prompt),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error(f"Gemini SDK call timed out after {self.timeout}s")
            raise CompletionTimeout(details=f"No response within {self.timeout:g}s") from e
        except genai_errors.APIError as e:
            logger.error(f"Gemini SDK error: {e.code} - {e.message}")
            raise CompletionServiceFailed(details=str(e.message or e), upstream_status=e.code) from e
        except httpx.RequestError as e:
            logger.error(f"Gemini connection error: {type(e).__name__}")
            raise CompletionServiceFailed(details=f"Connection failed: {type(e).__name__}") from e

        try:
            text = response.text
        except ValueError:
            text = None
        return text or ""

    async def close(self) -> None:
        if self._client is None:
            return
        # AsyncClient.aclose only exists in newer google-genai releases
        aclose = getattr(self._client.aio, "aclose", None)
        if aclose is not None:
            await aclose()
        self._client = None


def build_completion_client(settings: Settings) -> CompletionBackend:
    if settings.completion_backend == "sdk":
        return GeminiSdkClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout=settings.completion_timeout_seconds,
        )
    return GeminiRestClient(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.completion_timeout_seconds,
    )
