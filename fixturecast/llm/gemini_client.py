"""
Google Gemini API client (forecast oracle).

`generate()` returns a GeminiResult and never raises for transport or API
failures; `generate_structured_content()` is the oracle interface used by the
forecast generator and raises GeminiError when no text came back.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from fixturecast.config import Settings, get_settings
from fixturecast.telemetry import record_llm_request

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


@dataclass
class GeminiResult:
    """Result from a Gemini API call."""

    status: str  # COMPLETED, ERROR, TIMEOUT
    text: str
    tokens_in: int
    tokens_out: int
    exec_ms: int
    model_version: str
    raw_output: dict
    error: Optional[str] = None
    finish_reason: Optional[str] = None  # STOP, MAX_TOKENS, SAFETY, RECITATION, OTHER


class GeminiError(Exception):
    """Error from Gemini API."""

    pass


class GeminiClient:
    """Async client for Google Gemini API."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        settings = settings or get_settings()
        self.api_key = (settings.GEMINI_API_KEY or "").strip()
        self.base_url = settings.GEMINI_BASE_URL.rstrip("/")
        self.model = (settings.forecast_models or [DEFAULT_MODEL])[0]
        self.timeout = settings.GEMINI_TIMEOUT_SECONDS
        self.max_tokens = settings.GEMINI_MAX_TOKENS
        self.temperature = settings.GEMINI_TEMPERATURE
        self.top_p = settings.GEMINI_TOP_P

        self._client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Content-Type": "application/json"},
            )
            self._owns_client = True
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_output: bool = False,
    ) -> GeminiResult:
        """
        Generate text using Gemini API.

        Args:
            prompt: The prompt to send to the model.
            model: Model id (defaults to the first configured forecast model).
            max_tokens: Override default max tokens.
            temperature: Override default temperature.
            json_output: Ask the API for an application/json response body.

        Returns:
            GeminiResult with generated text and metadata.
        """
        if not self.api_key:
            raise GeminiError("GEMINI_API_KEY not configured")

        model = model or self.model
        client = await self._get_client()
        url = f"{self.base_url}/{model}:generateContent?key={self.api_key}"

        generation_config = {
            "maxOutputTokens": max_tokens or self.max_tokens,
            "temperature": temperature if temperature is not None else self.temperature,
            "topP": self.top_p,
        }
        if json_output:
            generation_config["responseMimeType"] = "application/json"

        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

        start_time = time.time()

        try:
            response = await client.post(url, json=payload)
            elapsed_ms = int((time.time() - start_time) * 1000)

            if response.status_code != 200:
                error_text = response.text[:500]
                logger.error(f"Gemini API error {response.status_code} (model={model}): {error_text}")
                return GeminiResult(
                    status="ERROR",
                    text="",
                    tokens_in=0,
                    tokens_out=0,
                    exec_ms=elapsed_ms,
                    model_version=model,
                    raw_output={},
                    error=f"HTTP {response.status_code}: {error_text}",
                )

            data = response.json()

            text, finish_reason = self._extract_text_and_reason(data)
            usage = data.get("usageMetadata", {})

            # Log warning if finish_reason indicates potential truncation
            if finish_reason and finish_reason != "STOP":
                logger.warning(
                    f"Gemini finishReason={finish_reason} (model={model}, "
                    f"tokens_out={usage.get('candidatesTokenCount', 0)}, text_len={len(text)})"
                )

            return GeminiResult(
                status="COMPLETED",
                text=text,
                tokens_in=usage.get("promptTokenCount", 0),
                tokens_out=usage.get("candidatesTokenCount", 0),
                exec_ms=elapsed_ms,
                model_version=data.get("modelVersion", model),
                raw_output=data,
                finish_reason=finish_reason,
            )

        except httpx.TimeoutException:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Gemini API timeout after {elapsed_ms}ms (model={model})")
            return GeminiResult(
                status="TIMEOUT",
                text="",
                tokens_in=0,
                tokens_out=0,
                exec_ms=elapsed_ms,
                model_version=model,
                raw_output={},
                error="Request timed out",
            )
        except Exception as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.exception(f"Gemini API error (model={model}): {e}")
            return GeminiResult(
                status="ERROR",
                text="",
                tokens_in=0,
                tokens_out=0,
                exec_ms=elapsed_ms,
                model_version=model,
                raw_output={},
                error=str(e),
            )

    async def generate_structured_content(self, prompt: str, model_id: str) -> str:
        """
        Oracle call: prompt in, raw response text out.

        Raises GeminiError on API errors, timeouts and empty responses.
        """
        result = await self.generate(prompt, model=model_id, json_output=True)
        if result.status != "COMPLETED":
            record_llm_request(model_id, "error", result.exec_ms)
            raise GeminiError(result.error or result.status)
        if not result.text or not result.text.strip():
            record_llm_request(model_id, "error", result.exec_ms)
            raise GeminiError(f"empty response (finishReason={result.finish_reason})")
        record_llm_request(model_id, "ok", result.exec_ms)
        return result.text

    async def generate_text(self, prompt: str, model_id: str) -> str:
        """Plain-text generation (no JSON mime type), same error contract."""
        result = await self.generate(prompt, model=model_id)
        if result.status != "COMPLETED" or not result.text.strip():
            record_llm_request(model_id, "error", result.exec_ms)
            raise GeminiError(result.error or f"empty response (finishReason={result.finish_reason})")
        record_llm_request(model_id, "ok", result.exec_ms)
        return result.text.strip()

    def _extract_text_and_reason(self, response: dict) -> tuple[str, Optional[str]]:
        """Extract text and finishReason from Gemini response."""
        candidates = response.get("candidates", [])
        if not candidates:
            return "", None

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")

        content = candidate.get("content", {})
        parts = content.get("parts", [])

        if not parts:
            return "", finish_reason

        # Thinking models may split the answer across several parts
        text = "".join(p.get("text", "") for p in parts if not p.get("thought"))
        return text, finish_reason
