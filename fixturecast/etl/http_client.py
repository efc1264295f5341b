"""HTTP fetch for provider feeds: httpx GET wrapped in a RetryPolicy."""

import logging
import time
from typing import Any, Optional

import httpx

from fixturecast.telemetry import record_provider_error, record_provider_request
from fixturecast.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


class ProviderHTTPError(RuntimeError):
    """Non-retryable provider failure (4xx other than 429, unreadable body)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientProviderError(RuntimeError):
    """Timeout, transport failure, 429 or 5xx. Retried by the policy."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderHTTPClient:
    """
    GET-and-decode client for one provider.

    Every call is run through the provider's RetryPolicy: transient errors are
    retried with backoff, and the error from the final attempt is raised.
    Non-retryable errors are raised on the first attempt.
    """

    def __init__(
        self,
        provider: str,
        policy: RetryPolicy,
        headers: Optional[dict] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.provider = provider
        self.policy = policy
        self.headers = headers or {}
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=policy.timeout)

    async def get_json(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> Any:
        """Fetch url and return the decoded JSON body."""
        merged_headers = {**self.headers, **(headers or {})}

        async def attempt() -> Any:
            return await self._get_once(url, params, merged_headers)

        return await self.policy.run(
            attempt,
            retry_on=(TransientProviderError,),
            label=f"{self.provider} GET",
        )

    async def _get_once(self, url: str, params: Optional[dict], headers: dict) -> Any:
        start_time = time.time()
        try:
            response = await self.client.get(url, params=params, headers=headers, timeout=self.policy.timeout)
        except httpx.TimeoutException as e:
            latency_ms = (time.time() - start_time) * 1000
            record_provider_request(self.provider, 0, latency_ms)
            record_provider_error(self.provider, "timeout")
            raise TransientProviderError(f"timeout: {e}") from e
        except httpx.TransportError as e:
            latency_ms = (time.time() - start_time) * 1000
            record_provider_request(self.provider, 0, latency_ms)
            record_provider_error(self.provider, "transport")
            raise TransientProviderError(f"transport error: {e}") from e

        latency_ms = (time.time() - start_time) * 1000
        status = response.status_code
        record_provider_request(self.provider, status, latency_ms)

        if status == 429:
            record_provider_error(self.provider, "rate_limit")
            raise TransientProviderError("rate limited (429)", status_code=status)
        if status >= 500:
            record_provider_error(self.provider, "http_5xx")
            raise TransientProviderError(f"HTTP {status}", status_code=status)
        if status >= 400:
            record_provider_error(self.provider, "http_4xx")
            raise ProviderHTTPError(f"HTTP {status}", status_code=status)

        try:
            return response.json()
        except ValueError as e:
            record_provider_error(self.provider, "invalid_json")
            raise ProviderHTTPError(f"invalid JSON body: {e}", status_code=status) from e

    async def close(self) -> None:
        """Close the HTTP client (only when this instance created it)."""
        if self._owns_client:
            await self.client.aclose()
