"""OpenRouter chat-completions client.

One ``query`` = one model, one prompt. Transport failures are raised as
``GatewayError`` subclasses whose ``status_code`` carries the HTTP
classification:

  - 401/403       -> GatewayAuthError, never retried
  - 429, 5xx, network errors -> transient, retried through ``RETRY_CONFIGS["llm"]``
  - deadline hit  -> GatewayTimeoutError, abandoned and not retried

``query_parallel`` never lets one failure abort its siblings: it returns
one ``Ok``/``Err`` per input query, index-aligned with the input.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

import httpx

from cfp_engine.core.metrics import LLM_QUERIES, LLM_QUERY_DURATION
from cfp_engine.core.result import Err, Ok, Result
from cfp_engine.core.retry import RETRY_CONFIGS, ErrorContext, RetryConfig, with_retry
from cfp_engine.core.logging import redact_secrets
from cfp_engine.gateway.cache import ResponseCache, cache_key
from cfp_engine.gateway.types import (
    PROMPT_TYPE_TEMPERATURES,
    LlmConfig,
    LlmResponse,
    Query,
    QueryOptions,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class GatewayError(Exception):
    """Raised when a request to the LLM backend fails."""

    def __init__(self, message: str, status_code: int = 0, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable

    @property
    def kind(self) -> str:
        if self.status_code in (401, 403):
            return "auth"
        if self.retryable:
            return "transient"
        return "unknown"


class GatewayAuthError(GatewayError):
    """Credentials missing or rejected. Fatal."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message, status_code=status_code, retryable=False)


class GatewayTimeoutError(GatewayError):
    """The per-request deadline elapsed before the backend answered."""

    def __init__(self, message: str):
        super().__init__(message, status_code=408, retryable=False)


class GatewayResponseError(GatewayError):
    """The backend answered 2xx with a payload we cannot decode."""


class OpenRouterClient:
    """LLM gateway client.

    Usage:
        client = OpenRouterClient(api_key, LlmConfig(), cache=InMemoryResponseCache())
        response = await client.query("openai/gpt-4-turbo", "Tell me about Acme Co")
    """

    def __init__(
        self,
        api_key: str,
        config: LlmConfig | None = None,
        cache: ResponseCache | None = None,
        base_url: str = DEFAULT_BASE_URL,
        referer: str = "",
        title: str = "",
        retry_config: RetryConfig = RETRY_CONFIGS["llm"],
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.config = config or LlmConfig()
        self.cache = cache if self.config.cache_enabled else None
        self.api_url = f"{base_url.rstrip('/')}/chat/completions"
        self.referer = referer
        self.title = title
        self.retry_config = retry_config
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, cache: ResponseCache | None = None) -> OpenRouterClient:
        return cls(
            api_key=settings.openrouter_api_key,
            config=LlmConfig.from_settings(settings),
            cache=cache,
            base_url=settings.openrouter_base_url,
            referer=settings.openrouter_referer,
            title=settings.openrouter_title,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def query(self, model: str, prompt: str, options: QueryOptions | None = None) -> LlmResponse:
        """Send one prompt to one model, serving from the cache when possible."""
        options = options or QueryOptions(temperature=self.config.temperature, max_tokens=self.config.max_tokens)

        if not self.api_key:
            LLM_QUERIES.labels(model=model, outcome="error").inc()
            raise GatewayAuthError("LLM gateway API key is not configured", status_code=0)

        key = cache_key(model, prompt)
        if self.cache is not None:
            hit = self.cache.get(key)
            if hit is not None:
                LLM_QUERIES.labels(model=model, outcome="cached").inc()
                logger.debug("Cache hit for %s (%s)", model, key[:12])
                return replace(hit, cached=True, processing_time_ms=0)

        context = ErrorContext(operation="llm_query", metadata={"model": model})
        start = time.monotonic()
        try:
            response = await with_retry(
                lambda: self._send(model, prompt, options),
                context,
                self.retry_config,
                sleep=self._sleep,
            )
        except Exception:
            LLM_QUERIES.labels(model=model, outcome="error").inc()
            raise
        finally:
            LLM_QUERY_DURATION.labels(model=model).observe(time.monotonic() - start)

        LLM_QUERIES.labels(model=model, outcome="success").inc()
        if self.cache is not None:
            self.cache.set(key, response)
        return response

    async def query_parallel(
        self,
        queries: list[Query],
        max_concurrency: int | None = None,
    ) -> list[Result[LlmResponse]]:
        """Run every query concurrently; one Ok/Err per query, in input order."""
        semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

        async def _run(q: Query) -> LlmResponse:
            options = QueryOptions(
                temperature=q.temperature if q.temperature is not None else PROMPT_TYPE_TEMPERATURES[q.prompt_type],
                max_tokens=q.max_tokens or self.config.max_tokens,
            )
            if semaphore is None:
                return await self.query(q.model, q.prompt, options)
            async with semaphore:
                return await self.query(q.model, q.prompt, options)

        raw = await asyncio.gather(*[_run(q) for q in queries], return_exceptions=True)

        results: list[Result[LlmResponse]] = []
        for q, item in zip(queries, raw):
            if isinstance(item, BaseException):
                if isinstance(item, asyncio.CancelledError):
                    raise item
                reason = redact_secrets(str(item)) or type(item).__name__
                logger.warning("Query to %s (%s) failed: %s", q.model, q.prompt_type.value, reason)
                results.append(Err(reason=reason, exception=item))
            else:
                results.append(Ok(item))
        return results

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        if self.title:
            headers["X-Title"] = self.title
        return headers

    async def _send(self, model: str, prompt: str, options: QueryOptions) -> LlmResponse:
        timeout = options.timeout or self.config.request_timeout
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(self.api_url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            raise GatewayTimeoutError(f"LLM request timed out after {timeout}s") from e
        except httpx.TransportError as e:
            raise GatewayError(f"Network error reaching LLM gateway: {type(e).__name__}", retryable=True) from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        self._raise_for_status(resp, model)

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GatewayResponseError("Malformed completion payload from LLM gateway", status_code=resp.status_code) from e

        usage = data.get("usage") or {}
        tokens_used = usage.get("total_tokens") or (
            usage.get("prompt_tokens", 0) + usage.get("completion_tokens", 0)
        )

        logger.debug("%s answered in %dms (%d tokens)", model, elapsed_ms, tokens_used)
        return LlmResponse(
            content=content,
            tokens_used=int(tokens_used),
            model=model,
            cached=False,
            processing_time_ms=elapsed_ms,
        )

    @staticmethod
    def _raise_for_status(resp: httpx.Response, model: str) -> None:
        status = resp.status_code
        if status < 400:
            return
        if status in (401, 403):
            raise GatewayAuthError(f"Authentication rejected by LLM gateway (HTTP {status})", status_code=status)
        if status == 429:
            raise GatewayError("Rate Limit exceeded (HTTP 429)", status_code=429, retryable=True)
        if status >= 500:
            raise GatewayError(f"LLM gateway server error (HTTP {status})", status_code=status, retryable=True)
        raise GatewayError(f"LLM gateway rejected request (HTTP {status})", status_code=status)
