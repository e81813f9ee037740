"""Firecrawl crawler: one scrape call with LLM extraction -> CrawlData."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from cfp_engine.core.config import Settings, settings as default_settings
from cfp_engine.core.logging import redact_secrets
from cfp_engine.core.retry import RETRY_CONFIGS, ErrorContext, RetryConfig, with_retry
from cfp_engine.services.contracts import BusinessLocation, CrawlData, CrawlResult

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = (
    "Extract business information from this webpage: the official business name, a short description, "
    "the primary industry, services offered, contact phone and email, and the physical location. "
    "Only extract information that is explicitly stated on the page."
)

EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "businessName": {"type": "string", "description": "Official business name without page title artifacts"},
        "description": {"type": "string", "description": "Business description or value proposition"},
        "industry": {"type": "string", "description": "Primary industry or business category"},
        "services": {"type": "array", "items": {"type": "string"}, "description": "Services or products offered"},
        "phone": {"type": "string", "description": "Primary phone number with area code"},
        "email": {"type": "string", "description": "Primary contact email address"},
        "address": {"type": "string", "description": "Full street address"},
        "city": {"type": "string"},
        "state": {"type": "string", "description": "State or province"},
        "country": {"type": "string"},
    },
    "required": ["businessName"],
}


def parse_extraction(extract: dict[str, Any]) -> CrawlData:
    location = BusinessLocation(
        city=extract.get("city") or None,
        state=extract.get("state") or None,
        country=extract.get("country") or None,
        address=extract.get("address") or None,
    )
    services = extract.get("services") or []
    return CrawlData(
        business_name=(extract.get("businessName") or "").strip() or None,
        description=extract.get("description") or None,
        industry=extract.get("industry") or None,
        services=[str(s).strip() for s in services if str(s).strip()],
        phone=extract.get("phone") or None,
        email=extract.get("email") or None,
        location=location if any((location.city, location.state, location.country, location.address)) else None,
    )


class FirecrawlCrawler:
    """Crawler collaborator backed by the Firecrawl scrape API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.firecrawl.dev",
        timeout: float = 60.0,
        retry_config: RetryConfig = RETRY_CONFIGS["crawl"],
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings = default_settings) -> FirecrawlCrawler:
        return cls(
            api_key=settings.firecrawl_api_key,
            base_url=settings.firecrawl_base_url,
            timeout=settings.firecrawl_timeout,
        )

    async def crawl(self, url: str) -> CrawlResult:
        if not self.api_key:
            return CrawlResult(success=False, error="Firecrawl API key is not configured")

        context = ErrorContext(operation="crawl", url=url)
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        try:
            extract = await with_retry(lambda: self._scrape(url), context, self.retry_config, **kwargs)
        except Exception as e:
            message = redact_secrets(str(e)) or type(e).__name__
            logger.error("Crawl failed for %s: %s", redact_secrets(url), message)
            return CrawlResult(success=False, error=message)

        data = parse_extraction(extract)
        logger.info(
            "Crawled %s: name=%s industry=%s services=%d",
            redact_secrets(url),
            data.business_name,
            data.industry,
            len(data.services),
        )
        return CrawlResult(success=True, data=data)

    async def _scrape(self, url: str) -> dict[str, Any]:
        payload = {
            "url": url,
            "formats": ["extract"],
            "onlyMainContent": True,
            "extract": {"schema": EXTRACTION_SCHEMA, "prompt": EXTRACTION_PROMPT},
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/v1/scrape", json=payload, headers=headers)
        except httpx.TimeoutException:
            raise RuntimeError(f"Firecrawl timeout after {self.timeout:.0f}s")
        except httpx.TransportError as e:
            raise RuntimeError(f"Firecrawl network error: {type(e).__name__}")

        if resp.status_code == 429:
            raise RuntimeError("Firecrawl Rate Limit exceeded (HTTP 429)")
        if resp.status_code >= 400:
            raise RuntimeError(f"Firecrawl request failed (HTTP {resp.status_code})")

        body = resp.json()
        if not body.get("success"):
            raise RuntimeError(f"Firecrawl scrape failed: {body.get('error') or 'unknown error'}")
        extract = (body.get("data") or {}).get("extract")
        if not isinstance(extract, dict):
            raise RuntimeError("Firecrawl returned no extraction data")
        return extract
