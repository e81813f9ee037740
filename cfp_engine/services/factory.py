"""Wire the production collaborators together from settings.

Every component takes its collaborators in its constructor; this module
is the one place that picks concrete implementations.
"""

from __future__ import annotations

from cfp_engine.analysis.analyzer import ResponseAnalyzer
from cfp_engine.collectors.firecrawl import FirecrawlCrawler
from cfp_engine.core.config import Settings, settings as default_settings
from cfp_engine.gateway.cache import FileResponseCache, ResponseCache
from cfp_engine.gateway.client import OpenRouterClient
from cfp_engine.gateway.types import LlmConfig
from cfp_engine.services.cfp_orchestrator import CfpOrchestrator
from cfp_engine.services.contracts import BusinessRepository, Publisher
from cfp_engine.services.fingerprinter import BusinessFingerprinter
from cfp_engine.services.parallel_processor import ParallelQueryProcessor


def build_response_cache(settings: Settings = default_settings) -> ResponseCache | None:
    if not settings.cache_enabled:
        return None
    return FileResponseCache(settings.llm_cache_path, ttl_seconds=settings.llm_cache_ttl_seconds)


def build_fingerprinter(settings: Settings = default_settings) -> BusinessFingerprinter:
    config = LlmConfig.from_settings(settings)
    client = OpenRouterClient.from_settings(settings, cache=build_response_cache(settings))
    processor = ParallelQueryProcessor(client, ResponseAnalyzer(), config)
    return BusinessFingerprinter(processor, models=config.models)


def build_orchestrator(
    settings: Settings = default_settings,
    repository: BusinessRepository | None = None,
    publisher: Publisher | None = None,
) -> CfpOrchestrator:
    return CfpOrchestrator(
        crawler=FirecrawlCrawler.from_settings(settings),
        fingerprinter=build_fingerprinter(settings),
        publisher=publisher,
        repository=repository,
        settings=settings,
    )
