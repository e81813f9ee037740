"""Business fingerprinter: context -> prompts -> parallel queries -> analysis."""

from __future__ import annotations

import logging
import time

from cfp_engine.analysis.scoring import FingerprintAggregator
from cfp_engine.analysis.types import FingerprintAnalysis
from cfp_engine.gateway.types import DEFAULT_MODELS
from cfp_engine.prompt_engine.generator import PromptGenerator
from cfp_engine.services.contracts import BusinessContext
from cfp_engine.services.parallel_processor import ParallelQueryProcessor

logger = logging.getLogger(__name__)


class BusinessFingerprinter:
    """Run one visibility fingerprint for a business across all models.

    Collaborators are injected; nothing here holds state between runs.
    """

    def __init__(
        self,
        processor: ParallelQueryProcessor,
        prompt_generator: PromptGenerator | None = None,
        aggregator: FingerprintAggregator | None = None,
        models: list[str] | None = None,
    ):
        self.processor = processor
        self.prompt_generator = prompt_generator or PromptGenerator()
        self.aggregator = aggregator or FingerprintAggregator()
        self.models = list(models or DEFAULT_MODELS)

    async def fingerprint(self, context: BusinessContext) -> FingerprintAnalysis:
        start = time.monotonic()
        queries = self.prompt_generator.build_queries(context, self.models)

        logger.info(
            "Starting fingerprint for %s: %d queries across %d models (location=%s, crawl_data=%s)",
            context.name,
            len(queries),
            len(self.models),
            bool(context.location),
            bool(context.crawl_data),
        )

        results = await self.processor.process_queries(queries, context.name)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        return self.aggregator.aggregate(results, context.name, processing_time_ms=elapsed_ms)
