"""Tests for customer-style prompt generation."""

from __future__ import annotations

import random

from cfp_engine.gateway.types import PromptType
from cfp_engine.prompt_engine.generator import (
    DEFAULT_INDUSTRY,
    PromptGenerator,
    extract_industry,
)
from cfp_engine.services.contracts import BusinessContext, BusinessLocation, CrawlData
from tests.conftest import MODELS


def _context(**overrides) -> BusinessContext:
    values = dict(
        name="Bright Smile Dental",
        url="https://brightsmile.example",
        category="Dental clinic",
        location=BusinessLocation(city="Austin", state="TX"),
    )
    values.update(overrides)
    return BusinessContext(**values)


class TestExtractIndustry:
    def test_category_direct_match(self):
        assert extract_industry(_context()) == "dental"

    def test_category_synonym(self):
        assert extract_industry(_context(category="Software house")) == "technology"

    def test_crawl_data_fallback(self):
        context = _context(category=None, crawl_data=CrawlData(industry="Italian restaurant"))
        assert extract_industry(context) == "restaurant"

    def test_default(self):
        assert extract_industry(_context(category=None)) == DEFAULT_INDUSTRY


class TestPromptGenerator:
    def test_brand_in_factual_and_opinion_only(self):
        prompts = PromptGenerator(random.Random(7)).generate_prompts(_context())
        assert "Bright Smile Dental" in prompts.factual
        assert "Bright Smile Dental" in prompts.opinion
        assert "Bright Smile Dental" not in prompts.recommendation
        assert "dental practices in Austin, TX" in prompts.recommendation

    def test_no_location_leaves_no_placeholder(self):
        prompts = PromptGenerator(random.Random(1)).generate_prompts(_context(location=None))
        for text in prompts.by_type().values():
            assert "{" not in text
            assert " in ," not in text

    def test_location_from_crawl_data(self):
        context = _context(location=None, crawl_data=CrawlData(location=BusinessLocation(city="Denver")))
        prompts = PromptGenerator(random.Random(3)).generate_prompts(context)
        assert "in Denver" in prompts.recommendation

    def test_seeded_choice_is_reproducible(self):
        a = PromptGenerator(random.Random(42)).generate_prompts(_context())
        b = PromptGenerator(random.Random(42)).generate_prompts(_context())
        assert a == b

    def test_service_context_from_crawl_services(self):
        context = _context(crawl_data=CrawlData(services=["Teeth Whitening", "Implants"]))
        variables = PromptGenerator().build_variables(context)
        assert variables["service_context"] == "teeth whitening"

    def test_default_industry_wording(self):
        variables = PromptGenerator().build_variables(_context(category=None))
        assert variables["industry"] == "local business"
        assert variables["industry_plural"] == "businesses"

    def test_build_queries_grouped_by_model(self):
        queries = PromptGenerator(random.Random(0)).build_queries(_context(), MODELS)

        assert len(queries) == len(MODELS) * 3
        assert [q.model for q in queries[:3]] == [MODELS[0]] * 3
        assert [q.prompt_type for q in queries[:3]] == [
            PromptType.FACTUAL,
            PromptType.OPINION,
            PromptType.RECOMMENDATION,
        ]
        assert [q.temperature for q in queries[:3]] == [0.3, 0.5, 0.7]
        # same prompt text for every model within one run
        assert queries[0].prompt == queries[3].prompt == queries[6].prompt
