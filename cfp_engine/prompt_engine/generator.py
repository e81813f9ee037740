"""Customer-style prompt generation for visibility fingerprinting.

Three prompt classes per business:
  - FACTUAL: what the model knows about the business (brand in query)
  - OPINION: the model's assessment of the business (brand in query)
  - RECOMMENDATION: "best X in <city>" (no brand in query) -> who gets recalled

Each class has a small template pool; one template is picked per run.
Industry wording comes from the category / crawl data via a keyword map.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from cfp_engine.gateway.types import DEFAULT_MODELS, PROMPT_TYPE_TEMPERATURES, PromptType, Query
from cfp_engine.services.contracts import BusinessContext

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

FACTUAL_TEMPLATES = (
    "What information do you have about {business_name}{location_context}? Please provide factual details "
    "about their services, reputation, contact information, and any notable characteristics.",
    "Can you tell me about {business_name}{location_context}? I'm looking for factual information about what "
    "they do, their background, and their reputation in the community.",
    "I need information about {business_name}{location_context}. What can you tell me about their services, "
    "experience, and standing in the {industry} industry?",
)

OPINION_TEMPLATES = (
    "I'm considering using the services of {business_name}{location_context}. Based on what you know, would "
    "you say they are a reputable and reliable {business_type}? What's your assessment of their quality and "
    "trustworthiness?",
    "I'm thinking about going to {business_name}{location_context} for {service_context}. Do you think "
    "they're a good choice? What's your opinion on their reputation and service quality?",
    "A friend recommended {business_name}{location_context} to me. What's your take on them? Are they known "
    "for being professional and delivering good results in the {industry} space?",
)

RECOMMENDATION_TEMPLATES = (
    "What are the best {industry_plural}{location_context}? I'm looking for top recommendations for quality "
    "{service_type} providers in the area.",
    "Can you recommend the top 5 {industry_plural}{location_context}? I need reliable options for "
    "{service_context} and want to know who the leading providers are.",
    "I'm looking for the most reputable {industry_plural}{location_context}. Who would you recommend for "
    "someone seeking high-quality {service_type} services?",
)

TEMPLATES: dict[PromptType, tuple[str, ...]] = {
    PromptType.FACTUAL: FACTUAL_TEMPLATES,
    PromptType.OPINION: OPINION_TEMPLATES,
    PromptType.RECOMMENDATION: RECOMMENDATION_TEMPLATES,
}


@dataclass(frozen=True)
class IndustryProfile:
    plural: str
    service: str
    type: str


DEFAULT_INDUSTRY = "default"

INDUSTRY_MAPPINGS: dict[str, IndustryProfile] = {
    # Healthcare & medical
    "healthcare": IndustryProfile("healthcare providers", "medical care", "healthcare provider"),
    "dental": IndustryProfile("dental practices", "dental care", "dental practice"),
    "medical": IndustryProfile("medical practices", "medical services", "medical provider"),
    "veterinary": IndustryProfile("veterinary clinics", "pet care", "veterinary clinic"),
    # Professional services
    "legal": IndustryProfile("law firms", "legal services", "law firm"),
    "accounting": IndustryProfile("accounting firms", "financial services", "accounting firm"),
    "consulting": IndustryProfile("consulting firms", "business consulting", "consulting company"),
    "real estate": IndustryProfile("real estate agencies", "property services", "real estate agency"),
    # Food & hospitality
    "restaurant": IndustryProfile("restaurants", "dining", "restaurant"),
    "cafe": IndustryProfile("cafes", "coffee and food", "cafe"),
    "catering": IndustryProfile("catering companies", "event catering", "catering service"),
    "hotel": IndustryProfile("hotels", "accommodation", "hotel"),
    # Retail & commerce
    "retail": IndustryProfile("retail stores", "shopping", "retail business"),
    "automotive": IndustryProfile("auto services", "vehicle maintenance", "automotive service"),
    "beauty": IndustryProfile("beauty salons", "beauty services", "beauty salon"),
    "fitness": IndustryProfile("fitness centers", "fitness training", "fitness facility"),
    # Technology & trades
    "technology": IndustryProfile("tech companies", "technology solutions", "technology company"),
    "marketing": IndustryProfile("marketing agencies", "marketing services", "marketing agency"),
    "construction": IndustryProfile("construction companies", "construction services", "construction company"),
    "cleaning": IndustryProfile("cleaning services", "cleaning", "cleaning service"),
    "plumbing": IndustryProfile("plumbers", "plumbing", "plumbing company"),
    DEFAULT_INDUSTRY: IndustryProfile("businesses", "professional services", "business"),
}

# keyword -> industry, checked after direct industry-name matches
_CATEGORY_SYNONYMS = (
    (("food", "dining"), "restaurant"),
    (("health", "doctor", "clinic"), "healthcare"),
    (("law", "lawyer", "attorney"), "legal"),
    (("tech", "software"), "technology"),
    (("shop", "store"), "retail"),
    (("plumber",), "plumbing"),
)

_SERVICE_KEYWORDS = (
    "consulting", "design", "development", "marketing", "sales",
    "repair", "maintenance", "installation", "training", "support",
    "care", "treatment", "therapy", "advice", "planning",
)


@dataclass(frozen=True)
class GeneratedPrompts:
    factual: str
    opinion: str
    recommendation: str

    def by_type(self) -> dict[PromptType, str]:
        return {
            PromptType.FACTUAL: self.factual,
            PromptType.OPINION: self.opinion,
            PromptType.RECOMMENDATION: self.recommendation,
        }


def extract_industry(context: BusinessContext) -> str:
    """Industry key for a business: category first, then crawl data, then URL."""
    sources: list[str] = []
    if context.category:
        sources.append(context.category.lower())
    if context.crawl_data:
        crawl = context.crawl_data
        sources.append(" ".join(filter(None, [crawl.industry, crawl.description, *crawl.services])).lower())
    if context.url:
        sources.append(context.url.lower())

    for text in sources:
        if not text:
            continue
        for industry in INDUSTRY_MAPPINGS:
            if industry != DEFAULT_INDUSTRY and industry in text:
                return industry
        for keywords, industry in _CATEGORY_SYNONYMS:
            if any(k in text for k in keywords):
                return industry
    return DEFAULT_INDUSTRY


class PromptGenerator:
    """Fill the template pools from a BusinessContext.

    Pass a seeded ``random.Random`` for reproducible template choice.
    """

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def generate_prompts(self, context: BusinessContext) -> GeneratedPrompts:
        variables = self.build_variables(context)
        return GeneratedPrompts(
            factual=self._render(PromptType.FACTUAL, variables),
            opinion=self._render(PromptType.OPINION, variables),
            recommendation=self._render(PromptType.RECOMMENDATION, variables),
        )

    def build_queries(self, context: BusinessContext, models: list[str] | None = None) -> list[Query]:
        """models x prompt types, grouped by model."""
        prompts = self.generate_prompts(context).by_type()
        return [
            Query(
                model=model,
                prompt=prompt,
                prompt_type=prompt_type,
                temperature=PROMPT_TYPE_TEMPERATURES[prompt_type],
            )
            for model in (models or list(DEFAULT_MODELS))
            for prompt_type, prompt in prompts.items()
        ]

    def build_variables(self, context: BusinessContext) -> dict[str, str]:
        industry = extract_industry(context)
        profile = INDUSTRY_MAPPINGS[industry]
        location = context.location or (context.crawl_data.location if context.crawl_data else None)
        return {
            "business_name": context.name,
            "location_context": location.context_suffix() if location else "",
            "industry": "local business" if industry == DEFAULT_INDUSTRY else industry,
            "industry_plural": profile.plural,
            "business_type": profile.type,
            "service_type": profile.service,
            "service_context": self._service_context(context, profile.service),
        }

    def _render(self, prompt_type: PromptType, variables: dict[str, str]) -> str:
        template = self._rng.choice(TEMPLATES[prompt_type])
        return template.format(**variables)

    @staticmethod
    def _service_context(context: BusinessContext, default_service: str) -> str:
        crawl = context.crawl_data
        if crawl and crawl.services:
            return crawl.services[0].lower()
        if crawl and crawl.description:
            description = crawl.description.lower()
            for keyword in _SERVICE_KEYWORDS:
                if keyword in description:
                    return keyword
        return default_service
