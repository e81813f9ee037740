"""Request schemas for the CFP and fingerprint endpoints."""

from pydantic import BaseModel, Field

from cfp_engine.core.config import MAX_CFP_TIMEOUT_SECONDS
from cfp_engine.services.cfp_orchestrator import CFPOptions
from cfp_engine.services.contracts import BusinessContext, BusinessLocation


class CFPOptionsIn(BaseModel):
    include_fingerprint: bool = True
    require_fingerprint: bool = True
    create_entity: bool = False
    publish: bool = False
    to_production: bool = False
    timeout_seconds: float | None = Field(None, gt=0, le=MAX_CFP_TIMEOUT_SECONDS)

    def to_options(self) -> CFPOptions:
        return CFPOptions(**self.model_dump())


class CFPRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    options: CFPOptionsIn = Field(default_factory=CFPOptionsIn)


class LocationIn(BaseModel):
    city: str | None = None
    state: str | None = None
    country: str | None = None
    address: str | None = None


class FingerprintRequest(BaseModel):
    """Business context to fingerprint directly, without a crawl."""

    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=2048)
    category: str | None = Field(None, max_length=100)
    location: LocationIn | None = None

    def to_context(self) -> BusinessContext:
        location = BusinessLocation(**self.location.model_dump()) if self.location else None
        return BusinessContext(name=self.name.strip(), url=self.url, category=self.category, location=location)
