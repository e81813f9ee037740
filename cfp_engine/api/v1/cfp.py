"""CFP endpoints.

Provides:
  - POST /cfp: run Crawl -> Fingerprint -> (Entity -> Publish) for a URL
  - POST /fingerprint: fingerprint a business context directly
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from cfp_engine.api.deps import get_fingerprinter, get_orchestrator
from cfp_engine.schemas.cfp import CFPRequest, FingerprintRequest
from cfp_engine.services.cfp_orchestrator import CfpOrchestrator
from cfp_engine.services.fingerprinter import BusinessFingerprinter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cfp"])


@router.post("/cfp")
async def run_cfp(
    body: CFPRequest,
    orchestrator: CfpOrchestrator = Depends(get_orchestrator),
):
    """Always 200 with a CFPResult; failures are reported in ``success``/``error``."""
    result = await orchestrator.execute(body.url, body.options.to_options())
    return result.to_dict()


@router.post("/fingerprint")
async def run_fingerprint(
    body: FingerprintRequest,
    include_results: bool = True,
    fingerprinter: BusinessFingerprinter = Depends(get_fingerprinter),
):
    analysis = await fingerprinter.fingerprint(body.to_context())
    return analysis.to_dict(include_results=include_results)
