"""FastAPI dependencies for the engine's collaborators.

Built once per process; tests swap them via ``app.dependency_overrides``.
"""

from functools import lru_cache

from cfp_engine.services.cfp_orchestrator import CfpOrchestrator
from cfp_engine.services.factory import build_fingerprinter, build_orchestrator
from cfp_engine.services.fingerprinter import BusinessFingerprinter


@lru_cache
def get_orchestrator() -> CfpOrchestrator:
    return build_orchestrator()


@lru_cache
def get_fingerprinter() -> BusinessFingerprinter:
    return build_fingerprinter()
