from cfp_engine.models.business import Business
from cfp_engine.models.crawl_job import CrawlJob
from cfp_engine.models.fingerprint import Fingerprint

__all__ = [
    "Business",
    "CrawlJob",
    "Fingerprint",
]
