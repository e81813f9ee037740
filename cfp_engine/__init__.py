"""AI visibility fingerprinting and Crawl -> Fingerprint -> Publish orchestration."""

__version__ = "1.0.0"
