"""Sentry error tracking integration.

Initializes Sentry SDK if SENTRY_DSN env variable is set.
Does nothing otherwise, so it is safe to call unconditionally.
"""

import logging

from cfp_engine.core.config import settings
from cfp_engine.core.logging import redact_secrets

logger = logging.getLogger(__name__)


def _scrub_breadcrumb(crumb, hint):
    if crumb.get("message"):
        crumb["message"] = redact_secrets(crumb["message"])
    return crumb


def _scrub_event(event, hint):
    """Redact credentials from exception values, messages and breadcrumbs before they leave the process."""
    for exc in (event.get("exception") or {}).get("values", []):
        if exc.get("value"):
            exc["value"] = redact_secrets(exc["value"])
    if event.get("message"):
        event["message"] = redact_secrets(event["message"])
    logentry = event.get("logentry") or {}
    for field in ("message", "formatted"):
        if logentry.get(field):
            logentry[field] = redact_secrets(logentry[field])
    # logging breadcrumbs are captured before the stdout RedactingFilter runs
    breadcrumbs = event.get("breadcrumbs") or {}
    if isinstance(breadcrumbs, dict):
        breadcrumbs = breadcrumbs.get("values") or []
    for crumb in breadcrumbs:
        _scrub_breadcrumb(crumb, None)
    return event


def init_sentry() -> None:
    """Initialize Sentry if SENTRY_DSN is configured."""
    if not settings.sentry_dsn:
        logger.debug("Sentry DSN not configured, skipping")
        return

    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=0.1 if settings.app_env == "production" else 1.0,
        send_default_pii=False,
        before_send=_scrub_event,
        before_breadcrumb=_scrub_breadcrumb,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            CeleryIntegration(),
        ],
    )
    logger.info("Sentry initialized (env=%s)", settings.app_env)
