"""Sentry initialization and configuration."""

import os
from typing import Optional

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from docflow import __version__
from docflow.config import Settings
from docflow.errors import AdmissionError, JobNotFound

logger = structlog.get_logger(__name__)


def _before_send(event: dict, hint: dict) -> Optional[dict]:
    """
    Drop expected, user-facing rejections.

    Admission rejections and unknown job ids are normal outcomes, not faults.
    Only store failures and unexpected exceptions should be captured.
    """
    if "exc_info" in hint:
        exc_type, exc_value, tb = hint["exc_info"]
        if isinstance(exc_value, (AdmissionError, JobNotFound)):
            return None

    return event


def init_sentry(settings: Settings, component: str) -> bool:
    """
    Initialize Sentry if DSN is configured.

    Args:
        settings: Application settings
        component: Process role tag ("worker", "janitor")

    Returns True if Sentry was initialized, False otherwise.
    """
    if not settings.sentry_dsn:
        return False

    # Only send ERROR-level logs as Sentry events
    sentry_logging = LoggingIntegration(
        level=None,  # Keep normal log levels
        event_level="ERROR",  # Only ERROR+ become Sentry events
    )

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        release=os.environ.get("GIT_SHA", f"docflow@{__version__}"),
        integrations=[sentry_logging, AsyncioIntegration()],
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
        attach_stacktrace=True,
        before_send=_before_send,
    )

    sentry_sdk.set_tag("service", "docflow")
    sentry_sdk.set_tag("component", component)
    sentry_sdk.set_tag("queue", settings.queue_name)

    logger.info(
        "sentry_initialized",
        environment=settings.sentry_environment,
        component=component,
    )

    return True
