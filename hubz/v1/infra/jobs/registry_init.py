"""
Job registry initialization.

Registers the built-in job handlers with a job registry.
"""

import httpx

from hubz.config.logging import get_logger
from hubz.v1.core.registries import EmailSender, JobRegistry
from hubz.v1.infra.jobs.handlers import (
    DataCleanupHandler,
    EmailSendHandler,
    WebhookCallHandler,
)
from hubz.v1.infra.jobs.models import JobType
from hubz.v1.infra.jobs.store import JobStore

logger = get_logger(__name__)


def register_job_handlers(
    registry: JobRegistry,
    *,
    job_store: JobStore,
    email_sender: EmailSender,
    webhook_transport: httpx.AsyncBaseTransport | None = None,
) -> JobRegistry:
    """Register all built-in job handlers with the job registry."""

    logger.info("Registering job handlers")

    registry.register(JobType.EMAIL_SEND.value, EmailSendHandler(email_sender))
    registry.register(JobType.WEBHOOK_CALL.value, WebhookCallHandler(webhook_transport))

    # Maintenance job handlers
    registry.register(JobType.DATA_CLEANUP.value, DataCleanupHandler(job_store))

    logger.info("Job handlers registered", registered_handlers=registry.list())
    return registry
