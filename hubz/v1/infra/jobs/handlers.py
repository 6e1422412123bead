"""
Built-in job handlers.

Each handler implements the JobHandler protocol and validates its payload with
a pydantic model; an invalid payload raises and fails the job like any other
handler error.
"""

from datetime import timedelta
from enum import Enum
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from hubz.config.logging import get_logger
from hubz.v1.core.exceptions import WebhookCallError
from hubz.v1.core.registries import EmailSender
from hubz.v1.infra.jobs.store import JobStore, purge_stale_jobs
from hubz.v1.notifications.delivery import OutgoingEmail

logger = get_logger(__name__)

WEBHOOK_TIMEOUT_S = 30.0
WEBHOOK_MAX_SUCCESS_STATUS = 299


class EmailType(str, Enum):
    INVITATION = "invitation"
    PASSWORD_RESET = "password_reset"
    VERIFICATION = "verification"
    WELCOME = "welcome"
    NOTIFICATION = "notification"
    WEEKLY_DIGEST = "weekly_digest"
    DEADLINE_REMINDER = "deadline_reminder"


class EmailJobPayload(BaseModel):
    email_type: EmailType
    to: str = Field(..., min_length=3)
    subject: str = Field(..., min_length=1)
    body: str = ""


class WebhookJobPayload(BaseModel):
    url: str = Field(..., min_length=1)
    body: dict[str, Any] | list[Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)


class DataCleanupPayload(BaseModel):
    cleanup_type: Literal["old_jobs"] = "old_jobs"
    retention_days: int = Field(default=30, ge=1)


class EmailSendHandler:
    """
    Sends one email through the configured backend.

    Payload expected:
    {
        "email_type": "welcome",
        "to": "user@example.com",
        "subject": "Welcome to Hubz",
        "body": "..."
    }
    """

    def __init__(self, sender: EmailSender):
        self.sender = sender

    async def execute(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        data = EmailJobPayload.model_validate(payload)

        await self.sender.send(
            OutgoingEmail(
                to=data.to,
                subject=data.subject,
                body=data.body,
                category=data.email_type.value,
            )
        )

        logger.info("Email job executed", email_type=data.email_type.value, to=data.to)
        return {"email_type": data.email_type.value, "to": data.to}


class WebhookCallHandler:
    """
    POSTs a JSON body to a webhook URL.

    Payload expected:
    {
        "url": "https://example.com/webhook",
        "body": {...},       # optional
        "headers": {...}     # optional
    }
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.transport = transport

    async def execute(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        data = WebhookJobPayload.model_validate(payload)

        logger.info("Sending webhook", url=data.url)

        async with httpx.AsyncClient(
            timeout=WEBHOOK_TIMEOUT_S, transport=self.transport
        ) as client:
            response = await client.post(data.url, json=data.body, headers=data.headers)

        if response.status_code > WEBHOOK_MAX_SUCCESS_STATUS:
            raise WebhookCallError(data.url, response.status_code, response.text[:200])

        logger.info("Webhook sent", url=data.url, status_code=response.status_code)
        return {"status_code": response.status_code}


class DataCleanupHandler:
    """
    Deletes old background jobs.

    Payload expected:
    {
        "cleanup_type": "old_jobs",
        "retention_days": 30
    }
    """

    def __init__(self, job_store: JobStore):
        self.job_store = job_store

    async def execute(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        data = DataCleanupPayload.model_validate(payload)

        logger.info(
            "Running data cleanup",
            cleanup_type=data.cleanup_type,
            retention_days=data.retention_days,
        )

        deleted = await purge_stale_jobs(self.job_store, timedelta(days=data.retention_days))

        logger.info("Data cleanup completed", cleanup_type=data.cleanup_type, deleted=deleted)
        return {"cleanup_type": data.cleanup_type, "deleted": deleted}
