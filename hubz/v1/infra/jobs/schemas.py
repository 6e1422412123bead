"""
Job system Pydantic schemas.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hubz.v1.infra.jobs.models import JobStatus


class JobCreate(BaseModel):
    """Schema for creating a new job."""

    job_type: str = Field(..., description="Job type identifier")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job parameters")
    max_attempts: int | None = Field(
        default=None, ge=1, le=50, description="Override the default retry ceiling"
    )

    @field_validator("job_type")
    @classmethod
    def job_type_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("job_type cannot be empty")
        return value


class JobResponse(BaseModel):
    """Schema for job listings and CLI output."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_type: str
    payload: dict[str, Any]
    status: str
    attempts: int
    max_attempts: int
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime
    executed_at: datetime | None = None


class JobListFilters(BaseModel):
    """Schema for job listing filters."""

    status: JobStatus | None = Field(default=None, description="Filter by job status")
    job_type: str | None = Field(default=None, description="Filter by job type")
    limit: int = Field(default=50, ge=1, le=1000, description="Maximum results to return")
    offset: int = Field(default=0, ge=0, description="Results offset for pagination")


class JobStatsResponse(BaseModel):
    """Schema for job statistics."""

    total_jobs: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    queue_depth: int  # pending + processing
    abandoned: int
