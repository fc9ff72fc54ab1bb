"""Sync job schemas."""

from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobType(str, Enum):
    """What the worker does with an item before fetching."""

    SYNC = "sync"  # Fetch only (refresh already requested, or refund replay)
    TRIGGER = "trigger"  # Request refresh, poll, then fetch


class JobStatus(str, Enum):
    """Job lifecycle. Transitions only move forward."""

    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


REQUIRED_JOB_FIELDS = ("user_id", "item_id", "sync_job_id")


class SyncJob(BaseModel):
    """A row of the ``sync_jobs`` queue table.

    Producer fields are optional here on purpose: a malformed row still
    has to be loaded, claimed and marked failed.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str | None = JobType.SYNC.value
    user_id: str | None = None
    item_id: str | None = None
    sync_job_id: str | None = None
    credit_transaction_id: str | None = None

    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    available_at: datetime | None = None
    last_error: str | None = None
    error_code: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    expires_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return value or JobStatus.QUEUED.value

    @field_validator("attempts", mode="before")
    @classmethod
    def _default_attempts(cls, value):
        return value or 0

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value):
        return value or JobType.SYNC.value

    @field_validator(
        "available_at", "created_at", "updated_at", "started_at",
        "completed_at", "failed_at", "expires_at",
    )
    @classmethod
    def _assume_utc(cls, value: datetime | None):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_refund_replay(self) -> bool:
        return bool(self.credit_transaction_id)

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_JOB_FIELDS if not getattr(self, name)]


# ============================================================================
# API Schemas
# ============================================================================

class EnqueueJobRequest(BaseModel):
    """Producer request to queue a sync job."""

    type: JobType = JobType.TRIGGER
    user_id: str = Field(..., min_length=1)
    item_id: str = Field(..., min_length=1)
    sync_job_id: str = Field(..., min_length=1)
    credit_transaction_id: str | None = None
    available_at: datetime | None = Field(
        None, description="Earliest time the job may be claimed"
    )


class EnqueueJobResponse(BaseModel):
    """Response after queueing a job."""

    job_id: str
    status: JobStatus
    message: str


class SyncJobResponse(BaseModel):
    """Single sync job status."""

    id: str
    type: str | None
    user_id: str | None
    item_id: str | None
    sync_job_id: str | None
    status: JobStatus
    attempts: int
    last_error: str | None
    error_code: str | None
    available_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    failed_at: datetime | None
    created_at: datetime | None


class WebhookEvent(BaseModel):
    """Notification pushed by the aggregator."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    event: str
    id: str | None = None
    item_id: str | None = Field(None, alias="itemId")
    client_user_id: str | None = Field(None, alias="clientUserId")
    event_id: str | None = Field(None, alias="eventId")
