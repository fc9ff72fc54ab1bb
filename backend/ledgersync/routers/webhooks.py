"""Webhooks router - aggregator notifications."""

from datetime import datetime, timezone
from fastapi import APIRouter, BackgroundTasks, Depends

from ledgersync.dependencies import get_job_queue, verify_worker_secret
from ledgersync.logging_config import get_logger
from ledgersync.schemas.sync import JobType, WebhookEvent
from ledgersync.services.job_queue import JobQueue
from ledgersync.worker import run_sync_job


logger = get_logger("webhooks")

router = APIRouter(
    prefix="/webhooks",
    tags=["Webhooks"],
    dependencies=[Depends(verify_worker_secret)],
)

ITEM_UPDATED = "item/updated"


@router.post("/pluggy")
async def pluggy_webhook(
    event: WebhookEvent,
    background_tasks: BackgroundTasks,
    queue: JobQueue = Depends(get_job_queue),
):
    """
    Receive a Pluggy notification.

    ``item/updated`` means the aggregator already holds fresh data, so a
    fetch-only sync job is queued. Every other event is acknowledged and
    ignored. Dropped events are still answered with 200 so the
    aggregator does not keep retrying them.
    """
    if event.event != ITEM_UPDATED:
        logger.info(f"Ignoring webhook event {event.event}")
        return {"received": True, "queued": False}

    if not event.item_id or not event.client_user_id:
        logger.warning(f"Webhook {event.event} without itemId/clientUserId, dropping")
        return {"received": True, "queued": False}

    sync_job_id = event.event_id or (
        f"webhook-{event.item_id}-{int(datetime.now(timezone.utc).timestamp())}"
    )
    job = queue.enqueue(
        JobType.SYNC,
        user_id=event.client_user_id,
        item_id=event.item_id,
        sync_job_id=sync_job_id,
    )
    background_tasks.add_task(run_sync_job, job.id)

    return {"received": True, "queued": True, "job_id": job.id}
