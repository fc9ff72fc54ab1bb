"""Sync router - queue and monitor sync jobs."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from ledgersync.dependencies import get_job_queue, verify_worker_secret
from ledgersync.schemas.sync import EnqueueJobRequest, EnqueueJobResponse, SyncJobResponse, SyncJob
from ledgersync.services.job_queue import JobQueue
from ledgersync.worker import run_sync_job


router = APIRouter(
    prefix="/sync",
    tags=["Sync"],
    dependencies=[Depends(verify_worker_secret)],
)


@router.post("/jobs", response_model=EnqueueJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_sync_job(
    request: EnqueueJobRequest,
    background_tasks: BackgroundTasks,
    queue: JobQueue = Depends(get_job_queue),
):
    """Queue a sync job and hand it to a background worker.

    Jobs with a future ``available_at`` are left for the queue sweep.
    """
    job = queue.enqueue(
        request.type,
        user_id=request.user_id,
        item_id=request.item_id,
        sync_job_id=request.sync_job_id,
        credit_transaction_id=request.credit_transaction_id,
        available_at=request.available_at,
    )
    if request.available_at is None:
        background_tasks.add_task(run_sync_job, job.id)
        message = "Sync job queued"
    else:
        message = f"Sync job scheduled for {request.available_at.isoformat()}"

    return EnqueueJobResponse(job_id=job.id, status=job.status, message=message)


@router.get("/jobs/{job_id}", response_model=SyncJobResponse)
async def get_sync_job(
    job_id: str,
    queue: JobQueue = Depends(get_job_queue),
):
    """Get a single sync job."""
    row = queue.db.get_sync_job_by_id(job_id)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Sync job not found",
        )

    job = SyncJob.model_validate(row)
    return SyncJobResponse(**job.model_dump(include=set(SyncJobResponse.model_fields)))
