"""
Scheduler Status API Endpoints

Provides endpoints to monitor background job status and manually trigger jobs.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status

from price_tracker.api.deps import get_scheduler
from price_tracker.core.security import require_admin
from price_tracker.schemas.common import DataResponse, ErrorResponse

router = APIRouter(prefix="/scheduler", tags=["scheduler"], dependencies=[Depends(require_admin)])


@router.get(
    "/status",
    response_model=DataResponse,
    responses={
        200: {"description": "Scheduler status retrieved successfully"},
        500: {"description": "Internal server error", "model": ErrorResponse}
    }
)
async def get_scheduler_status(scheduler=Depends(get_scheduler)):
    """
    Get status of background scheduler and all jobs

    Returns information about:
    - Scheduler state (running/stopped)
    - List of scheduled jobs with next run times
    - Whether an ingestion run is in progress
    """
    if scheduler is None:
        return DataResponse(data={
            "scheduler": {"status": "disabled", "jobs": []},
            "system_health": "degraded",
            "message": "Background processing is disabled"
        })

    try:
        job_status = scheduler.get_job_status()

        return DataResponse(data={
            "scheduler": job_status,
            "system_health": "healthy" if job_status["status"] == "running" else "degraded",
            "message": "Background processing is active" if job_status["status"] == "running" else "Background processing is not running"
        })

    except Exception as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get scheduler status: {str(e)}"
        )


@router.post(
    "/trigger/price-ingestion",
    response_model=DataResponse,
    responses={
        200: {"description": "Job triggered successfully"},
        400: {"description": "Bad request", "model": ErrorResponse},
        500: {"description": "Internal server error", "model": ErrorResponse}
    }
)
async def trigger_price_ingestion_job(scheduler=Depends(get_scheduler)):
    """
    Manually trigger the price ingestion job

    The job runs in the background; its result lands in the job history.
    """
    if scheduler is None:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail="Scheduler not running"
        )

    try:
        result = await scheduler.trigger_price_ingestion_job()

        if result["success"]:
            return DataResponse(data={
                "message": result["message"],
                "triggered_at": "now",
                "estimated_completion": "2-5 minutes"
            })
        else:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail=result["message"]
            )

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to trigger job: {str(e)}"
        )


@router.get(
    "/history",
    response_model=DataResponse,
    responses={
        200: {"description": "Job history retrieved successfully"},
        500: {"description": "Internal server error", "model": ErrorResponse}
    }
)
async def get_job_history(limit: int = 10, scheduler=Depends(get_scheduler)):
    """Recent job executions with success rate and average duration"""
    if scheduler is None:
        return DataResponse(data={"job_history": [], "performance_metrics": None})

    job_history = await scheduler.get_recent_job_logs(limit=limit)

    return DataResponse(data={
        "performance_metrics": {
            "avg_processing_time": sum(log.get('duration_seconds') or 0 for log in job_history) / max(len(job_history), 1),
            "success_rate": sum(1 for log in job_history if log.get('status') == 'success') / max(len(job_history), 1) * 100,
            "total_products_processed": sum(log.get('products_processed') or 0 for log in job_history)
        },
        "job_history": job_history
    })
