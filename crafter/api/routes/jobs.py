import logging

from fastapi import APIRouter, Depends

from crafter.api.deps import get_jobs_repo
from crafter.api.models import JobCancelResponse, JobCreateRequest, JobCreateResponse, JobStatusResponse
from crafter.services import jobs as job_service
from crafter.storage.jobs_repo import JobsRepository

router = APIRouter()
logger = logging.getLogger("crafter.api.routes.jobs")


@router.post("", response_model=JobCreateResponse)
async def create_job(  # noqa: B008
  request: JobCreateRequest,
  jobs_repo: JobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> JobCreateResponse:
  """Queue a generate or iterate job."""
  record = await job_service.create_job(jobs_repo, mode=request.mode, job_input=request.input, model=request.model)
  return JobCreateResponse(job_id=record.job_id, status=record.status)


@router.get("/{job_id}", response_model=JobStatusResponse, response_model_exclude_none=True)
async def get_job_status(  # noqa: B008
  job_id: str,
  jobs_repo: JobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> JobStatusResponse:
  """Fetch the status and result of a job."""
  record = await job_service.get_job(jobs_repo, job_id)
  return JobStatusResponse.from_record(record)


@router.post("/{job_id}/cancel", response_model=JobCancelResponse)
async def cancel_job(  # noqa: B008
  job_id: str,
  jobs_repo: JobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> JobCancelResponse:
  """Cancel a job that is still queued."""
  record = await job_service.cancel_job(jobs_repo, job_id)
  return JobCancelResponse(success=True, job_id=record.job_id, status=record.status)
