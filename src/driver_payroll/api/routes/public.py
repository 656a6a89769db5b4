"""Driver-facing submission endpoint."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from driver_payroll.api.dependencies import DriverActor, Submissions
from driver_payroll.api.schemas import (
    DuplicateConflictResponse,
    ErrorResponse,
    LogEntryResponse,
    LogSubmissionRequest,
    SubmissionResponse,
)
from driver_payroll.services.submission_service import SubmissionOutcome

router = APIRouter(prefix="/public", tags=["public"])


@router.post(
    "/logs",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"model": SubmissionResponse},
        404: {"model": ErrorResponse},
        409: {"model": DuplicateConflictResponse},
        422: {"model": ErrorResponse},
    },
)
async def submit_log(
    payload: LogSubmissionRequest,
    submissions: Submissions,
    actor: DriverActor,
) -> SubmissionResponse | JSONResponse:
    """Submit a daily log.

    A collision with an existing entry for the same driver, truck and date
    returns 409 with the existing entry unless ``action`` is ``replace`` or
    ``merge``.
    """
    result = await submissions.submit(payload.to_submission(), actor, payload.action)

    if result.outcome == SubmissionOutcome.DUPLICATE_CONFLICT:
        conflict = DuplicateConflictResponse(
            outcome=result.outcome.value,
            detail="An entry already exists for this driver, truck and date",
            existing=result.conflict_details(),
        )
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=conflict.model_dump(mode="json"),
        )

    response = SubmissionResponse(
        outcome=result.outcome.value,
        entry=LogEntryResponse.from_entry(result.entry),
    )
    if result.outcome != SubmissionOutcome.CREATED:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=response.model_dump(mode="json"),
        )
    return response
