"""Report submission, regeneration and status API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from sitelog.app.db.base import get_db
from sitelog.app.models.report import Report, ReportStatus
from sitelog.app.schemas.report import (
    PhotoUpload,
    RegenerateResponse,
    ReportResponse,
    ReportSubmission,
    SubmitResponse,
)
from sitelog.app.services.blob_store import BlobStore, get_blob_store
from sitelog.app.services.pipeline import ReportPipeline, get_report_pipeline

router = APIRouter(prefix="/reports", tags=["reports"])
logger = logging.getLogger(__name__)


async def _read_submission(request: Request) -> tuple[ReportSubmission, list[PhotoUpload]]:
    """Split a multipart submission into the ``data`` JSON part and photo parts."""
    form = await request.form()

    raw_data = form.get("data")
    if not isinstance(raw_data, str):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Multipart field 'data' with the report JSON is required",
        )
    try:
        submission = ReportSubmission.model_validate_json(raw_data)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )

    photos = []
    for _field, value in form.multi_items():
        if isinstance(value, UploadFile):
            data = await value.read()
            if not data:
                continue
            photos.append(PhotoUpload(
                data=data,
                file_name=value.filename or "photo.jpg",
                content_type=value.content_type or "image/jpeg",
            ))
    return submission, photos


@router.post("/submit", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_report(
    request: Request,
    db: AsyncSession = Depends(get_db),
    pipeline: ReportPipeline = Depends(get_report_pipeline),
) -> SubmitResponse:
    """
    Accept a daily report submission.

    Multipart body: a ``data`` part with the report JSON and any number of
    photo parts. Returns once the report is queued; poll
    ``GET /api/reports/{id}`` for the outcome.
    """
    submission, photos = await _read_submission(request)
    logger.info(f"[SUBMIT] Report for client {submission.client_id}, project '{submission.project_name}', {len(photos)} photos")

    report = await pipeline.submit(db, submission, photos)
    return SubmitResponse(report_id=report.id)


@router.post("/{report_id}/regenerate", response_model=RegenerateResponse, status_code=status.HTTP_202_ACCEPTED)
async def regenerate_report(
    report_id: str,
    db: AsyncSession = Depends(get_db),
    pipeline: ReportPipeline = Depends(get_report_pipeline),
) -> RegenerateResponse:
    """Re-run analysis, rendering and distribution for an existing report."""
    report = await pipeline.regenerate(db, report_id)
    return RegenerateResponse(report_id=report.id, status=report.status)


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: str,
    db: AsyncSession = Depends(get_db),
) -> ReportResponse:
    """Report status and results, for polling."""
    report = await db.get(Report, report_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return ReportResponse.model_validate(report)


@router.get("/{report_id}/pdf")
async def download_report_pdf(
    report_id: str,
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
) -> Response:
    """Download the rendered PDF of a completed report."""
    report = await db.get(Report, report_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    if report.status != ReportStatus.COMPLETED.value or not report.pdf_path:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Report PDF is not available (status: {report.status})",
        )

    pdf_bytes = await blob_store.download(report.pdf_path)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=report-{report.id[:8]}.pdf"},
    )
