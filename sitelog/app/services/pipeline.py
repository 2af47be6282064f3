"""
Report pipeline orchestration.

Owns the report state machine::

    processing -> completed
    processing -> failed
    failed/completed -> processing   (Regenerate only)

Submit and Regenerate return as soon as the report id is queued. The job
queue runs RunPipeline, which drives analysis, rendering and distribution
and always leaves the report in a terminal state.
"""

import asyncio
import logging
import posixpath
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitelog.app.core.config import Settings, settings as default_settings
from sitelog.app.core.exceptions import (
    ClientInactiveError,
    ClientNotFoundError,
    BlobNotFoundError,
    EmptySubmissionError,
    ReportNotFoundError,
    StorageBackendError,
)
from sitelog.app.db.base import AsyncSessionLocal
from sitelog.app.models.client import Client
from sitelog.app.models.image import Image
from sitelog.app.models.report import Report, ReportStatus
from sitelog.app.models.worker import Worker
from sitelog.app.schemas.analysis import StructuredAnalysis
from sitelog.app.schemas.report import AnalysisInput, PhotoUpload, ReportSubmission
from sitelog.app.services.analysis import AnalysisEngine, get_analysis_engine, parse_hours
from sitelog.app.services.blob_store import BlobStore, get_blob_store
from sitelog.app.services.distributor import Distributor, get_distributor
from sitelog.app.services.images import normalize_photo
from sitelog.app.services.job_queue import ReportJobQueue
from sitelog.app.services.pdf_generator import PDFGenerator, get_pdf_generator
from sitelog.app.services.prompts import resolve_prompt_template
from sitelog.app.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)


class ReportPipeline:
    """
    Submission, regeneration and the analysis/render/distribute run.

    Examples:
        >>> pipeline = get_report_pipeline()
        >>> report = await pipeline.submit(db, submission, photos)
        >>> report.status
        'processing'
        >>> await pipeline.queue.join()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session_factory: async_sessionmaker | None = None,
        blob_store: BlobStore | None = None,
        analysis_engine: AnalysisEngine | None = None,
        pdf_generator: PDFGenerator | None = None,
        distributor: Distributor | None = None,
        queue: ReportJobQueue | None = None,
    ):
        """
        Initialize pipeline.

        Collaborators default to the global instances. The queue defaults to
        one running this pipeline with ``settings.pipeline_workers`` workers.
        """
        self.settings = settings or default_settings
        self.session_factory = session_factory or AsyncSessionLocal
        self.blob_store = blob_store or get_blob_store()
        self.analysis_engine = analysis_engine or get_analysis_engine()
        self.pdf_generator = pdf_generator or get_pdf_generator()
        self.distributor = distributor or get_distributor()
        if queue is None:
            queue = ReportJobQueue(workers=self.settings.pipeline_workers)
        if queue.handler is None:
            queue.handler = self.run_pipeline
        self.queue = queue

    # Submit

    async def _get_accepting_client(self, db: AsyncSession, client_id: str) -> Client:
        client = await db.get(Client, client_id)
        if client is None:
            raise ClientNotFoundError(client_id)
        if not client.active:
            raise ClientInactiveError(client_id)
        return client

    async def _store_photo(self, report_id: str, index: int, photo: PhotoUpload, timestamp: int) -> Image | None:
        """Normalize and upload one photo; None when it cannot be stored."""
        normalized = await asyncio.to_thread(
            normalize_photo,
            photo.data,
            photo.content_type,
            self.settings.image_max_dimension,
            self.settings.image_jpeg_quality,
        )
        key = f"images/{report_id}_{index}_{timestamp}.{normalized.extension}"
        try:
            stored_key = await self.blob_store.upload(key, normalized.data, normalized.mime_type)
        except StorageBackendError as e:
            logger.error(f"[PIPELINE] Failed to store photo {index} ({photo.file_name}) for report {report_id}: {e}")
            return None

        return Image(
            report_id=report_id,
            file_path=stored_key,
            file_name=posixpath.basename(stored_key),
            mime_type=normalized.mime_type,
        )

    async def submit(self, db: AsyncSession, submission: ReportSubmission, photos: list[PhotoUpload]) -> Report:
        """
        Accept a submission and queue it for processing.

        Args:
            db: Database session
            submission: Validated metadata and form fields
            photos: Uploaded photos in display order

        Returns:
            The created report, status ``processing``

        Raises:
            EmptySubmissionError: No photos and no works performed, also when
                every photo upload failed
            ClientNotFoundError: Unknown client
            ClientInactiveError: Client does not accept reports
            StorageConfigurationError: Production without durable storage
        """
        if not photos and not submission.works_performed.strip():
            raise EmptySubmissionError()

        client = await self._get_accepting_client(db, submission.client_id)
        self.blob_store.ensure_writable()

        report = Report(
            client_id=client.id,
            report_date=submission.report_date,
            project_name=submission.project_name,
            form_data=submission.form_data().model_dump(),
            status=ReportStatus.PROCESSING.value,
        )
        db.add(report)
        await db.flush()

        timestamp = int(time.time() * 1000)
        stored = 0
        for index, photo in enumerate(photos):
            image = await self._store_photo(report.id, index, photo, timestamp)
            if image is None:
                continue
            image.image_order = stored
            db.add(image)
            stored += 1

        if stored == 0 and not submission.works_performed.strip():
            await db.rollback()
            logger.error(f"[PIPELINE] No photo could be stored for client {client.id} and no works were described")
            raise EmptySubmissionError()

        await db.commit()
        logger.info(f"[PIPELINE] Created report {report.id} for client {client.id} with {stored}/{len(photos)} photos")

        self.queue.enqueue(report.id)
        return report

    # Regenerate

    async def regenerate(self, db: AsyncSession, report_id: str) -> Report:
        """
        Reset a report to ``processing`` and queue a new run.

        Raises:
            ReportNotFoundError: Unknown report
            ReportBusyError: The report is already queued or running
        """
        report = await db.get(Report, report_id)
        if report is None:
            raise ReportNotFoundError(report_id)

        self.queue.claim(report_id)
        try:
            report.mark_processing()
            await db.commit()
        except Exception:
            self.queue.release(report_id)
            raise

        self.queue.put(report_id)
        logger.info(f"[PIPELINE] Regeneration queued for report {report_id}")
        return report

    # RunPipeline

    async def run_pipeline(self, report_id: str) -> None:
        """
        Analyze, render, store and distribute one report.

        Ends with the report ``completed`` or ``failed``; errors are recorded
        on the report, not raised.
        """
        async with self.session_factory() as db:
            report = await db.get(Report, report_id)
            if report is None:
                logger.error(f"[PIPELINE] Report {report_id} not found, nothing to run")
                return

            try:
                await self._run(db, report)
            except Exception as e:
                logger.error(f"[PIPELINE] Unexpected error for report {report_id}: {e}", exc_info=True)
                await db.rollback()
                report = await db.get(Report, report_id)
                if report is not None:
                    report.mark_failed()
                    await db.commit()

    async def _run(self, db: AsyncSession, report: Report) -> None:
        start_time = time.time()
        client = await db.get(Client, report.client_id)
        if client is None:
            raise ClientNotFoundError(report.client_id)
        tenant = await SettingsStore(db).load_tenant_settings()

        photos, analyzed_images = await self._load_photos(report.images)
        template = resolve_prompt_template(client.ai_prompt_template, tenant.ai_prompt_template)

        logger.info(f"[PIPELINE] Analyzing report {report.id} ({len(photos)}/{len(report.images)} photos readable)")
        try:
            analysis = await self.analysis_engine.analyze(
                AnalysisInput.from_report(report),
                photos,
                template,
                tenant_api_key=tenant.openai_api_key,
            )
        except Exception as e:
            logger.error(f"[PIPELINE] Analysis failed for report {report.id}: {e}")
            report.mark_failed()
            await db.commit()
            return

        self._apply_analysis(report, analysis, analyzed_images)
        await db.commit()

        try:
            pdf_bytes = await self.pdf_generator.render(report, client, report.images, analysis)
            pdf_key = await self.blob_store.upload(f"pdfs/{report.id}.pdf", pdf_bytes, "application/pdf")
        except Exception as e:
            logger.error(f"[PIPELINE] PDF generation failed for report {report.id}: {e}")
            report.mark_failed()
            await db.commit()
            return

        report.mark_completed(pdf_key)
        await db.commit()
        logger.info(f"[PIPELINE] Report {report.id} completed in {time.time() - start_time:.2f}s")

        # Distribution never changes the report's status
        try:
            await self.distributor.distribute(report, client, pdf_bytes, tenant)
        except Exception as e:
            logger.error(f"[PIPELINE] Distribution failed for report {report.id}: {e}", exc_info=True)

    async def _load_photos(self, images: list[Image]) -> tuple[list[bytes], list[Image]]:
        """Bytes of every readable photo, with the images they belong to."""
        photos: list[bytes] = []
        loaded: list[Image] = []
        for image in sorted(images, key=lambda image: image.image_order):
            try:
                photos.append(await self.blob_store.download(image.file_path))
                loaded.append(image)
            except (BlobNotFoundError, StorageBackendError) as e:
                logger.warning(f"[PIPELINE] Skipping unreadable photo {image.file_path}: {e}")
        return photos, loaded

    def _apply_analysis(self, report: Report, analysis: StructuredAnalysis, analyzed_images: list[Image]) -> None:
        """Persist the analysis, photo captions and worker rows."""
        report.ai_analysis = analysis.model_dump(mode="json")

        # Captions index the photos sent to the model, not every stored photo
        for image in report.images:
            image.ai_description = None
        for position, image in enumerate(analyzed_images):
            image.ai_description = analysis.caption_for(position)

        hours = analysis.workforce.total_hours or parse_hours(report.form_data.get("hours_worked"))
        report.workers = [
            Worker(worker_name=name, hours_worked=hours)
            for name in analysis.workforce.worker_names
            if name.strip()
        ]


# Global pipeline instance
_report_pipeline: ReportPipeline | None = None


def get_report_pipeline() -> ReportPipeline:
    """Get or create the report pipeline instance."""
    global _report_pipeline
    if _report_pipeline is None:
        _report_pipeline = ReportPipeline()
    return _report_pipeline
