"""
PDF report generation.

Composes a single self-contained HTML document (photos and logo inlined as
base64 data URLs) and converts it to an A4 PDF with a headless engine:
WeasyPrint in a worker thread, or headless Chromium as a subprocess.
"""

import asyncio
import base64
import logging
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from html import escape
from pathlib import Path

import aiofiles

from sitelog.app.core.config import Settings, settings as default_settings
from sitelog.app.core.exceptions import (
    RenderEngineUnavailableError,
    RenderError,
    RenderTimeoutError,
    BlobNotFoundError,
    StorageBackendError,
)
from sitelog.app.models.client import Client
from sitelog.app.models.image import Image
from sitelog.app.models.report import Report, ReportStatus
from sitelog.app.schemas.analysis import StructuredAnalysis, StructuredIncident, TextIncident
from sitelog.app.services.blob_store import BlobStore, get_blob_store
from sitelog.app.services.images import sniff_mime

logger = logging.getLogger(__name__)

CHROMIUM_CANDIDATES = ("chromium", "chromium-browser", "google-chrome", "google-chrome-stable")


@dataclass
class RenderImage:
    """Photo slot in the document; an empty ``data_url`` renders an empty slot."""

    data_url: str
    caption: str | None


def to_data_url(data: bytes) -> str:
    return f"data:{sniff_mime(data)};base64,{base64.b64encode(data).decode('ascii')}"


def get_report_css(brand_color: str) -> str:
    """CSS for the PDF report: A4, fixed margins, backgrounds printed."""
    return f"""
    @page {{
        size: A4;
        margin: 20mm 15mm;
    }}
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    html {{
        -webkit-print-color-adjust: exact;
        print-color-adjust: exact;
    }}
    body {{
        font-family: Arial, Helvetica, sans-serif;
        font-size: 11pt;
        line-height: 1.6;
        color: #333;
    }}
    .header {{
        text-align: center;
        padding: 20px 0;
        border-bottom: 3px solid {brand_color};
        margin-bottom: 30px;
    }}
    .logo {{ height: 60px; margin-bottom: 10px; }}
    .company-name {{ font-size: 24pt; font-weight: bold; color: {brand_color}; margin-bottom: 5px; }}
    .report-title {{ font-size: 18pt; color: #666; }}
    .metadata {{
        display: table;
        width: 100%;
        table-layout: fixed;
        margin-bottom: 30px;
        padding: 20px;
        background: #f5f5f5;
        border-radius: 8px;
    }}
    .metadata-item {{ display: table-cell; text-align: center; }}
    .metadata-label {{
        font-size: 9pt;
        color: #666;
        text-transform: uppercase;
        letter-spacing: 0.5px;
        margin-bottom: 5px;
    }}
    .metadata-value {{ font-size: 13pt; font-weight: bold; }}
    .section {{ margin-bottom: 25px; page-break-inside: avoid; }}
    .section-title {{
        font-size: 14pt;
        font-weight: bold;
        color: {brand_color};
        margin-bottom: 12px;
        padding-bottom: 8px;
        border-bottom: 2px solid {brand_color};
    }}
    .subsection-title {{ font-size: 12pt; font-weight: bold; margin: 15px 0 8px 0; }}
    .field-value {{ white-space: pre-wrap; }}
    .stats-grid {{
        display: table;
        width: 100%;
        table-layout: fixed;
        padding: 15px;
        background: #f9f9f9;
        border-radius: 6px;
        margin: 15px 0;
    }}
    .stat-box {{ display: table-cell; text-align: center; }}
    .stat-value {{ font-size: 24pt; font-weight: bold; color: {brand_color}; }}
    .stat-label {{ font-size: 9pt; color: #666; margin-top: 5px; }}
    ul {{ margin-left: 20px; margin-top: 8px; }}
    li {{ margin-bottom: 5px; }}
    .materials-table {{ width: 100%; border-collapse: collapse; margin-top: 10px; }}
    .materials-table th {{
        background: #f5f5f5;
        padding: 10px;
        text-align: left;
        font-size: 9pt;
        text-transform: uppercase;
        border-bottom: 2px solid {brand_color};
    }}
    .materials-table td {{ padding: 10px; border-bottom: 1px solid #e0e0e0; }}
    .image-container {{
        display: inline-block;
        width: 48%;
        margin: 0 1% 15px 0;
        vertical-align: top;
        page-break-inside: avoid;
    }}
    .image-container img {{ width: 100%; height: auto; border-radius: 6px; border: 1px solid #e0e0e0; }}
    .image-slot {{ width: 100%; height: 150px; border: 1px dashed #ccc; border-radius: 6px; }}
    .image-caption {{
        font-size: 9pt;
        color: #555;
        margin-top: 8px;
        padding: 8px 10px;
        font-style: italic;
        line-height: 1.4;
        background: #f9f9f9;
        border-left: 3px solid {brand_color};
        border-radius: 4px;
    }}
    .footer {{
        margin-top: 40px;
        padding-top: 20px;
        border-top: 1px solid #ccc;
        text-align: center;
        font-size: 9pt;
        color: #666;
    }}
    """


def _list_items(items: list[str]) -> str:
    return "".join(f"<li>{escape(item)}</li>" for item in items)


def _format_number(value: float) -> str:
    return f"{value:g}"


def render_incident(incident: TextIncident | StructuredIncident) -> str:
    """List item for a safety incident of either shape."""
    match incident:
        case TextIncident(text=text):
            return f"<li>{escape(text)}</li>"
        case StructuredIncident(person=person, description=description, action_taken=action_taken):
            action = f"<br><em>Action taken: {escape(action_taken)}</em>" if action_taken else ""
            return f"<li><strong>{escape(person or 'Worker')}:</strong> {escape(description)}{action}</li>"
    raise TypeError(f"Unsupported incident type: {type(incident).__name__}")


def _works_summary_section(analysis: StructuredAnalysis) -> str:
    summary = analysis.works_summary
    if not (summary.title or summary.description or summary.key_activities):
        return ""
    activities = ""
    if summary.key_activities:
        activities = f"""
        <div class="subsection-title">Key Activities:</div>
        <ul>{_list_items(summary.key_activities)}</ul>"""
    return f"""
    <div class="section">
        <div class="section-title">Works Summary</div>
        <h3 class="subsection-title">{escape(summary.title or 'Daily Works')}</h3>
        <p>{escape(summary.description)}</p>{activities}
    </div>"""


def _workforce_section(analysis: StructuredAnalysis) -> str:
    workforce = analysis.workforce
    if not (workforce.total_workers or workforce.total_hours or workforce.man_hours):
        return ""
    return f"""
    <div class="section">
        <div class="section-title">Workforce</div>
        <div class="stats-grid">
            <div class="stat-box">
                <div class="stat-value">{workforce.total_workers}</div>
                <div class="stat-label">Total Workers</div>
            </div>
            <div class="stat-box">
                <div class="stat-value">{_format_number(workforce.total_hours)}</div>
                <div class="stat-label">Total Hours</div>
            </div>
            <div class="stat-box">
                <div class="stat-value">{_format_number(workforce.man_hours)}</div>
                <div class="stat-label">Man Hours</div>
            </div>
        </div>
    </div>"""


def _materials_section(analysis: StructuredAnalysis) -> str:
    items = analysis.materials.items_used
    if not items:
        return ""
    rows = "".join(
        f"<tr><td>{escape(item.material)}</td><td>{escape(item.quantity)}</td><td>{escape(item.unit)}</td></tr>"
        for item in items
    )
    return f"""
    <div class="section">
        <div class="section-title">Materials Used</div>
        <table class="materials-table">
            <thead><tr><th>Material</th><th>Quantity</th><th>Unit</th></tr></thead>
            <tbody>{rows}</tbody>
        </table>
    </div>"""


def _equipment_section(analysis: StructuredAnalysis) -> str:
    equipment = analysis.plant_equipment.equipment_used
    if not equipment:
        return ""
    return f"""
    <div class="section">
        <div class="section-title">Plant &amp; Equipment</div>
        <ul>{_list_items(equipment)}</ul>
    </div>"""


def _safety_section(analysis: StructuredAnalysis) -> str:
    safety = analysis.safety_incidents
    if not (safety.incidents_reported or safety.safety_observations):
        return ""
    parts = []
    if safety.incidents_reported:
        incidents = "".join(render_incident(incident) for incident in safety.incidents_reported)
        parts.append(f'<div class="subsection-title">Incidents Reported:</div><ul>{incidents}</ul>')
    if safety.safety_observations:
        parts.append(
            f'<div class="subsection-title">Safety Observations:</div><p>{escape(safety.safety_observations)}</p>'
        )
    return f"""
    <div class="section">
        <div class="section-title">Safety &amp; Incidents</div>
        {''.join(parts)}
    </div>"""


def _next_day_section(analysis: StructuredAnalysis) -> str:
    works = analysis.next_day_plan.scheduled_works
    if not works:
        return ""
    return f"""
    <div class="section">
        <div class="section-title">Next Day Plan</div>
        <ul>{_list_items(works)}</ul>
    </div>"""


def _photos_section(images: list[RenderImage]) -> str:
    if not images:
        return ""
    slots = []
    for image in images:
        picture = f'<img src="{image.data_url}" />' if image.data_url else '<div class="image-slot"></div>'
        caption = f'<div class="image-caption">{escape(image.caption)}</div>' if image.caption else ""
        slots.append(f'<div class="image-container">{picture}{caption}</div>')
    return f"""
    <div class="section">
        <div class="section-title">Site Photos</div>
        <div class="images-grid">{''.join(slots)}</div>
    </div>"""


def generate_report_html(
    report: Report,
    client: Client,
    analysis: StructuredAnalysis,
    images: list[RenderImage],
    logo_data_url: str = "",
    status: str | None = None,
    platform_name: str = "SiteLog",
    generated_at: datetime | None = None,
) -> str:
    """
    Compose the report document.

    Sections are included only when the corresponding analysis field has
    content. Photos appear in the given order, each followed by its caption.
    """
    generated_at = generated_at or datetime.now()
    status = (status or report.status).upper()
    works_performed = (report.form_data or {}).get("works_performed", "")
    logo = f'<img src="{logo_data_url}" class="logo" />' if logo_data_url else ""
    works_performed_section = ""
    if works_performed:
        works_performed_section = f"""
    <div class="section">
        <div class="section-title">Works Performed</div>
        <p class="field-value">{escape(works_performed)}</p>
    </div>"""

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{escape(report.project_name)} - Daily Site Report</title>
</head>
<body>
    <div class="header">
        {logo}
        <div class="company-name">{escape(client.company_name)}</div>
        <div class="report-title">Daily Construction Site Report</div>
    </div>

    <div class="metadata">
        <div class="metadata-item">
            <div class="metadata-label">Project</div>
            <div class="metadata-value">{escape(report.project_name)}</div>
        </div>
        <div class="metadata-item">
            <div class="metadata-label">Report Date</div>
            <div class="metadata-value">{report.report_date.strftime('%d/%m/%Y')}</div>
        </div>
        <div class="metadata-item">
            <div class="metadata-label">Report ID</div>
            <div class="metadata-value">{escape(report.id[:8])}</div>
        </div>
        <div class="metadata-item">
            <div class="metadata-label">Status</div>
            <div class="metadata-value">{escape(status)}</div>
        </div>
    </div>
    {_works_summary_section(analysis)}
    {_workforce_section(analysis)}
    {works_performed_section}
    {_materials_section(analysis)}
    {_equipment_section(analysis)}
    {_safety_section(analysis)}
    {_next_day_section(analysis)}
    {_photos_section(images)}

    <div class="footer">
        <p>Report generated by {escape(platform_name)} on {generated_at.strftime('%d/%m/%Y at %H:%M')}</p>
        <p>{escape(client.company_name)} | {escape(client.contact_email)}</p>
    </div>
</body>
</html>
"""


class WeasyPrintEngine:
    """
    In-process WeasyPrint rendering, run in a worker thread.

    A thread cannot be interrupted: on timeout the render is abandoned and
    the thread runs to completion in the background with its result
    discarded. Use the Chromium engine where a stuck render must be killed.
    """

    name = "weasyprint"

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    @staticmethod
    def _write_pdf(html: str, css: str) -> bytes:
        try:
            from weasyprint import CSS, HTML
        except (ImportError, OSError) as e:
            # OSError: the Pango/Cairo system libraries are missing
            raise RenderEngineUnavailableError("weasyprint", e) from e
        return HTML(string=html).write_pdf(stylesheets=[CSS(string=css)])

    async def render(self, html: str, css: str) -> bytes:
        try:
            return await asyncio.wait_for(asyncio.to_thread(self._write_pdf, html, css), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise RenderTimeoutError(self.name, self.timeout) from e


class ChromiumEngine:
    """Headless Chromium ``--print-to-pdf`` subprocess."""

    name = "chromium"

    def __init__(self, executable: str | None = None, timeout: float = 60.0):
        self.executable = executable
        self.timeout = timeout

    def find_executable(self) -> str:
        """
        Locate the Chromium binary.

        Raises:
            RenderEngineUnavailableError: If no executable is found
        """
        if self.executable:
            return self.executable
        for candidate in CHROMIUM_CANDIDATES:
            path = shutil.which(candidate)
            if path:
                logger.info(f"[PDF] Found Chromium at {path}")
                return path
        raise RenderEngineUnavailableError(self.name, FileNotFoundError("no chromium executable on PATH"))

    async def render(self, html: str, css: str) -> bytes:
        executable = self.find_executable()
        document = html.replace("</head>", f"<style>{css}</style>\n</head>", 1)

        with tempfile.TemporaryDirectory(prefix="sitelog-pdf-") as workdir:
            html_path = Path(workdir) / "report.html"
            pdf_path = Path(workdir) / "report.pdf"
            async with aiofiles.open(html_path, "w", encoding="utf-8") as f:
                await f.write(document)

            try:
                process = await asyncio.create_subprocess_exec(
                    executable,
                    "--headless",
                    "--disable-gpu",
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                    "--no-pdf-header-footer",
                    f"--print-to-pdf={pdf_path}",
                    html_path.as_uri(),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except (FileNotFoundError, PermissionError) as e:
                raise RenderEngineUnavailableError(self.name, e) from e

            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                process.kill()
                await process.wait()
                raise RenderTimeoutError(self.name, self.timeout) from e

            if process.returncode != 0 or not pdf_path.exists():
                raise RenderError(
                    message=f"Chromium exited with status {process.returncode}",
                    details=stderr.decode(errors="replace")[-500:] if stderr else None,
                )

            async with aiofiles.open(pdf_path, "rb") as f:
                return await f.read()


def create_engine_from_config(settings: Settings) -> WeasyPrintEngine | ChromiumEngine:
    if settings.pdf_engine == "chromium":
        return ChromiumEngine(executable=settings.chromium_path, timeout=settings.render_timeout)
    return WeasyPrintEngine(timeout=settings.render_timeout)


class PDFGenerator:
    """
    Renders a report, its analysis and photos into PDF bytes.

    Examples:
        >>> generator = PDFGenerator()
        >>> pdf_bytes = await generator.render(report, client, images, analysis)
        >>> pdf_bytes[:4]
        b'%PDF'
    """

    def __init__(
        self,
        settings: Settings | None = None,
        blob_store: BlobStore | None = None,
        engine: WeasyPrintEngine | ChromiumEngine | None = None,
    ):
        self.settings = settings or default_settings
        self.blob_store = blob_store or get_blob_store()
        self.engine = engine or create_engine_from_config(self.settings)

    async def _load_data_url(self, ref: str | None, label: str) -> str:
        """
        Inline a stored file, or "" (empty slot) when it cannot be read.

        Raises:
            UnsafeStoragePathError: For traversal references
        """
        if not ref:
            return ""
        try:
            data = await self.blob_store.download(ref)
        except (BlobNotFoundError, StorageBackendError) as e:
            logger.warning(f"[PDF] Could not read {label} {ref}, leaving an empty slot: {e}")
            return ""
        if not data:
            logger.warning(f"[PDF] {label} {ref} is empty, leaving an empty slot")
            return ""
        return to_data_url(data)

    async def load_images(self, images: list[Image]) -> list[RenderImage]:
        """Photo slots in ``image_order``, each with its own stored caption."""
        slots = []
        for image in sorted(images, key=lambda image: image.image_order):
            slots.append(RenderImage(
                data_url=await self._load_data_url(image.file_path, "image"),
                caption=image.ai_description,
            ))
        return slots

    async def render(
        self,
        report: Report,
        client: Client,
        images: list[Image],
        analysis: StructuredAnalysis | None = None,
    ) -> bytes:
        """
        Render the report PDF.

        Args:
            report: Report being rendered
            client: Owning client (branding and footer)
            images: Report photos
            analysis: Structured analysis; read from ``report.ai_analysis`` when None

        Returns:
            PDF bytes

        Raises:
            RenderEngineUnavailableError: If the engine cannot be launched
            RenderTimeoutError: If the engine exceeds its time budget
            RenderError: If the engine produced no document
        """
        if analysis is None:
            analysis = StructuredAnalysis.model_validate(report.ai_analysis or {})

        slots = await self.load_images(images)
        logo = await self._load_data_url(client.logo_path, "logo")

        # The stored document is the completed report
        html = generate_report_html(
            report,
            client,
            analysis,
            slots,
            logo_data_url=logo,
            status=ReportStatus.COMPLETED.value,
            platform_name=self.settings.platform_name,
        )
        css = get_report_css(client.brand_color or self.settings.default_brand_color)

        logger.info(f"[PDF] Rendering report {report.id} with {self.engine.name} ({len(slots)} photos)")
        pdf_bytes = await self.engine.render(html, css)
        if not pdf_bytes:
            raise RenderError(message=f"PDF engine '{self.engine.name}' produced an empty document")

        logger.info(f"[PDF] Rendered report {report.id} ({len(pdf_bytes)} bytes)")
        return pdf_bytes


# Global generator instance
_pdf_generator: PDFGenerator | None = None


def get_pdf_generator() -> PDFGenerator:
    """Get or create the PDF generator instance."""
    global _pdf_generator
    if _pdf_generator is None:
        _pdf_generator = PDFGenerator()
    return _pdf_generator
