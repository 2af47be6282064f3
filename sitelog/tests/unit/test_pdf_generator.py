"""Unit tests for PDF report generation."""

import time
from datetime import date

import pytest
from unittest.mock import patch

from sitelog.app.core.config import Settings
from sitelog.app.core.exceptions import (
    RenderEngineUnavailableError,
    RenderError,
    RenderTimeoutError,
    UnsafeStoragePathError,
)
from sitelog.app.models.client import Client
from sitelog.app.models.image import Image
from sitelog.app.models.report import Report
from sitelog.app.schemas.analysis import StructuredAnalysis
from sitelog.app.services.pdf_generator import (
    ChromiumEngine,
    PDFGenerator,
    RenderImage,
    WeasyPrintEngine,
    create_engine_from_config,
    generate_report_html,
    get_report_css,
)

REPORT_ID = "a1b2c3d4-0000-4000-8000-000000000001"


def make_report(**overrides) -> Report:
    fields = {
        "id": REPORT_ID,
        "client_id": "client-1",
        "report_date": date(2024, 3, 15),
        "project_name": "Bridge Works",
        "form_data": {"works_performed": "Poured slab on grid C"},
        "status": "processing",
    }
    fields.update(overrides)
    return Report(**fields)


def make_client(**overrides) -> Client:
    fields = {
        "id": "client-1",
        "company_name": "Acme Civil",
        "contact_email": "jo@acme.test",
        "brand_color": "#336699",
        "notification_emails": [],
    }
    fields.update(overrides)
    return Client(**fields)


def make_analysis(**sections) -> StructuredAnalysis:
    return StructuredAnalysis.model_validate(sections)


class TestGenerateReportHtml:
    """Test cases for generate_report_html()."""

    def test_metadata_block(self):
        """Test project, date, short id and status appear in the header."""
        html = generate_report_html(make_report(), make_client(), make_analysis(), [], status="completed")

        assert "Acme Civil" in html
        assert "15/03/2024" in html
        assert "a1b2c3d4" in html
        assert REPORT_ID not in html
        assert "COMPLETED" in html

    def test_empty_sections_omitted(self):
        """Test sections without content are not rendered."""
        html = generate_report_html(make_report(form_data={}), make_client(), make_analysis(), [])

        for title in ("Works Summary", "Workforce", "Materials Used", "Plant &amp; Equipment",
                      "Safety &amp; Incidents", "Next Day Plan", "Site Photos", "Works Performed"):
            assert title not in html

    def test_populated_sections_rendered(self):
        """Test sections with content are rendered."""
        analysis = make_analysis(
            works_summary={"title": "Slab pour", "description": "Level 2 slab", "key_activities": ["Pour"]},
            workforce={"total_workers": 4, "total_hours": 8, "man_hours": 32},
            materials={"items_used": [{"material": "Concrete", "quantity": "12", "unit": "m3"}]},
            plant_equipment={"equipment_used": ["Concrete pump"]},
            next_day_plan={"scheduled_works": ["Strip formwork"]},
        )

        html = generate_report_html(make_report(), make_client(), analysis, [])

        assert "Slab pour" in html
        assert "<td>Concrete</td><td>12</td><td>m3</td>" in html
        assert '<div class="stat-value">32</div>' in html
        assert "<li>Concrete pump</li>" in html
        assert "<li>Strip formwork</li>" in html
        assert "Poured slab on grid C" in html

    def test_both_incident_shapes_rendered(self):
        """Test text and structured incidents each render as a list item."""
        analysis = make_analysis(safety_incidents={"incidents_reported": [
            "Minor cut to hand",
            {"person": "Josh", "description": "Slipped on formwork", "action_taken": "First aid applied"},
        ]})

        html = generate_report_html(make_report(), make_client(), analysis, [])

        assert "<li>Minor cut to hand</li>" in html
        assert "<strong>Josh:</strong> Slipped on formwork" in html
        assert "Action taken: First aid applied" in html

    def test_user_text_escaped(self):
        """Test markup in user text is escaped."""
        html = generate_report_html(
            make_report(project_name="<script>x</script>"), make_client(), make_analysis(), []
        )

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_photo_slots(self):
        """Test photos render in order, with an empty slot for a missing one."""
        images = [
            RenderImage(data_url="data:image/jpeg;base64,AAAA", caption="First"),
            RenderImage(data_url="", caption="Second"),
        ]

        html = generate_report_html(make_report(), make_client(), make_analysis(), images)

        assert html.index("First") < html.index("Second")
        assert html.count('<div class="image-slot"></div>') == 1

    def test_css_uses_brand_color_and_a4(self):
        """Test the stylesheet sets A4 pages and the brand color."""
        css = get_report_css("#336699")

        assert "size: A4" in css
        assert "margin: 20mm 15mm" in css
        assert "#336699" in css


class TestPDFGenerator:
    """Test cases for PDFGenerator.render()."""

    @pytest.mark.asyncio
    async def test_unreadable_image_leaves_empty_slot(self, test_settings, blob_store, jpeg_bytes, render_engine):
        """Test one unreadable photo out of three still yields a document."""
        await blob_store.upload("images/r_0.jpg", jpeg_bytes, "image/jpeg")
        await blob_store.upload("images/r_2.jpg", jpeg_bytes, "image/jpeg")
        images = [
            Image(file_path="storage/images/r_2.jpg", file_name="r_2.jpg", image_order=2, ai_description="Slab pour"),
            Image(file_path="images/r_0.jpg", file_name="r_0.jpg", image_order=0, ai_description="Front gate"),
            Image(file_path="images/r_1.jpg", file_name="r_1.jpg", image_order=1),
        ]
        analysis = make_analysis(photo_documentation={"image_descriptions": ["Caption A", "Caption B", "Caption C"]})
        generator = PDFGenerator(settings=test_settings, blob_store=blob_store, engine=render_engine)

        pdf_bytes = await generator.render(make_report(), make_client(), images, analysis)

        assert pdf_bytes.startswith(b"%PDF")
        html, css = render_engine.calls[0]
        assert html.count('<img src="data:image/jpeg;base64,') == 2
        assert html.count('<div class="image-slot"></div>') == 1
        assert html.index("Front gate") < html.index('<div class="image-slot"></div>') < html.index("Slab pour")
        assert "Caption" not in html
        assert "#336699" in css

    @pytest.mark.asyncio
    async def test_traversal_image_reference_raises(self, test_settings, blob_store, render_engine):
        """Test an unsafe photo reference fails the render instead of leaving a slot."""
        images = [Image(file_path="../../etc/passwd", file_name="passwd", image_order=0)]
        generator = PDFGenerator(settings=test_settings, blob_store=blob_store, engine=render_engine)

        with pytest.raises(UnsafeStoragePathError):
            await generator.render(make_report(), make_client(), images, make_analysis())

        assert render_engine.calls == []

    @pytest.mark.asyncio
    async def test_status_rendered_as_completed(self, test_settings, blob_store, render_engine):
        """Test the stored document shows the completed status."""
        generator = PDFGenerator(settings=test_settings, blob_store=blob_store, engine=render_engine)

        await generator.render(make_report(status="processing"), make_client(), [], make_analysis())

        html, _ = render_engine.calls[0]
        assert "COMPLETED" in html
        assert "PROCESSING" not in html

    @pytest.mark.asyncio
    async def test_analysis_read_from_report(self, test_settings, blob_store, render_engine):
        """Test the stored analysis is used when none is passed."""
        generator = PDFGenerator(settings=test_settings, blob_store=blob_store, engine=render_engine)
        report = make_report(ai_analysis={"works_summary": {"title": "From storage"}})

        await generator.render(report, make_client(), [])

        assert "From storage" in render_engine.calls[0][0]

    @pytest.mark.asyncio
    async def test_logo_inlined(self, test_settings, blob_store, jpeg_bytes, render_engine):
        """Test the client logo is inlined from any historical reference."""
        await blob_store.upload("logos/acme.jpg", jpeg_bytes, "image/jpeg")
        generator = PDFGenerator(settings=test_settings, blob_store=blob_store, engine=render_engine)

        await generator.render(make_report(), make_client(logo_path="/bucket/public/logos/acme.jpg"), [], make_analysis())

        assert 'class="logo"' in render_engine.calls[0][0]

    @pytest.mark.asyncio
    async def test_missing_logo_omitted(self, test_settings, blob_store, render_engine):
        """Test an unreadable logo is left out."""
        generator = PDFGenerator(settings=test_settings, blob_store=blob_store, engine=render_engine)

        await generator.render(make_report(), make_client(logo_path="logos/gone.png"), [], make_analysis())

        assert 'class="logo"' not in render_engine.calls[0][0]

    @pytest.mark.asyncio
    async def test_engine_unavailable_propagates(self, test_settings, blob_store, render_engine):
        """Test a missing engine fails the render."""
        render_engine.error = RenderEngineUnavailableError("weasyprint")
        generator = PDFGenerator(settings=test_settings, blob_store=blob_store, engine=render_engine)

        with pytest.raises(RenderEngineUnavailableError):
            await generator.render(make_report(), make_client(), [], make_analysis())

    @pytest.mark.asyncio
    async def test_empty_document_raises(self, test_settings, blob_store, render_engine):
        """Test an empty engine result is a render failure."""
        render_engine.result = b""
        generator = PDFGenerator(settings=test_settings, blob_store=blob_store, engine=render_engine)

        with pytest.raises(RenderError):
            await generator.render(make_report(), make_client(), [], make_analysis())


class TestEngines:
    """Test cases for the rendering engines."""

    def test_create_engine_from_config(self):
        """Test engine selection by setting."""
        assert isinstance(create_engine_from_config(Settings(_env_file=None)), WeasyPrintEngine)
        engine = create_engine_from_config(Settings(_env_file=None, pdf_engine="chromium", chromium_path="/opt/chrome"))
        assert isinstance(engine, ChromiumEngine)
        assert engine.find_executable() == "/opt/chrome"

    def test_chromium_missing_raises(self):
        """Test a missing Chromium binary is reported as unavailable."""
        engine = ChromiumEngine()

        with patch("shutil.which", return_value=None):
            with pytest.raises(RenderEngineUnavailableError):
                engine.find_executable()

    def test_chromium_found_on_path(self):
        """Test Chromium is located through the PATH."""
        with patch("shutil.which", side_effect=lambda name: "/usr/bin/chromium" if name == "chromium" else None):
            assert ChromiumEngine().find_executable() == "/usr/bin/chromium"

    @pytest.mark.asyncio
    async def test_weasyprint_timeout(self):
        """Test a slow render raises RenderTimeoutError without waiting for the thread."""
        engine = WeasyPrintEngine(timeout=0.05)
        start = time.monotonic()

        with patch.object(WeasyPrintEngine, "_write_pdf", side_effect=lambda html, css: time.sleep(0.5)):
            with pytest.raises(RenderTimeoutError):
                await engine.render("<html></html>", "")

        assert time.monotonic() - start < 0.4

    @pytest.mark.asyncio
    async def test_weasyprint_runs_in_thread(self):
        """Test the engine returns what the writer produced."""
        engine = WeasyPrintEngine()

        with patch.object(WeasyPrintEngine, "_write_pdf", return_value=b"%PDF-1.7") as mock_write:
            assert await engine.render("<html></html>", "body {}") == b"%PDF-1.7"

        mock_write.assert_called_once_with("<html></html>", "body {}")
