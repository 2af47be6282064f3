"""Unit tests for request and analysis schemas."""

from datetime import date

import pytest
from pydantic import ValidationError

from sitelog.app.models.report import Report
from sitelog.app.schemas.analysis import StructuredAnalysis, StructuredIncident, TextIncident
from sitelog.app.schemas.report import AnalysisInput, ReportSubmission
from sitelog.app.schemas.tenant import TenantSettings


class TestReportSubmission:
    """Test cases for ReportSubmission."""

    def test_camel_case_keys(self):
        """Test the form's camelCase keys are accepted."""
        submission = ReportSubmission.model_validate({
            "clientId": "c1",
            "reportDate": "2024-03-15",
            "projectName": "Bridge Works",
            "worksPerformed": "Poured slab",
            "labourOnSite": "3 workers",
        })

        assert submission.client_id == "c1"
        assert submission.works_performed == "Poured slab"
        assert submission.labour_on_site == "3 workers"
        assert submission.safety_incidents == "None reported"

    def test_snake_case_keys(self):
        """Test snake_case keys are accepted too."""
        submission = ReportSubmission.model_validate({
            "client_id": "c1", "report_date": "2024-03-15", "project_name": "Bridge Works",
        })

        assert submission.project_name == "Bridge Works"

    def test_iso_timestamp_date(self):
        """Test a full ISO timestamp keeps only its date."""
        submission = ReportSubmission.model_validate({
            "clientId": "c1", "reportDate": "2024-03-15T09:30:00.000Z", "projectName": "P",
        })

        assert submission.report_date == date(2024, 3, 15)

    @pytest.mark.parametrize("missing", ["clientId", "reportDate", "projectName"])
    def test_required_fields(self, missing):
        """Test metadata fields are required."""
        data = {"clientId": "c1", "reportDate": "2024-03-15", "projectName": "P"}
        del data[missing]

        with pytest.raises(ValidationError):
            ReportSubmission.model_validate(data)

    def test_form_data_excludes_metadata(self):
        """Test form_data holds only the free-text fields, snake_case."""
        submission = ReportSubmission.model_validate({
            "clientId": "c1", "reportDate": "2024-03-15", "projectName": "P", "hoursWorked": "8",
        })

        form = submission.form_data().model_dump()

        assert form["hours_worked"] == "8"
        assert "client_id" not in form
        assert "project_name" not in form


class TestAnalysisInput:
    """Test cases for AnalysisInput."""

    def test_from_report(self):
        """Test the engine input combines stored form data and metadata."""
        report = Report(
            report_date=date(2024, 3, 15),
            project_name="Bridge Works",
            form_data={"works_performed": "Poured slab", "hours_worked": "7"},
        )

        data = AnalysisInput.from_report(report)

        assert data.project_name == "Bridge Works"
        assert data.report_date == date(2024, 3, 15)
        assert data.hours_worked == "7"
        assert data.plant_machinery == ""


class TestStructuredAnalysis:
    """Test cases for the structured analysis schema."""

    def test_incident_shapes(self):
        """Test strings and objects become the two incident variants."""
        analysis = StructuredAnalysis.model_validate({"safety_incidents": {"incidents_reported": [
            "Minor cut",
            {"person": "Jo", "description": "Fell", "action_taken": "First aid"},
        ]}})

        first, second = analysis.safety_incidents.incidents_reported
        assert first == TextIncident(text="Minor cut")
        assert isinstance(second, StructuredIncident)
        assert second.action_taken == "First aid"

    def test_lenient_sections(self):
        """Test nulls, numeric strings and unknown keys are tolerated."""
        analysis = StructuredAnalysis.model_validate({
            "site_conditions": {"weather": None, "temperature": 24},
            "workforce": {"total_workers": "4", "man_hours": "32"},
            "extra_section": {"anything": True},
        })

        assert analysis.site_conditions.weather == ""
        assert analysis.site_conditions.temperature == "24"
        assert analysis.workforce.total_workers == 4
        assert analysis.workforce.man_hours == 32

    def test_caption_for(self):
        """Test captions by position, None when out of range or blank."""
        analysis = StructuredAnalysis.model_validate(
            {"photo_documentation": {"image_descriptions": ["Slab", ""]}}
        )

        assert analysis.caption_for(0) == "Slab"
        assert analysis.caption_for(1) is None
        assert analysis.caption_for(2) is None
        assert analysis.caption_for(-1) is None


class TestTenantSettings:
    """Test cases for TenantSettings."""

    def test_keys(self):
        """Test the settings table keys read per run."""
        assert set(TenantSettings.keys()) == {
            "openai_api_key",
            "ai_prompt_template",
            "email_subject_template",
            "email_header_template",
            "email_footer_template",
        }
