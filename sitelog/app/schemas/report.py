"""Report-related schemas."""

from datetime import date, datetime
from typing import Any
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ReportFormData(BaseModel):
    """Free-text fields submitted by the field worker."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    works_performed: str = Field(default="", description="Works performed today")
    labour_on_site: str = Field(default="", description="Labour on site, e.g. '4 x Labourers - Jack, Josh'")
    plant_machinery: str = Field(default="", description="Plant and machinery used")
    hours_worked: str = Field(default="", description="Hours worked per worker")
    materials_used: str = Field(default="", description="Materials used")
    delays_weather: str = Field(default="", description="Delays and weather")
    safety_incidents: str = Field(default="None reported", description="Safety incidents")


class ReportSubmission(ReportFormData):
    """
    JSON metadata part of a multipart report submission.

    Accepts both snake_case and camelCase keys (``clientId``, ``worksPerformed``).
    """

    client_id: str = Field(..., min_length=1, description="Owning client ID")
    report_date: date = Field(..., description="Date of the works")
    project_name: str = Field(..., min_length=1, max_length=255, description="Project name")

    @field_validator("report_date", mode="before")
    @classmethod
    def strip_time_component(cls, v: Any) -> Any:
        """Accept full ISO timestamps by keeping the date part."""
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    def form_data(self) -> ReportFormData:
        return ReportFormData.model_validate(self.model_dump(include=set(ReportFormData.model_fields)))


class AnalysisInput(ReportFormData):
    """Form fields plus report metadata, as consumed by the analysis engine."""

    report_date: date
    project_name: str

    @classmethod
    def from_report(cls, report) -> "AnalysisInput":
        return cls.model_validate({
            **report.form_data,
            "report_date": report.report_date,
            "project_name": report.project_name,
        })


class PhotoUpload(BaseModel):
    """One photo part of a submission."""

    data: bytes = Field(..., description="Raw image bytes")
    file_name: str = Field(default="photo.jpg", description="Original file name")
    content_type: str = Field(default="image/jpeg", description="Declared MIME type")


class ImageResponse(BaseModel):
    """Schema for image data in responses."""

    id: str
    file_path: str
    file_name: str
    mime_type: str
    ai_description: str | None = None
    image_order: int

    model_config = {"from_attributes": True}


class ReportResponse(BaseModel):
    """Schema for report status polling."""

    id: str = Field(..., description="Report ID")
    client_id: str = Field(..., description="Owning client ID")
    report_date: date = Field(..., description="Date of the works")
    project_name: str = Field(..., description="Project name")
    form_data: dict[str, Any] = Field(..., description="Submitted form fields")
    ai_analysis: dict[str, Any] | None = Field(None, description="Structured analysis")
    pdf_path: str | None = Field(None, description="Storage key of the rendered PDF")
    status: str = Field(..., description="processing, completed or failed")
    submitted_at: datetime = Field(..., description="Submission timestamp")
    processed_at: datetime | None = Field(None, description="Terminal state timestamp")
    images: list[ImageResponse] = Field(default_factory=list, description="Attached photos")

    model_config = {"from_attributes": True}


class SubmitResponse(BaseModel):
    """Schema returned when a submission is accepted."""

    success: bool = True
    report_id: str


class RegenerateResponse(BaseModel):
    """Schema returned when a regeneration is queued."""

    report_id: str
    status: str
