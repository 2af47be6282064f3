"""Pydantic schemas for API request/response validation."""

from sitelog.app.schemas.report import (
    ReportFormData,
    ReportSubmission,
    AnalysisInput,
    PhotoUpload,
    ImageResponse,
    ReportResponse,
    SubmitResponse,
    RegenerateResponse,
)
from sitelog.app.schemas.analysis import (
    StructuredAnalysis,
    SafetyIncident,
    TextIncident,
    StructuredIncident,
    MaterialItem,
)
from sitelog.app.schemas.tenant import TenantSettings

__all__ = [
    "ReportFormData",
    "ReportSubmission",
    "AnalysisInput",
    "PhotoUpload",
    "ImageResponse",
    "ReportResponse",
    "SubmitResponse",
    "RegenerateResponse",
    "StructuredAnalysis",
    "SafetyIncident",
    "TextIncident",
    "StructuredIncident",
    "MaterialItem",
    "TenantSettings",
]
