"""Structured analysis schema shared by the analysis engine, renderer and webhook."""

from typing import Annotated, Any, Literal
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_serializer, model_validator


class _AnalysisSection(BaseModel):
    """Lenient section: missing keys default, numbers coerce to strings."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        """Treat explicit nulls as missing so section defaults apply."""
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class TextIncident(BaseModel):
    """Safety incident reported as free text."""

    kind: Literal["text"] = "text"
    text: str

    @model_serializer
    def serialize(self) -> str:
        return self.text


class StructuredIncident(_AnalysisSection):
    """Safety incident with the person involved and the action taken."""

    kind: Literal["structured"] = "structured"
    person: str = ""
    description: str = ""
    action_taken: str = ""

    @model_serializer
    def serialize(self) -> dict[str, str]:
        return {
            "person": self.person,
            "description": self.description,
            "action_taken": self.action_taken,
        }


def _tag_incident(value: Any) -> Any:
    if isinstance(value, (TextIncident, StructuredIncident)):
        return value
    if isinstance(value, dict):
        return StructuredIncident.model_validate({k: v for k, v in value.items() if k != "kind"})
    if value is None:
        return TextIncident(text="")
    return TextIncident(text=str(value))


SafetyIncident = Annotated[TextIncident | StructuredIncident, BeforeValidator(_tag_incident)]


class ReportMetadata(_AnalysisSection):
    project_name: str = ""
    report_date: str = ""
    report_id: str = ""


class SiteConditions(_AnalysisSection):
    weather: str = ""
    temperature: str = ""


class Workforce(_AnalysisSection):
    total_workers: int = 0
    worker_names: list[str] = Field(default_factory=list)
    total_hours: float = 0
    man_hours: float = 0


class WorksSummary(_AnalysisSection):
    title: str = ""
    description: str = ""
    key_activities: list[str] = Field(default_factory=list)


class MaterialItem(_AnalysisSection):
    material: str = ""
    quantity: str = ""
    unit: str = ""


class Materials(_AnalysisSection):
    items_used: list[MaterialItem] = Field(default_factory=list)


class PlantEquipment(_AnalysisSection):
    equipment_used: list[str] = Field(default_factory=list)


class QualityCompliance(_AnalysisSection):
    compliance_status: str = ""


class SafetySection(_AnalysisSection):
    incidents_reported: list[SafetyIncident] = Field(default_factory=list)
    safety_observations: str = ""


class DelaysIssues(_AnalysisSection):
    delays: list[str] = Field(default_factory=list)
    impact: str = ""


class PhotoDocumentation(_AnalysisSection):
    total_images: int = 0
    image_descriptions: list[str] = Field(default_factory=list)


class NextDayPlan(_AnalysisSection):
    scheduled_works: list[str] = Field(default_factory=list)


class StructuredAnalysis(_AnalysisSection):
    """
    Fixed-schema daily report produced by the analysis engine.

    ``model_dump(mode="json")`` yields the stable wire format: safety incidents
    serialize back to a bare string or a ``{person, description, action_taken}``
    object.
    """

    report_metadata: ReportMetadata = Field(default_factory=ReportMetadata)
    site_conditions: SiteConditions = Field(default_factory=SiteConditions)
    workforce: Workforce = Field(default_factory=Workforce)
    works_summary: WorksSummary = Field(default_factory=WorksSummary)
    materials: Materials = Field(default_factory=Materials)
    plant_equipment: PlantEquipment = Field(default_factory=PlantEquipment)
    quality_compliance: QualityCompliance = Field(default_factory=QualityCompliance)
    safety_incidents: SafetySection = Field(default_factory=SafetySection)
    delays_issues: DelaysIssues = Field(default_factory=DelaysIssues)
    photo_documentation: PhotoDocumentation = Field(default_factory=PhotoDocumentation)
    next_day_plan: NextDayPlan = Field(default_factory=NextDayPlan)

    def caption_for(self, position: int) -> str | None:
        """Photo caption at ``position`` in the analyzed photo list."""
        descriptions = self.photo_documentation.image_descriptions
        if 0 <= position < len(descriptions):
            return descriptions[position] or None
        return None
