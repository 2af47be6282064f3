"""
Analysis engine: form data and site photos to a structured daily report.

The primary path is a JSON-mode vision completion. Without credentials the
report is synthesized deterministically from the form text, and when the
completion API rejects the attached photos the request is retried once
without them.
"""

import json
import logging
import re

import httpx
from pydantic import ValidationError

from sitelog.app.core.config import Settings, settings as default_settings
from sitelog.app.core.exceptions import AnalysisResponseError, AnalysisServiceError
from sitelog.app.schemas.analysis import (
    DelaysIssues,
    MaterialItem,
    Materials,
    NextDayPlan,
    PhotoDocumentation,
    PlantEquipment,
    QualityCompliance,
    ReportMetadata,
    SafetySection,
    SiteConditions,
    StructuredAnalysis,
    TextIncident,
    Workforce,
    WorksSummary,
)
from sitelog.app.schemas.report import AnalysisInput
from sitelog.app.services.llm import JSON_OBJECT_FORMAT, OpenAIProvider
from sitelog.app.services.prompts import prompt_values, render_prompt

logger = logging.getLogger(__name__)

DEFAULT_HOURS_WORKED = 8.0
MAX_KEY_ACTIVITIES = 5

# Statuses that mean "the request was fine but something else is wrong",
# so dropping the photos would not help.
NON_IMAGE_CLIENT_ERRORS = {401, 403, 429}

NO_INCIDENT_PHRASES = {"", "none", "none reported", "nil", "n/a"}
NO_DELAY_PHRASES = {"", "none", "no delays", "no delays reported", "nil", "n/a"}

NEXT_DAY_DEFAULTS = [
    "Continue with current phase of construction",
    "Quality inspections and compliance checks",
    "Coordinate material deliveries as scheduled",
]

_NAME_LIST_INTRO = re.compile(r"\s+[-–—]\s+|:")
_NAME_SEPARATORS = re.compile(r",|&|\band\b", re.IGNORECASE)
_INTEGER = re.compile(r"\d+")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n+")


# Labour and hours parsing

def parse_labour(text: str) -> tuple[int, list[str]]:
    """
    Worker count and names from a "labour on site" entry.

    A trailing name list is recognised after a spaced dash or a colon, with
    names separated by commas, ampersands or "and". The count is the first
    integer before the name list, else the number of names, else 1.

    Examples:
        >>> parse_labour("4 x Labourers - Jack, Josh, Daniel & Simon")
        (4, ['Jack', 'Josh', 'Daniel', 'Simon'])
        >>> parse_labour("3 workers")
        (3, [])
    """
    text = (text or "").strip()
    parts = _NAME_LIST_INTRO.split(text)
    head = parts[0]
    names: list[str] = []

    if len(parts) > 1:
        for candidate in _NAME_SEPARATORS.split(parts[-1]):
            name = candidate.strip(" .;")
            if name and re.search(r"[^\W\d_]", name):
                names.append(name)

    count_match = _INTEGER.search(head)
    if count_match and int(count_match.group()) > 0:
        return int(count_match.group()), names
    if names:
        return len(names), names
    return 1, names


def parse_hours(text: str | None) -> float:
    """First number in an "hours worked" entry, defaulting to a full day."""
    match = _NUMBER.search(text or "")
    if match:
        return float(match.group())
    return DEFAULT_HOURS_WORKED


def split_activities(text: str) -> list[str]:
    """Split works performed into bullet activities on sentence boundaries."""
    activities = []
    for sentence in _SENTENCE_BOUNDARY.split(text or ""):
        sentence = sentence.strip().rstrip(".!?").strip()
        if sentence:
            activities.append(sentence)
    return activities[:MAX_KEY_ACTIVITIES]


def _split_list(text: str) -> list[str]:
    return [item.strip() for item in (text or "").split(",") if item.strip()]


def _is_reported(text: str, nothing_phrases: set[str]) -> bool:
    return (text or "").strip().lower().rstrip(".") not in nothing_phrases


def bucket_weather(text: str) -> str:
    lowered = (text or "").lower()
    if "rain" in lowered:
        return "Rainy"
    if "cloud" in lowered:
        return "Cloudy"
    return "Clear"


def report_id_for(project_name: str, report_date) -> str:
    """Report id in the ``{PROJECT}_{YYYYMMDD}_DR`` format."""
    project_slug = re.sub(r"\s+", "_", project_name.strip()).upper()
    return f"{project_slug}_{report_date.strftime('%Y%m%d')}_DR"


def generate_mock_analysis(data: AnalysisInput, photo_count: int) -> StructuredAnalysis:
    """
    Deterministic analysis synthesized from the form text alone.

    Used when no API key is configured. Identical input always yields an
    identical report.
    """
    total_workers, worker_names = parse_labour(data.labour_on_site)
    hours = parse_hours(data.hours_worked)

    delays = [data.delays_weather.strip()] if _is_reported(data.delays_weather, NO_DELAY_PHRASES) else []
    incidents = [TextIncident(text=data.safety_incidents.strip())] if _is_reported(data.safety_incidents, NO_INCIDENT_PHRASES) else []

    return StructuredAnalysis(
        report_metadata=ReportMetadata(
            project_name=data.project_name,
            report_date=data.report_date.isoformat(),
            report_id=report_id_for(data.project_name, data.report_date),
        ),
        site_conditions=SiteConditions(
            weather=bucket_weather(data.delays_weather),
            temperature="Not recorded",
        ),
        workforce=Workforce(
            total_workers=total_workers,
            worker_names=worker_names,
            total_hours=hours,
            man_hours=total_workers * hours,
        ),
        works_summary=WorksSummary(
            title=f"Daily Works - {data.project_name}",
            description=data.works_performed,
            key_activities=split_activities(data.works_performed),
        ),
        materials=Materials(items_used=[
            MaterialItem(material=item, quantity="As per specification", unit="various")
            for item in _split_list(data.materials_used)
        ]),
        plant_equipment=PlantEquipment(equipment_used=_split_list(data.plant_machinery)),
        quality_compliance=QualityCompliance(
            compliance_status="Works performed in accordance with applicable standards and project specifications"
        ),
        safety_incidents=SafetySection(
            incidents_reported=incidents,
            safety_observations="All safety protocols followed. Site personnel wearing required PPE.",
        ),
        delays_issues=DelaysIssues(
            delays=delays,
            impact="Minor schedule impact" if delays and "delay" in data.delays_weather.lower() else "No impact",
        ),
        photo_documentation=PhotoDocumentation(
            total_images=photo_count,
            image_descriptions=[
                f"Site photo {index + 1} - Construction works in progress showing {data.project_name} activities"
                for index in range(photo_count)
            ],
        ),
        next_day_plan=NextDayPlan(scheduled_works=list(NEXT_DAY_DEFAULTS)),
    )


def parse_analysis(raw: str) -> StructuredAnalysis:
    """
    Parse a completion into the structured analysis schema.

    Raises:
        AnalysisResponseError: If the content is not a JSON object matching the schema
    """
    text = raw.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*|\s*```$", "", text)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"[ANALYSIS] Failed to parse JSON response: {e}")
        logger.error(f"[ANALYSIS] Raw response: {raw[:500]}")
        raise AnalysisResponseError(f"response is not valid JSON: {e}", raw_response=raw) from e

    if not isinstance(data, dict):
        raise AnalysisResponseError(f"expected a JSON object, got {type(data).__name__}", raw_response=raw)

    try:
        return StructuredAnalysis.model_validate(data)
    except ValidationError as e:
        raise AnalysisResponseError(f"schema mismatch: {e.error_count()} errors", raw_response=raw) from e


def is_image_rejection(error: httpx.HTTPStatusError) -> bool:
    """Whether a completion error looks caused by the attached photos."""
    status = error.response.status_code
    return 400 <= status < 500 and status not in NON_IMAGE_CLIENT_ERRORS


class AnalysisEngine:
    """
    Produces the structured daily report for a submission.

    Examples:
        >>> engine = AnalysisEngine()
        >>> analysis = await engine.analyze(data, photos, template)
        >>> analysis.workforce.man_hours
        32.0
    """

    def __init__(self, settings: Settings | None = None, provider: OpenAIProvider | None = None):
        """
        Initialize analysis engine.

        Args:
            settings: Configuration. If None, uses the global settings.
            provider: Completion provider. If None, one is created per call
                      from the configured API key.
        """
        self.settings = settings or default_settings
        self.provider = provider

    def provider_for(self, tenant_api_key: str | None = None) -> OpenAIProvider | None:
        """Provider for this run, or None when no API key is configured anywhere."""
        if self.provider is not None:
            return self.provider

        api_key = self.settings.openai_api_key or tenant_api_key
        if not api_key:
            return None

        return OpenAIProvider(
            api_key=api_key,
            model=self.settings.openai_model,
            base_url=self.settings.openai_base_url,
            timeout=self.settings.openai_timeout,
        )

    async def analyze(
        self,
        data: AnalysisInput,
        photos: list[bytes],
        prompt_template: str,
        tenant_api_key: str | None = None,
    ) -> StructuredAnalysis:
        """
        Analyze form data and photos.

        Args:
            data: Form fields plus report date and project name
            photos: Photo bytes in ``image_order``
            prompt_template: Resolved template with ``{{placeholders}}``
            tenant_api_key: API key from the settings store, used when the
                            process configuration has none

        Returns:
            Structured analysis

        Raises:
            AnalysisServiceError: If the completion service fails
            AnalysisResponseError: If the response does not match the schema
        """
        provider = self.provider_for(tenant_api_key)
        if provider is None:
            logger.warning("[ANALYSIS] No OpenAI API key configured, using mock analysis")
            return generate_mock_analysis(data, len(photos))

        prompt = render_prompt(prompt_template, prompt_values(data, len(photos)))
        logger.info(f"[ANALYSIS] Analyzing '{data.project_name}' ({data.report_date}) with {len(photos)} photos")

        try:
            raw = await self._complete_with_image_retry(provider, prompt, photos)
        except httpx.HTTPError as e:
            logger.error(f"[ANALYSIS] Completion failed: {e}")
            raise AnalysisServiceError("vision completion", e) from e

        if not raw:
            raise AnalysisResponseError("empty response")

        return parse_analysis(raw)

    async def _complete_with_image_retry(self, provider: OpenAIProvider, prompt: str, photos: list[bytes]) -> str:
        try:
            return await self._complete(provider, prompt, photos)
        except httpx.HTTPStatusError as e:
            if not photos or not is_image_rejection(e):
                raise
            logger.warning(
                f"[ANALYSIS] Completion rejected with {e.response.status_code} and {len(photos)} photos attached, "
                f"retrying without photos"
            )
        return await self._complete(provider, prompt, [])

    async def _complete(self, provider: OpenAIProvider, prompt: str, photos: list[bytes]) -> str:
        return await provider.generate(
            prompt,
            images=photos,
            max_tokens=self.settings.openai_max_tokens,
            response_format=JSON_OBJECT_FORMAT,
        )


# Global engine instance
_analysis_engine: AnalysisEngine | None = None


def get_analysis_engine() -> AnalysisEngine:
    """Get or create the analysis engine instance."""
    global _analysis_engine
    if _analysis_engine is None:
        _analysis_engine = AnalysisEngine()
    return _analysis_engine
