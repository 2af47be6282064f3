"""
Analysis prompt templates.

Templates use ``{{name}}`` placeholders substituted literally, so braces in
the JSON schema example (or in a client's own template) are left alone.
"""

from sitelog.app.schemas.report import AnalysisInput
from sitelog.app.services.settings_store import first_configured

PROMPT_PLACEHOLDERS = (
    "report_date",
    "project_name",
    "works_performed",
    "labour_on_site",
    "plant_machinery",
    "hours_worked",
    "materials_used",
    "delays_weather",
    "safety_incidents",
    "photo_count",
)

DEFAULT_ANALYSIS_PROMPT = """You are a construction site documentation assistant. Using the provided data and site photos, create a professional daily site report in a consistent JSON structure.

**INPUT DATA:**
Date: {{report_date}}
Project: {{project_name}}
Works Performed: {{works_performed}}
Labour on Site: {{labour_on_site}}
Plant & Machinery: {{plant_machinery}}
Hours Worked: {{hours_worked}}
Materials Used: {{materials_used}}
Delays/Weather: {{delays_weather}}
Safety Incidents: {{safety_incidents}}

**IMAGES:**
{{photo_count}} site photos are attached showing today's works.

**TASK:**
Analyze the data and images, then output a structured JSON report following this exact schema:

{
  "report_metadata": {"project_name": "", "report_date": "", "report_id": ""},
  "site_conditions": {"weather": "", "temperature": ""},
  "workforce": {"total_workers": 0, "worker_names": [], "total_hours": 0, "man_hours": 0},
  "works_summary": {"title": "", "description": "", "key_activities": []},
  "materials": {"items_used": [{"material": "", "quantity": "", "unit": ""}]},
  "plant_equipment": {"equipment_used": []},
  "quality_compliance": {"compliance_status": ""},
  "safety_incidents": {"incidents_reported": [], "safety_observations": ""},
  "delays_issues": {"delays": [], "impact": ""},
  "photo_documentation": {"total_images": 0, "image_descriptions": []},
  "next_day_plan": {"scheduled_works": []}
}

**INSTRUCTIONS:**
1. Use construction standards relevant to the project's jurisdiction
2. Extract all relevant information from the input data
3. Describe what each photo shows, one description per photo in the order attached (e.g. "Installed SL72 mesh with bar chairs visible")
4. Infer logical next-day activities based on works performed
5. Use professional construction terminology
6. Calculate man_hours (total_workers x total_hours)
7. Each safety incident is either a string or an object {"person": "", "description": "", "action_taken": ""}
8. For report_id, use format: {PROJECT}_{DATE}_DR
9. Return ONLY valid JSON, no additional text or explanation"""


def prompt_values(data: AnalysisInput, photo_count: int) -> dict[str, str]:
    """Placeholder values, with the built-in wording for blank optional fields."""
    return {
        "report_date": data.report_date.isoformat(),
        "project_name": data.project_name,
        "works_performed": data.works_performed,
        "labour_on_site": data.labour_on_site,
        "plant_machinery": data.plant_machinery or "None specified",
        "hours_worked": data.hours_worked,
        "materials_used": data.materials_used or "Not specified",
        "delays_weather": data.delays_weather or "No delays reported",
        "safety_incidents": data.safety_incidents or "None reported",
        "photo_count": str(photo_count),
    }


def render_prompt(template: str, values: dict[str, str]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown placeholders are kept."""
    rendered = template
    for name, value in values.items():
        rendered = rendered.replace("{{" + name + "}}", value)
    return rendered


def resolve_prompt_template(client_template: str | None, tenant_template: str | None) -> str:
    """Client template, then tenant default, then the built-in prompt."""
    return first_configured(client_template, tenant_template, default=DEFAULT_ANALYSIS_PROMPT)
