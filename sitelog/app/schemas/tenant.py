"""Tenant-wide setting overrides."""

from pydantic import BaseModel, Field


class TenantSettings(BaseModel):
    """Overrides read from the settings table for one pipeline run."""

    openai_api_key: str | None = Field(default=None, description="API key when not set in process config")
    ai_prompt_template: str | None = Field(default=None, description="Tenant default analysis prompt")
    email_subject_template: str | None = Field(default=None, description="Email subject template")
    email_header_template: str | None = Field(default=None, description="Email header template")
    email_footer_template: str | None = Field(default=None, description="Email footer template")

    @classmethod
    def keys(cls) -> list[str]:
        return list(cls.model_fields)
