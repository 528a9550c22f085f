"""Response schemas for the Cloud Code API.

Responses are validated here at the boundary. Unknown fields are ignored and
missing optional fields default, so callers never probe raw dicts.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CloudCodeModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Tier(CloudCodeModel):
    id: str | None = None
    is_default: bool = False


class LoadCodeAssistResponse(CloudCodeModel):
    current_tier: Tier | None = None
    paid_tier: Tier | None = None
    allowed_tiers: list[Tier] = []
    # Either a project id string or an object with an `id` field
    cloudaicompanion_project: Any = None

    @property
    def tier_id(self) -> str | None:
        if self.paid_tier and self.paid_tier.id:
            return self.paid_tier.id
        if self.current_tier and self.current_tier.id:
            return self.current_tier.id
        return None


class OnboardResult(CloudCodeModel):
    cloudaicompanion_project: Any = None


class OnboardUserResponse(CloudCodeModel):
    """Long-running onboarding operation."""

    done: bool = False
    response: OnboardResult | None = None


class QuotaInfo(CloudCodeModel):
    remaining_fraction: float | None = None
    reset_time: str | None = None


class AvailableModel(CloudCodeModel):
    display_name: str | None = None
    model: str | None = None
    quota_info: QuotaInfo | None = None


class AvailableModelsResponse(CloudCodeModel):
    models: dict[str, AvailableModel] = {}


class Part(CloudCodeModel):
    text: str | None = None


class Content(CloudCodeModel):
    role: str | None = None
    parts: list[Part] = []


class Candidate(CloudCodeModel):
    content: Content | None = None


class GenerateContentBody(CloudCodeModel):
    candidates: list[Candidate] = []


class GenerateContentResponse(CloudCodeModel):
    """generateContent reply; candidates may be wrapped in `response`."""

    response: GenerateContentBody | None = None
    candidates: list[Candidate] = []

    def reply_text(self) -> str | None:
        candidates = (
            self.response.candidates
            if self.response and self.response.candidates
            else self.candidates
        )
        if not candidates or candidates[0].content is None:
            return None
        parts = candidates[0].content.parts
        if not parts:
            return None
        return parts[0].text


def extract_project_id(project: Any) -> str | None:
    """Project id from a string or an object carrying `id`."""
    if isinstance(project, str) and project:
        return project
    if isinstance(project, dict):
        project_id = project.get("id")
        if isinstance(project_id, str) and project_id:
            return project_id
    return None
