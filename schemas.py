"""
schemas.py — Pydantic v2 request models for the generation API.

Validation errors automatically return HTTP 422 with structured detail.
Stage lists are not validated against the registry here: unknown ids are
dropped by the orchestrator when it normalises the list.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

Provider = Literal['anthropic', 'deepseek', 'openai']


def _strip_only(v: str | None) -> str | None:
    """Strip leading/trailing whitespace only — preserve internal newlines.
    Returns None if the result is empty."""
    if v is None:
        return None
    s = str(v).strip()
    return s or None


class GenerationRequest(BaseModel):
    stages:   list[str] | None      = Field(default=None, max_length=50)
    provider: Provider | None       = None
    extra:    dict[str, Any] | None = None


class StageRequest(BaseModel):
    prompt:   str | None      = Field(default=None, max_length=4000)
    provider: Provider | None = None

    @field_validator('prompt', mode='before')
    @classmethod
    def strip_prompt(cls, v: str | None) -> str | None:
        return _strip_only(v)
