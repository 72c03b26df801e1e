from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator


def _split_lines(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split("\n")
    elif isinstance(value, list):
        items = [str(item) for item in value]
    else:
        raise ValueError("must be a list or a newline-separated string")
    return [item.strip() for item in items if item.strip()]


class RuleCreate(BaseModel):
    trigger: list[str]
    response: list[str]
    type: str = "text"
    match_type: Literal["exact", "smart"] = "smart"
    exclude_words: list[str] = []
    context_required: Optional[str] = None
    sets_state: Optional[str] = None

    @field_validator("trigger", "response", mode="before")
    @classmethod
    def split_required(cls, value: object) -> list[str]:
        items = _split_lines(value)
        if not items:
            raise ValueError("at least one non-empty line is required")
        return items

    @field_validator("exclude_words", mode="before")
    @classmethod
    def split_optional(cls, value: object) -> list[str]:
        return _split_lines(value)

    @field_validator("context_required", "sets_state", mode="before")
    @classmethod
    def blank_to_none(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None


class RuleResponse(BaseModel):
    id: int
    trigger: list[str]
    response: list[str]
    type: str
    match_type: str
    exclude_words: list[str]
    context_required: Optional[str] = None
    sets_state: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class IgnoreRequest(BaseModel):
    text: str
