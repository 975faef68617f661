"""Pydantic schemas for prompt endpoints."""
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from schemas.validators import (
    CONTENT_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    MAX_PROMPTS_PER_BATCH,
    NAME_MAX_LENGTH,
    check_duplicate_parameter_names,
    validate_and_normalize_tags,
    validate_required_text,
    validate_slug,
)

ParameterType = Literal["string", "string[]", "number", "boolean"]


class PromptParameter(BaseModel):
    """Schema for a typed prompt parameter definition."""

    name: str = Field(..., min_length=1)
    type: ParameterType
    required: bool
    description: str | None = None


class PromptInput(BaseModel):
    """
    Schema for a prompt write (create or full update).

    Validation happens on construction: constructing a PromptInput either yields
    normalized data or raises pydantic.ValidationError with the specific reason.
    """

    slug: str
    name: str
    description: str
    content: str
    tags: list[str] = Field(default_factory=list)
    parameters: list[PromptParameter] | None = None

    @field_validator("slug")
    @classmethod
    def check_slug_format(cls, v: str) -> str:
        """Validate slug format."""
        return validate_slug(v)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        """Validate name is present and within length."""
        return validate_required_text(v, "name", NAME_MAX_LENGTH)

    @field_validator("description")
    @classmethod
    def check_description(cls, v: str) -> str:
        """Validate description is present and within length."""
        return validate_required_text(v, "description", DESCRIPTION_MAX_LENGTH)

    @field_validator("content")
    @classmethod
    def check_content(cls, v: str) -> str:
        """Validate content is present and within length."""
        return validate_required_text(v, "content", CONTENT_MAX_LENGTH)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str]:
        """Normalize and validate tags."""
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError("Tags must be a list of strings")
        return validate_and_normalize_tags(v)

    @model_validator(mode="after")
    def check_duplicate_parameters(self) -> "PromptInput":
        """Ensure no duplicate parameter names."""
        check_duplicate_parameter_names(self.parameters)
        return self


class PromptBatchCreate(BaseModel):
    """Schema for creating one or more prompts in a single atomic batch."""

    prompts: list[PromptInput] = Field(..., min_length=1, max_length=MAX_PROMPTS_PER_BATCH)


class PromptBatchCreateResponse(BaseModel):
    """Slugs of the prompts created by a batch, in request order."""

    slugs: list[str]


class PromptResponse(BaseModel):
    """
    Prompt DTO returned outward.

    The shape is independent of storage: tags are always a flat list regardless of
    the active tag strategy, and last_used_at is epoch milliseconds.
    """

    slug: str
    name: str
    description: str
    content: str
    tags: list[str]
    parameters: list[PromptParameter] | None = None
    pinned: bool
    favorited: bool
    usage_count: int
    last_used_at: int | None = None


class PromptFlagsUpdate(BaseModel):
    """Schema for patching engagement flags. Omitted flags are left unchanged."""

    pinned: bool | None = None
    favorited: bool | None = None


class PromptUpdateResponse(BaseModel):
    """Result of an update."""

    updated: bool


class PromptDeleteResponse(BaseModel):
    """Result of a delete."""

    deleted: bool


class PromptImportPreviewRequest(BaseModel):
    """Schema for previewing a YAML import."""

    yaml: str = Field(..., min_length=1, max_length=5_000_000)


class PromptImportRequest(PromptImportPreviewRequest):
    """Schema for a YAML import request. `slugs` restricts the import to those prompts."""

    slugs: list[str] | None = Field(default=None, max_length=1000)


class PromptImportPreviewItem(BaseModel):
    """One valid prompt of a previewed import."""

    slug: str
    name: str
    description: str
    tags: list[str]
    duplicate: bool


class PromptImportPreviewResponse(BaseModel):
    """Valid prompts of an import document and the errors of the invalid ones."""

    prompts: list[PromptImportPreviewItem]
    errors: list[str]


class PromptImportResponse(BaseModel):
    """Result of a YAML import."""

    created: int
    slugs: list[str]
    skipped: list[str]
    errors: list[str]
