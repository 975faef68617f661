"""Prompt model for storing user prompt templates."""
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDv7Mixin

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Prompt(Base, UUIDv7Mixin, TimestampMixin):
    """Prompt model - stores user prompt templates with parameters and tags."""

    __tablename__ = "prompts"
    __table_args__ = (
        UniqueConstraint("owner_id", "slug", name="uq_prompts_owner_id_slug"),
    )

    # id provided by UUIDv7Mixin
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(200), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # Typed parameter definitions: [{"name", "type", "required", "description"?}]
    parameters: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONType, nullable=True)

    # Denormalized tag names, kept in sync by the configured TagStore.
    # Always replace the list rather than mutating it in place so the change is flushed.
    tag_names: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    # Lowercased slug + name + description + content, rebuilt on every content write
    search_text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Engagement fields used by ranking
    pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    favorited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Epoch milliseconds; None until the prompt is first used
    last_used_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
