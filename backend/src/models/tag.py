"""Tag model for storing per-owner tags."""
from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, UUIDv7Mixin, utcnow


# Junction table for many-to-many relationship between prompts and tags.
# Only written when the relational tag strategy is active.
prompt_tags = Table(
    "prompt_tags",
    Base.metadata,
    Column(
        "prompt_id",
        Uuid,
        ForeignKey("prompts.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "tag_id",
        Uuid,
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    # Index for lookups by tag (composite PK already indexes prompt_id first)
    Index("ix_prompt_tags_tag_id", "tag_id"),
)


class Tag(Base, UUIDv7Mixin):
    """
    Tag model - a free-form tag owned by one user.

    (owner_id, name) is indexed but deliberately not unique: concurrent creators can
    each insert a row for the same name, and find_or_create_tag converges them to the
    oldest record.
    """

    __tablename__ = "tags"
    __table_args__ = (
        Index("ix_tags_owner_id_name", "owner_id", "name"),
    )

    # id provided by UUIDv7Mixin
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
