"""SQLAlchemy models."""
from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.tag import Tag, prompt_tags  # Must be before prompt due to FK targets
from models.prompt import Prompt
from models.ranking_config import RankingConfig
from models.user_preferences import UserPreferences

__all__ = [
    "Base",
    "Prompt",
    "RankingConfig",
    "Tag",
    "TimestampMixin",
    "UUIDv7Mixin",
    "UserPreferences",
    "prompt_tags",
]
