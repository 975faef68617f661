"""UserPreferences model for storing per-owner UI preferences."""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.prompt import JSONType


class UserPreferences(Base, UUIDv7Mixin, TimestampMixin):
    """
    User preferences - currently the theme chosen for each client surface.

    The themes field stores a JSON object keyed by surface:

        {"webapp": "dark-2", "vscode": "light-1"}

    Surfaces without an entry fall back to the client's default theme.
    """

    __tablename__ = "user_preferences"

    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    themes: Mapped[dict[str, str]] = mapped_column(JSONType, nullable=False, default=dict)
