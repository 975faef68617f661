"""Pydantic schemas for user preference endpoints."""
from typing import Literal

from pydantic import BaseModel

Surface = Literal["webapp", "chatgpt", "vscode"]
ThemeId = Literal["light-1", "light-2", "light-3", "dark-1", "dark-2", "dark-3"]


class ThemeUpdate(BaseModel):
    """Schema for setting the theme of one surface."""

    theme: ThemeId


class ThemeResponse(BaseModel):
    """Theme for one surface, None when the surface has no saved preference."""

    surface: Surface
    theme: ThemeId | None


class PreferencesResponse(BaseModel):
    """All saved preferences for the current user."""

    themes: dict[Surface, ThemeId]
