"""User preference endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_owner, get_preferences_service
from schemas.preferences import PreferencesResponse, Surface, ThemeResponse, ThemeUpdate
from services.preferences_service import PreferencesService

router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.get("/", response_model=PreferencesResponse)
async def get_preferences(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PreferencesService = Depends(get_preferences_service),
) -> PreferencesResponse:
    """Get all saved preferences for the current user."""
    return PreferencesResponse(themes=await service.get_all(db, owner_id))


@router.get("/themes/{surface}", response_model=ThemeResponse)
async def get_theme(
    surface: Surface,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PreferencesService = Depends(get_preferences_service),
) -> ThemeResponse:
    """Get the saved theme for one surface (null if never set)."""
    theme = await service.get_theme(db, owner_id, surface)
    return ThemeResponse(surface=surface, theme=theme)


@router.put("/themes/{surface}", response_model=ThemeResponse)
async def set_theme(
    surface: Surface,
    data: ThemeUpdate,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PreferencesService = Depends(get_preferences_service),
) -> ThemeResponse:
    """Save the theme for one surface."""
    await service.set_theme(db, owner_id, surface, data.theme)
    return ThemeResponse(surface=surface, theme=data.theme)
