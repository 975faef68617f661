"""Shared fixtures for API tests."""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from api.main import app
from core.auth import get_current_owner
from core.config import Settings, get_settings
from db.session import get_async_session

DEV_OWNER_ID = "dev-user"


def prompt_payload(slug: str, **overrides: object) -> dict:
    """Request body for one valid prompt."""
    payload = {
        "slug": slug,
        "name": f"Name of {slug}",
        "description": f"Description of {slug}",
        "content": f"Content of {slug}",
        "tags": [],
    }
    payload.update(overrides)
    return payload


@asynccontextmanager
async def create_client(
    db_session: AsyncSession,
    owner_id: str | None = None,
    settings: Settings | None = None,
) -> AsyncGenerator[AsyncClient]:
    """
    Create an AsyncClient with custom identity and/or settings.

    owner_id replaces the authenticated caller; settings replaces the cached
    application settings (e.g. to switch the tag strategy). Cleans up dependency
    overrides on exit.
    """
    get_settings.cache_clear()

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_async_session
    if owner_id is not None:
        app.dependency_overrides[get_current_owner] = lambda: owner_id
    if settings is not None:
        app.dependency_overrides[get_settings] = lambda: settings

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
