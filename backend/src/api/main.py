"""FastAPI application entry point."""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.routers import health, preferences, prompts
from core.authorization import AuthorizationError
from core.config import get_settings
from db.session import get_session_factory
from services.ranking_config_service import seed_ranking_config


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    # Startup: make sure the ranking config exists before the first ranked read
    async with get_session_factory()() as session:
        await seed_ranking_config(session)
        await session.commit()

    yield


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # HSTS: enforce HTTPS for 1 year, including subdomains
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking - API shouldn't be framed
        response.headers["X-Frame-Options"] = "DENY"
        return response


app_settings = get_settings()

app = FastAPI(
    title="Prompt Library API",
    description="A personal prompt library with tagging, ranked listing and search.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(AuthorizationError)
async def authorization_exception_handler(
    _request: Request, exc: AuthorizationError,
) -> JSONResponse:
    """Deny without revealing whether the document exists."""
    return JSONResponse(status_code=403, content={"detail": "Access denied"})


# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(prompts.router)
app.include_router(preferences.router)
