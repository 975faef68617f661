"""Prompt library endpoints."""
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import Response as FastAPIResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_owner, get_prompt_service
from schemas.prompt import (
    PromptBatchCreate,
    PromptBatchCreateResponse,
    PromptDeleteResponse,
    PromptFlagsUpdate,
    PromptImportPreviewItem,
    PromptImportPreviewRequest,
    PromptImportPreviewResponse,
    PromptImportRequest,
    PromptImportResponse,
    PromptInput,
    PromptResponse,
    PromptUpdateResponse,
)
from schemas.tag import TagListResponse
from schemas.validators import validate_slug
from services.exceptions import PromptValidationError, SlugConflictError
from services.prompt_service import MAX_LIMIT, PromptService, to_dto
from services.prompt_transfer import export_prompts_yaml, import_prompts, preview_import

router = APIRouter(prefix="/prompts", tags=["prompts"])

# Maximum number of tags accepted by the list filter
MAX_FILTER_TAGS = 20


def parse_tag_filter(tags: str | None) -> list[str]:
    """
    Parse a comma-separated tag filter into lowercased names.

    Raises:
        HTTPException: If more than MAX_FILTER_TAGS tags are given.
    """
    if not tags:
        return []
    names = [name.strip().lower() for name in tags.split(",") if name.strip()]
    if len(names) > MAX_FILTER_TAGS:
        raise HTTPException(
            status_code=400,
            detail=f"Too many tags in filter (max {MAX_FILTER_TAGS})",
        )
    return names


def check_slug_param(slug: str) -> str:
    """Validate a slug taken from the URL path."""
    try:
        return validate_slug(slug)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def validation_error_detail(error: PromptValidationError) -> dict:
    """Error body for a PromptValidationError."""
    return {"message": str(error), "field": error.field, "error_code": "VALIDATION_ERROR"}


def slug_conflict_detail(error: SlugConflictError) -> dict:
    """Error body for a SlugConflictError."""
    return {"message": str(error), "slug": error.slug, "error_code": "SLUG_CONFLICT"}


@router.get("/", response_model=list[PromptResponse])
async def list_prompts(
    q: str | None = Query(
        default=None,
        description="Search query (matches slug, name, description, content)",
    ),
    tags: str | None = Query(
        default=None,
        description="Comma-separated tags; prompts with any of them match",
    ),
    limit: int | None = Query(default=None, description="Page size (default 50, max 1000)"),
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> list[PromptResponse]:
    """
    List the current user's prompts in ranked order.

    - **q**: Text search. When blank, returns the ranked list (pinned first, then used
      prompts by engagement, then the rest).
    - **tags**: Filter to prompts carrying any of these tags (case-insensitive, max 20)
    - **limit**: Page size, clamped to [1, 1000]
    """
    tag_filter = parse_tag_filter(tags)
    prompts = await service.search(db, owner_id, q, tags=tag_filter, limit=limit)
    return [to_dto(prompt) for prompt in prompts]


@router.get("/tags", response_model=TagListResponse)
async def list_tags(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> TagListResponse:
    """List the tags used across the current user's prompts, most used first."""
    return TagListResponse(tags=await service.list_tags(db, owner_id))


@router.post("/", response_model=PromptBatchCreateResponse, status_code=201)
async def create_prompts(
    data: PromptBatchCreate,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> PromptBatchCreateResponse:
    """Create one or more prompts. The batch is atomic: all are created or none."""
    try:
        prompts = await service.insert_many(db, owner_id, data.prompts)
    except SlugConflictError as e:
        raise HTTPException(status_code=409, detail=slug_conflict_detail(e))
    except PromptValidationError as e:
        raise HTTPException(status_code=400, detail=validation_error_detail(e))
    return PromptBatchCreateResponse(slugs=[prompt.slug for prompt in prompts])


@router.get("/export")
async def export_prompts(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> FastAPIResponse:
    """Download the current user's prompts as a YAML document."""
    prompts = await service.list_ranked(db, owner_id, limit=MAX_LIMIT)
    filename = f"prompts-{datetime.now(UTC).date().isoformat()}.yaml"
    return FastAPIResponse(
        content=export_prompts_yaml(prompts),
        media_type="application/x-yaml",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import/preview", response_model=PromptImportPreviewResponse)
async def preview_prompt_import(
    data: PromptImportPreviewRequest,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> PromptImportPreviewResponse:
    """
    Parse a YAML document without importing it.

    Lists the valid prompts, flagging those whose slug already exists, plus an error
    for each invalid item.
    """
    try:
        preview = await preview_import(db, owner_id, service, data.yaml)
    except PromptValidationError as e:
        raise HTTPException(status_code=400, detail=validation_error_detail(e))
    return PromptImportPreviewResponse(
        prompts=[
            PromptImportPreviewItem(
                slug=prompt.slug,
                name=prompt.name,
                description=prompt.description,
                tags=prompt.tags,
                duplicate=prompt.slug in preview.existing,
            )
            for prompt in preview.prompts
        ],
        errors=[str(error) for error in preview.errors],
    )


@router.post("/import", response_model=PromptImportResponse, status_code=201)
async def import_prompt_document(
    data: PromptImportRequest,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> PromptImportResponse:
    """
    Import prompts from a YAML document.

    - **slugs**: Optional selection; only these prompts are imported
    - Prompts whose slug already exists (or repeats in the document) are skipped
    - Invalid prompts are reported in `errors`; the valid ones are still imported
    """
    try:
        result = await import_prompts(db, owner_id, service, data.yaml, slugs=data.slugs)
    except PromptValidationError as e:
        raise HTTPException(status_code=400, detail=validation_error_detail(e))
    return PromptImportResponse(
        created=len(result.created),
        slugs=[prompt.slug for prompt in result.created],
        skipped=result.skipped,
        errors=[str(error) for error in result.errors],
    )


@router.get("/{slug}", response_model=PromptResponse)
async def get_prompt(
    slug: str,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> PromptResponse:
    """Get a prompt by slug."""
    prompt = await service.get_by_slug(db, owner_id, check_slug_param(slug))
    if prompt is None:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return to_dto(prompt)


@router.put("/{slug}", response_model=PromptUpdateResponse)
async def update_prompt(
    slug: str,
    data: PromptInput,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> PromptUpdateResponse:
    """Replace a prompt's fields and tags. The slug may be changed to a free one."""
    try:
        prompt = await service.update_by_slug(db, owner_id, check_slug_param(slug), data)
    except SlugConflictError as e:
        raise HTTPException(status_code=409, detail=slug_conflict_detail(e))
    except PromptValidationError as e:
        raise HTTPException(status_code=400, detail=validation_error_detail(e))
    if prompt is None:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return PromptUpdateResponse(updated=True)


@router.delete("/{slug}", response_model=PromptDeleteResponse)
async def delete_prompt(
    slug: str,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> PromptDeleteResponse:
    """Delete a prompt. Returns deleted=false if it did not exist."""
    deleted = await service.delete_by_slug(db, owner_id, check_slug_param(slug))
    return PromptDeleteResponse(deleted=deleted)


@router.patch("/{slug}/flags", response_model=PromptUpdateResponse)
async def update_prompt_flags(
    slug: str,
    data: PromptFlagsUpdate,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> PromptUpdateResponse:
    """Set the pinned and/or favorited flags. Omitted flags are unchanged."""
    if data.pinned is None and data.favorited is None:
        raise HTTPException(
            status_code=400,
            detail="At least one of pinned or favorited is required",
        )
    updated = await service.update_flags(
        db, owner_id, check_slug_param(slug), pinned=data.pinned, favorited=data.favorited,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return PromptUpdateResponse(updated=True)


@router.post("/{slug}/usage", status_code=204)
async def track_prompt_usage(
    slug: str,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_async_session),
    service: PromptService = Depends(get_prompt_service),
) -> None:
    """Record that a prompt was used."""
    tracked = await service.track_usage(db, owner_id, check_slug_param(slug))
    if not tracked:
        raise HTTPException(status_code=404, detail="Prompt not found")
