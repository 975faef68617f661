"""Service layer for prompt CRUD, ranked listing and search."""
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import ValidationError
from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.authorization import AuthorizationRules, CallerContext, Operation
from models.prompt import Prompt
from schemas.prompt import PromptInput, PromptResponse
from schemas.tag import TagCount
from services.exceptions import PromptValidationError, SlugConflictError
from services.ranking import rerank
from services.ranking_config_service import get_ranking_config
from services.search_index import PromptSearchIndex, SqlPromptSearchIndex
from services.tag_service import TagStore, get_owner_tags_with_counts
from services.utils import build_search_text, normalize_query, now_ms

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 1000

# Page size for the owner scan behind the ranked list
SCAN_PAGE_SIZE = 500


def clamp_limit(limit: int | None) -> int:
    """Apply the default page size and clamp caller-supplied values to [1, MAX_LIMIT]."""
    if limit is None:
        return DEFAULT_LIMIT
    return max(1, min(limit, MAX_LIMIT))


def normalize_tag_filter(tags: Iterable[str] | None) -> set[str]:
    """Lowercase and trim filter tags, dropping empty entries."""
    if not tags:
        return set()
    return {tag.strip().lower() for tag in tags if tag.strip()}


def filter_by_tags(prompts: Iterable[Prompt], tag_filter: set[str]) -> list[Prompt]:
    """Keep prompts that carry at least one tag in the filter (case-insensitive)."""
    if not tag_filter:
        return list(prompts)
    return [
        prompt for prompt in prompts
        if any(name.lower() in tag_filter for name in (prompt.tag_names or []))
    ]


def validate_prompt_input(item: PromptInput | Mapping[str, Any], index: int | None = None) -> PromptInput:
    """
    Validate one raw prompt record.

    Args:
        item: A PromptInput (returned unchanged) or a mapping to validate.
        index: Position of the item in a batch, included in error fields.

    Returns:
        The normalized PromptInput.

    Raises:
        PromptValidationError: With the first failing field and its reason.
    """
    if isinstance(item, PromptInput):
        return item
    try:
        return PromptInput.model_validate(item)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "prompt"
        if index is not None:
            field = f"prompts[{index}].{field}"
        # Pydantic prefixes messages from ValueError with "Value error, "
        reason = error["msg"].removeprefix("Value error, ")
        raise PromptValidationError(field, reason) from e


def to_dto(prompt: Prompt) -> PromptResponse:
    """Map a stored prompt to its outward DTO."""
    return PromptResponse(
        slug=prompt.slug,
        name=prompt.name,
        description=prompt.description,
        content=prompt.content,
        tags=list(prompt.tag_names or []),
        parameters=prompt.parameters,
        pinned=bool(prompt.pinned),
        favorited=bool(prompt.favorited),
        usage_count=prompt.usage_count or 0,
        last_used_at=prompt.last_used_at,
    )


class PromptService:
    """
    Prompt operations for one owner at a time.

    Every query is scoped by owner_id; every document read or written also passes the
    injected authorization rules. Tags go through the injected TagStore, and text search
    through the injected PromptSearchIndex.
    """

    table = "prompts"

    def __init__(
        self,
        rules: AuthorizationRules,
        tag_store: TagStore,
        search_index: PromptSearchIndex | None = None,
    ) -> None:
        self.rules = rules
        self.tag_store = tag_store
        self.search_index = search_index or SqlPromptSearchIndex()

    def _check(self, owner_id: str, operation: Operation, prompt: Prompt) -> None:
        self.rules.check(CallerContext(owner_id=owner_id), self.table, operation, prompt)

    async def _get(self, db: AsyncSession, owner_id: str, slug: str) -> Prompt | None:
        result = await db.execute(
            select(Prompt).where(Prompt.owner_id == owner_id, Prompt.slug == slug),
        )
        return result.scalar_one_or_none()

    async def _scan_owner(self, db: AsyncSession, owner_id: str) -> list[Prompt]:
        """Read all of an owner's prompts, SCAN_PAGE_SIZE rows per query."""
        prompts: list[Prompt] = []
        last_id = None
        while True:
            query = (
                select(Prompt)
                .where(Prompt.owner_id == owner_id)
                .order_by(Prompt.id)
                .limit(SCAN_PAGE_SIZE)
            )
            if last_id is not None:
                query = query.where(Prompt.id > last_id)
            result = await db.execute(query)
            page = list(result.scalars().all())
            prompts.extend(page)
            if len(page) < SCAN_PAGE_SIZE:
                return prompts
            last_id = page[-1].id

    # --- Reads ---

    async def slug_exists(self, db: AsyncSession, owner_id: str, slug: str) -> bool:
        """Check if the owner already has a prompt with this slug."""
        return bool(
            await db.scalar(
                select(exists().where(Prompt.owner_id == owner_id, Prompt.slug == slug)),
            ),
        )

    async def existing_slugs(
        self,
        db: AsyncSession,
        owner_id: str,
        slugs: Iterable[str],
    ) -> set[str]:
        """Return the subset of slugs the owner already uses."""
        wanted = set(slugs)
        if not wanted:
            return set()
        result = await db.execute(
            select(Prompt.slug).where(Prompt.owner_id == owner_id, Prompt.slug.in_(wanted)),
        )
        return set(result.scalars().all())

    async def get_by_slug(self, db: AsyncSession, owner_id: str, slug: str) -> Prompt | None:
        """
        Get a prompt by slug, scoped to owner.

        Returns:
            The prompt if found, None otherwise.
        """
        prompt = await self._get(db, owner_id, slug)
        if prompt is not None:
            self._check(owner_id, Operation.READ, prompt)
        return prompt

    async def list_ranked(
        self,
        db: AsyncSession,
        owner_id: str,
        tags: Iterable[str] | None = None,
        limit: int | None = None,
        now: int | None = None,
    ) -> list[Prompt]:
        """
        List an owner's prompts in ranked order.

        Pinned prompts come first, then used prompts, then by engagement score.

        Args:
            db: Database session.
            owner_id: Owner to scope the list.
            tags: Optional filter; a prompt matches if it has any of these tags.
            limit: Page size (default 50, clamped to [1, 1000]).
            now: Current time in epoch ms (defaults to the wall clock).

        Returns:
            Up to `limit` prompts.
        """
        limit = clamp_limit(limit)
        now = now_ms() if now is None else now
        config = await get_ranking_config(db)

        candidates = await self._scan_owner(db, owner_id)
        for prompt in candidates:
            self._check(owner_id, Operation.READ, prompt)

        candidates = filter_by_tags(candidates, normalize_tag_filter(tags))
        return rerank(candidates, config.weights, "list", now)[:limit]

    async def search(
        self,
        db: AsyncSession,
        owner_id: str,
        query: str | None,
        tags: Iterable[str] | None = None,
        limit: int | None = None,
        now: int | None = None,
    ) -> list[Prompt]:
        """
        Search an owner's prompts and rank the matches.

        A blank query falls through to list_ranked with the same tags and limit.

        Without a tag filter the search index is asked for exactly `limit` results.
        With one, tag filtering happens after the index returns, so the index is asked
        for up to search_rerank_limit candidates (never fewer than `limit`, never more
        than MAX_LIMIT) to leave headroom for the filter.

        Returns:
            Up to `limit` prompts ranked in search mode.
        """
        normalized = normalize_query(query)
        if not normalized:
            return await self.list_ranked(db, owner_id, tags=tags, limit=limit, now=now)

        limit = clamp_limit(limit)
        now = now_ms() if now is None else now
        config = await get_ranking_config(db)
        tag_filter = normalize_tag_filter(tags)

        fetch_size = limit
        if tag_filter:
            fetch_size = max(limit, min(MAX_LIMIT, config.search_rerank_limit))

        candidates = await self.search_index.search(db, owner_id, normalized, fetch_size)
        for prompt in candidates:
            self._check(owner_id, Operation.READ, prompt)

        candidates = filter_by_tags(candidates, tag_filter)
        return rerank(candidates, config.weights, "search", now)[:limit]

    async def list_tags(self, db: AsyncSession, owner_id: str) -> list[TagCount]:
        """Get the owner's tags with the number of prompts carrying each."""
        return await get_owner_tags_with_counts(db, owner_id)

    # --- Writes ---

    async def insert_many(
        self,
        db: AsyncSession,
        owner_id: str,
        items: Sequence[PromptInput | Mapping[str, Any]],
    ) -> list[Prompt]:
        """
        Insert a batch of prompts atomically.

        Every item is validated, and every slug checked against the rest of the batch
        and against stored prompts, before anything is written. Any failure rejects the
        whole batch with nothing persisted.

        Args:
            db: Database session.
            owner_id: Owner of the new prompts.
            items: PromptInput objects or raw mappings.

        Returns:
            The created prompts, in input order.

        Raises:
            PromptValidationError: If any item is invalid.
            SlugConflictError: If a slug repeats within the batch or already exists.
        """
        inputs = [validate_prompt_input(item, index) for index, item in enumerate(items)]

        seen: set[str] = set()
        for data in inputs:
            if data.slug in seen:
                raise SlugConflictError(data.slug, in_batch=True)
            seen.add(data.slug)

        for data in inputs:
            if await self.slug_exists(db, owner_id, data.slug):
                raise SlugConflictError(data.slug)

        prompts = []
        for data in inputs:
            prompt = Prompt(owner_id=owner_id, tag_names=[])
            self._apply_input(prompt, data)
            self._check(owner_id, Operation.INSERT, prompt)
            db.add(prompt)
            prompts.append(prompt)

        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            # A concurrent writer took one of the slugs after our existence check
            if "uq_prompts_owner_id_slug" in str(e) or "UNIQUE" in str(e):
                raise SlugConflictError(_first_conflict(inputs, str(e))) from e
            raise

        for prompt, data in zip(prompts, inputs, strict=True):
            await self.tag_store.set_tags(db, prompt, data.tags)

        logger.info("Inserted %d prompt(s) for owner=%s", len(prompts), owner_id)
        return prompts

    async def update_by_slug(
        self,
        db: AsyncSession,
        owner_id: str,
        slug: str,
        data: PromptInput | Mapping[str, Any],
    ) -> Prompt | None:
        """
        Replace a prompt's content fields and tags.

        The slug itself may change if the new one is free.

        Returns:
            The updated prompt, or None if not found.

        Raises:
            PromptValidationError: If the input is invalid.
            SlugConflictError: If renaming onto a slug that already exists.
        """
        data = validate_prompt_input(data)

        prompt = await self._get(db, owner_id, slug)
        if prompt is None:
            return None
        self._check(owner_id, Operation.MODIFY, prompt)

        if data.slug != slug and await self.slug_exists(db, owner_id, data.slug):
            raise SlugConflictError(data.slug)

        self._apply_input(prompt, data)
        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            raise SlugConflictError(data.slug) from e

        await self.tag_store.set_tags(db, prompt, data.tags)
        return prompt

    async def delete_by_slug(self, db: AsyncSession, owner_id: str, slug: str) -> bool:
        """
        Delete a prompt with its tag associations and any tags left unused.

        Returns:
            True if deleted, False if not found.
        """
        prompt = await self._get(db, owner_id, slug)
        if prompt is None:
            return False
        self._check(owner_id, Operation.DELETE, prompt)

        await self.tag_store.clear_tags(db, prompt)
        await db.delete(prompt)
        await db.flush()
        return True

    async def update_flags(
        self,
        db: AsyncSession,
        owner_id: str,
        slug: str,
        pinned: bool | None = None,
        favorited: bool | None = None,
    ) -> bool:
        """
        Set pinned and/or favorited. None leaves a flag unchanged.

        Returns:
            True if the prompt exists, False if not found.
        """
        prompt = await self._get(db, owner_id, slug)
        if prompt is None:
            return False
        self._check(owner_id, Operation.MODIFY, prompt)

        if pinned is not None:
            prompt.pinned = pinned
        if favorited is not None:
            prompt.favorited = favorited
        await db.flush()
        return True

    async def track_usage(
        self,
        db: AsyncSession,
        owner_id: str,
        slug: str,
        now: int | None = None,
    ) -> bool:
        """
        Record one use of a prompt: increment usage_count and set last_used_at.

        Read-increment-write rather than an atomic counter. Exact under the
        serializable transactions this runs in; under weaker isolation two concurrent
        uses can count once.

        Returns:
            True if updated, False if not found.
        """
        prompt = await self._get(db, owner_id, slug)
        if prompt is None:
            return False
        self._check(owner_id, Operation.MODIFY, prompt)

        prompt.usage_count = (prompt.usage_count or 0) + 1
        prompt.last_used_at = now_ms() if now is None else now
        await db.flush()
        return True

    # --- Helpers ---

    @staticmethod
    def _apply_input(prompt: Prompt, data: PromptInput) -> None:
        """Copy content fields from validated input and rebuild search_text."""
        prompt.slug = data.slug
        prompt.name = data.name
        prompt.description = data.description
        prompt.content = data.content
        prompt.parameters = (
            [param.model_dump(exclude_none=True) for param in data.parameters]
            if data.parameters is not None
            else None
        )
        prompt.search_text = build_search_text(
            data.slug, data.name, data.description, data.content,
        )


def _first_conflict(inputs: list[PromptInput], message: str) -> str:
    """Best-effort: name the slug from an integrity error message."""
    for data in inputs:
        if data.slug in message:
            return data.slug
    return inputs[0].slug
