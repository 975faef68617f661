"""
Service layer for tag operations.

Prompts carry a denormalized `tag_names` list for fast reads and filtering. Two storage
strategies keep it correct, selected once per process through get_tag_store():

- RelationalTagStore: tags are per-owner records linked through the prompt_tags join
  table. Every join-row insert or delete is followed, in the same session, by
  sync_prompt_tag_names(), which recomputes the prompt's tag names from the surviving
  join rows and writes them only when they changed. Tags left without join rows are
  deleted.
- InlineTagStore: normalized tag names are written straight onto the prompt. No join
  rows, no tag records, nothing to clean up.
"""
import logging
from abc import ABC, abstractmethod
from collections import Counter
from uuid import UUID

from sqlalchemy import delete, exists, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import TagStrategy
from models.prompt import Prompt
from models.tag import Tag, prompt_tags
from schemas.tag import TagCount
from schemas.validators import validate_and_normalize_tag, validate_and_normalize_tags

logger = logging.getLogger(__name__)


# =============================================================================
# Tag records
# =============================================================================


async def get_tags_by_name(
    db: AsyncSession,
    owner_id: str,
    tag_name: str,
) -> list[Tag]:
    """
    Get every tag record with this name for an owner, oldest first.

    More than one record only exists transiently, between a racing create and its
    reconciliation.
    """
    normalized = tag_name.lower().strip()
    result = await db.execute(
        select(Tag)
        .where(Tag.owner_id == owner_id, Tag.name == normalized)
        .order_by(Tag.created_at.asc(), Tag.id.asc()),
    )
    return list(result.scalars().all())


async def reconcile_tag_duplicates(
    db: AsyncSession,
    owner_id: str,
    tag_name: str,
) -> UUID | None:
    """
    Converge all records for a tag name to the oldest one.

    Join rows pointing at a younger duplicate are moved to the survivor (or dropped if
    the prompt is already linked to it), then the duplicate is deleted. Safe to run any
    number of times.

    Returns:
        The id of the surviving record, or None if no record exists.
    """
    tags = await get_tags_by_name(db, owner_id, tag_name)
    if not tags:
        return None

    survivor, *duplicates = tags
    if not duplicates:
        return survivor.id

    logger.info(
        "Reconciling %d duplicate tag record(s) for owner=%s name=%s, keeping %s",
        len(duplicates),
        owner_id,
        survivor.name,
        survivor.id,
    )
    linked_to_survivor = select(prompt_tags.c.prompt_id).where(
        prompt_tags.c.tag_id == survivor.id,
    )
    for duplicate in duplicates:
        await db.execute(
            update(prompt_tags)
            .where(
                prompt_tags.c.tag_id == duplicate.id,
                prompt_tags.c.prompt_id.not_in(linked_to_survivor),
            )
            .values(tag_id=survivor.id),
        )
        await db.execute(delete(prompt_tags).where(prompt_tags.c.tag_id == duplicate.id))
        await db.delete(duplicate)

    await db.flush()
    return survivor.id


async def find_or_create_tag(
    db: AsyncSession,
    owner_id: str,
    tag_name: str,
) -> UUID:
    """
    Find an owner's tag by name, creating it if missing.

    If another writer created the same name concurrently, reconciliation keeps the
    oldest record and deletes the rest, including the one created here if it is not
    the oldest. Every caller therefore gets the same surviving id.

    Args:
        db: Database session.
        owner_id: Owner to scope the tag.
        tag_name: Tag name (normalized before lookup).

    Returns:
        The id of the canonical tag record.

    Raises:
        ValueError: If the tag name is invalid.
        RuntimeError: If every record for the name vanished before it could be returned.
    """
    normalized = validate_and_normalize_tag(tag_name)

    existing = await get_tags_by_name(db, owner_id, normalized)
    if len(existing) == 1:
        return existing[0].id

    if not existing:
        db.add(Tag(owner_id=owner_id, name=normalized))
        await db.flush()

    survivor_id = await reconcile_tag_duplicates(db, owner_id, normalized)
    if survivor_id is None:
        # Deleted by a concurrent orphan cleanup between our flush and the lookup
        raise RuntimeError(f"Tag '{normalized}' was deleted while being created")
    return survivor_id


async def delete_orphaned_tags(db: AsyncSession, tag_ids: set[UUID]) -> int:
    """
    Delete tags that no join row references any more.

    Returns:
        Number of tags deleted.
    """
    deleted = 0
    for tag_id in tag_ids:
        referenced = await db.scalar(
            select(exists().where(prompt_tags.c.tag_id == tag_id)),
        )
        if referenced:
            continue
        tag = await db.get(Tag, tag_id)
        if tag is not None:
            await db.delete(tag)
            deleted += 1
    if deleted:
        await db.flush()
    return deleted


# =============================================================================
# Denormalized tag names
# =============================================================================


async def compute_prompt_tag_names(db: AsyncSession, prompt_id: UUID) -> list[str]:
    """Return the sorted, distinct tag names reachable from a prompt's join rows."""
    result = await db.execute(
        select(Tag.name)
        .join(prompt_tags, prompt_tags.c.tag_id == Tag.id)
        .where(prompt_tags.c.prompt_id == prompt_id),
    )
    return sorted(set(result.scalars().all()))


async def sync_prompt_tag_names(db: AsyncSession, prompt_id: UUID) -> bool:
    """
    Recompute a prompt's tag_names from its join rows.

    Runs after every join-row insert or delete. Writes only when the computed list
    differs from the stored one, so repeated runs converge and produce no further
    writes.

    Returns:
        True if tag_names was written, False if it was already current (or the prompt
        no longer exists).
    """
    prompt = await db.get(Prompt, prompt_id)
    if prompt is None:
        return False

    names = await compute_prompt_tag_names(db, prompt_id)
    if list(prompt.tag_names or []) == names:
        return False

    prompt.tag_names = names
    await db.flush()
    return True


async def add_prompt_tag(db: AsyncSession, prompt_id: UUID, tag_id: UUID) -> None:
    """Insert a join row (if absent) and resync the prompt's tag names."""
    linked = await db.scalar(
        select(
            exists().where(
                prompt_tags.c.prompt_id == prompt_id,
                prompt_tags.c.tag_id == tag_id,
            ),
        ),
    )
    if not linked:
        await db.execute(insert(prompt_tags).values(prompt_id=prompt_id, tag_id=tag_id))
    await sync_prompt_tag_names(db, prompt_id)


async def remove_prompt_tag(db: AsyncSession, prompt_id: UUID, tag_id: UUID) -> None:
    """Delete a join row and resync the prompt's tag names."""
    await db.execute(
        delete(prompt_tags).where(
            prompt_tags.c.prompt_id == prompt_id,
            prompt_tags.c.tag_id == tag_id,
        ),
    )
    await sync_prompt_tag_names(db, prompt_id)


async def get_prompt_tag_ids(db: AsyncSession, prompt_id: UUID) -> set[UUID]:
    """Return the tag ids currently linked to a prompt."""
    result = await db.execute(
        select(prompt_tags.c.tag_id).where(prompt_tags.c.prompt_id == prompt_id),
    )
    return set(result.scalars().all())


async def get_owner_tags_with_counts(db: AsyncSession, owner_id: str) -> list[TagCount]:
    """
    Get the distinct tags across an owner's prompts with usage counts.

    Reads the denormalized tag_names, so it works the same for either strategy.

    Returns:
        List of TagCount objects sorted by count desc, then name asc.
    """
    result = await db.execute(select(Prompt.tag_names).where(Prompt.owner_id == owner_id))
    counts: Counter[str] = Counter()
    for names in result.scalars().all():
        counts.update(set(names or []))
    return [
        TagCount(name=name, count=count)
        for name, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]


# =============================================================================
# Storage strategies
# =============================================================================


class TagStore(ABC):
    """Keeps a prompt's tags and its denormalized tag_names in step."""

    strategy: TagStrategy

    @abstractmethod
    async def set_tags(self, db: AsyncSession, prompt: Prompt, tag_names: list[str]) -> None:
        """
        Replace a prompt's tags. The prompt must already be flushed.

        Raises:
            ValueError: If any tag name is invalid.
        """
        ...

    @abstractmethod
    async def clear_tags(self, db: AsyncSession, prompt: Prompt) -> None:
        """Remove all of a prompt's tag associations before the prompt is deleted."""
        ...


class RelationalTagStore(TagStore):
    """Tags as per-owner records joined through prompt_tags."""

    strategy: TagStrategy = "relational"

    async def set_tags(self, db: AsyncSession, prompt: Prompt, tag_names: list[str]) -> None:
        """Diff the prompt's join rows against tag_names and apply the difference."""
        normalized = validate_and_normalize_tags(tag_names)

        desired: set[UUID] = set()
        for name in normalized:
            desired.add(await find_or_create_tag(db, prompt.owner_id, name))

        current = await get_prompt_tag_ids(db, prompt.id)
        for tag_id in desired - current:
            await add_prompt_tag(db, prompt.id, tag_id)

        removed = current - desired
        for tag_id in removed:
            await remove_prompt_tag(db, prompt.id, tag_id)
        await delete_orphaned_tags(db, removed)

        # Covers the no-diff case, e.g. a prompt whose stored names drifted
        await sync_prompt_tag_names(db, prompt.id)

    async def clear_tags(self, db: AsyncSession, prompt: Prompt) -> None:
        """Delete all join rows for the prompt, then any tags they orphaned."""
        current = await get_prompt_tag_ids(db, prompt.id)
        for tag_id in current:
            await remove_prompt_tag(db, prompt.id, tag_id)
        await delete_orphaned_tags(db, current)


class InlineTagStore(TagStore):
    """Tag names stored directly on the prompt."""

    strategy: TagStrategy = "inline"

    async def set_tags(self, db: AsyncSession, prompt: Prompt, tag_names: list[str]) -> None:
        """Normalize, de-duplicate and write the names onto the prompt."""
        names = sorted(validate_and_normalize_tags(tag_names))
        if list(prompt.tag_names or []) != names:
            prompt.tag_names = names
            await db.flush()

    async def clear_tags(self, db: AsyncSession, prompt: Prompt) -> None:
        """Nothing to do: the names are deleted with the prompt."""
        return


def get_tag_store(strategy: TagStrategy) -> TagStore:
    """Build the tag store for the configured strategy."""
    if strategy == "relational":
        return RelationalTagStore()
    if strategy == "inline":
        return InlineTagStore()
    raise ValueError(f"Unknown tag strategy: {strategy!r}")
