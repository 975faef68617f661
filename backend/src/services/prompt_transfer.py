"""
YAML export and import of prompt libraries.

The document shape is a single top-level `prompts` list:

    prompts:
      - slug: code-review
        name: Code Review
        description: Review a diff
        content: Review the following change...
        tags: [code, review]
        parameters:            # omitted when the prompt has none
          - name: language
            type: string
            required: true

Engagement fields (pinned, favorited, usage) are never exported. On import, prompts
whose slug the owner already uses, or that repeat a slug earlier in the document, are
skipped rather than failing the import.
"""
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import yaml
from sqlalchemy.ext.asyncio import AsyncSession

from models.prompt import Prompt
from schemas.prompt import PromptInput
from services.exceptions import PromptValidationError, SlugConflictError
from services.prompt_service import PromptService, validate_prompt_input

MAX_IMPORT_PROMPTS = 1000


def prompt_to_export_dict(prompt: Prompt) -> dict[str, Any]:
    """Map a stored prompt to its export record."""
    exported: dict[str, Any] = {
        "slug": prompt.slug,
        "name": prompt.name,
        "description": prompt.description,
        "content": prompt.content,
        "tags": list(prompt.tag_names or []),
    }
    if prompt.parameters:
        exported["parameters"] = prompt.parameters
    return exported


def export_prompts_yaml(prompts: Iterable[Prompt]) -> str:
    """Serialize prompts to a YAML export document."""
    document = {"prompts": [prompt_to_export_dict(prompt) for prompt in prompts]}
    return yaml.safe_dump(
        document,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )


@dataclass
class ParsedImport:
    """Result of parsing an import document item by item."""

    valid: list[PromptInput] = field(default_factory=list)
    errors: list[PromptValidationError] = field(default_factory=list)


@dataclass
class ImportPreview:
    """Valid prompts of an import document and which of their slugs are already taken."""

    prompts: list[PromptInput]
    existing: set[str]
    errors: list[PromptValidationError]


@dataclass
class ImportResult:
    """Outcome of an import: created prompts, skipped slugs and per-item errors."""

    created: list[Prompt]
    skipped: list[str]
    errors: list[PromptValidationError]


def _load_items(text: str) -> list[Any]:
    """Parse the document and return its raw `prompts` list."""
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PromptValidationError("yaml", f"Invalid YAML: {e}") from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("prompts"), list):
        raise PromptValidationError("yaml", "YAML must contain a top-level 'prompts' list")

    items = parsed["prompts"]
    if len(items) > MAX_IMPORT_PROMPTS:
        raise PromptValidationError(
            "prompts", f"Too many prompts (max {MAX_IMPORT_PROMPTS})",
        )
    return items


def collect_prompts_yaml(text: str) -> ParsedImport:
    """
    Parse an import document, validating each item independently.

    Invalid items are reported in `errors` (their field names the item index) instead
    of failing the whole document.

    Raises:
        PromptValidationError: If the YAML is malformed, lacks a top-level `prompts`
            list, or holds more than MAX_IMPORT_PROMPTS items.
    """
    parsed = ParsedImport()
    for index, item in enumerate(_load_items(text)):
        if not isinstance(item, dict):
            parsed.errors.append(
                PromptValidationError(f"prompts[{index}]", "Prompt must be a mapping"),
            )
            continue
        try:
            parsed.valid.append(validate_prompt_input(item, index))
        except PromptValidationError as e:
            parsed.errors.append(e)
    return parsed


def parse_prompts_yaml(text: str) -> list[PromptInput]:
    """
    Parse and validate a YAML import document.

    Every item is validated before anything is returned, so a caller that inserts the
    result in one batch either imports all of it or none of it.

    Raises:
        PromptValidationError: If the YAML is malformed, lacks a top-level `prompts`
            list, holds more than MAX_IMPORT_PROMPTS items, or any item is invalid
            (the field names the item index).
    """
    parsed = collect_prompts_yaml(text)
    if parsed.errors:
        raise parsed.errors[0]
    return parsed.valid


def select_import_candidates(
    prompts: list[PromptInput],
    existing: set[str],
) -> tuple[list[PromptInput], list[str]]:
    """
    Split prompts into those to create and the slugs to skip.

    A prompt is skipped when its slug is already stored or appeared earlier in the
    document; the first occurrence wins.
    """
    to_create: list[PromptInput] = []
    skipped: list[str] = []
    seen: set[str] = set()
    for prompt in prompts:
        if prompt.slug in existing or prompt.slug in seen:
            skipped.append(prompt.slug)
            continue
        seen.add(prompt.slug)
        to_create.append(prompt)
    return to_create, skipped


async def preview_import(
    db: AsyncSession,
    owner_id: str,
    service: PromptService,
    text: str,
) -> ImportPreview:
    """Parse an import document without writing, flagging slugs the owner already has."""
    parsed = collect_prompts_yaml(text)
    existing = await service.existing_slugs(db, owner_id, (p.slug for p in parsed.valid))
    return ImportPreview(prompts=parsed.valid, existing=existing, errors=parsed.errors)


async def import_prompts(
    db: AsyncSession,
    owner_id: str,
    service: PromptService,
    text: str,
    slugs: Iterable[str] | None = None,
) -> ImportResult:
    """
    Import the valid prompts of a YAML document.

    Invalid items are reported, not fatal. When `slugs` is given only those prompts are
    considered. Prompts whose slug is already stored or repeats within the document are
    skipped. The rest are inserted in one atomic batch; a slug taken by a concurrent
    writer in the meantime is moved to `skipped` and the batch retried without it.

    Raises:
        PromptValidationError: If the document is malformed, or no valid prompt is
            left to import.
    """
    parsed = collect_prompts_yaml(text)
    candidates = parsed.valid
    if slugs is not None:
        selected = set(slugs)
        candidates = [p for p in candidates if p.slug in selected]

    if not candidates:
        if parsed.errors:
            raise parsed.errors[0]
        raise PromptValidationError("prompts", "No valid prompts found")

    existing = await service.existing_slugs(db, owner_id, (p.slug for p in candidates))
    to_create, skipped = select_import_candidates(candidates, existing)

    created: list[Prompt] = []
    while to_create:
        try:
            created = await service.insert_many(db, owner_id, to_create)
            break
        except SlugConflictError as e:
            if e.slug not in {p.slug for p in to_create}:
                raise
            skipped.append(e.slug)
            to_create = [p for p in to_create if p.slug != e.slug]

    return ImportResult(created=created, skipped=skipped, errors=parsed.errors)
