"""Tests for YAML export and import of prompts."""
import pytest
import yaml
from sqlalchemy.ext.asyncio import AsyncSession

from core.authorization import AuthorizationRules
from services.exceptions import PromptValidationError
from services.prompt_service import PromptService
from services.prompt_transfer import (
    MAX_IMPORT_PROMPTS,
    collect_prompts_yaml,
    export_prompts_yaml,
    import_prompts,
    parse_prompts_yaml,
    preview_import,
    select_import_candidates,
)
from services.tag_service import RelationalTagStore
from tests.conftest import OTHER_OWNER_ID, OWNER_ID

IMPORT_DOCUMENT = """
prompts:
  - slug: code-review
    name: Code Review
    description: Review a diff
    content: |
      Review the following change.
      Be concise.
    tags: [Code, review]
    parameters:
      - name: language
        type: string
        required: true
  - slug: summarize
    name: Summarize
    description: Summarize text
    content: Summarize this.
"""

SINGLE_PROMPT = """
prompts:
  - slug: tagged
    name: Tagged
    description: Has tags
    content: Body
"""


@pytest.fixture
def service(rules: AuthorizationRules) -> PromptService:
    return PromptService(rules=rules, tag_store=RelationalTagStore())


# =============================================================================
# parse_prompts_yaml Tests
# =============================================================================


def test__parse_prompts_yaml__validates_and_normalizes() -> None:
    inputs = parse_prompts_yaml(IMPORT_DOCUMENT)

    assert [i.slug for i in inputs] == ["code-review", "summarize"]
    assert inputs[0].tags == ["code", "review"]
    assert inputs[0].content == "Review the following change.\nBe concise.\n"
    assert inputs[0].parameters[0].name == "language"
    assert inputs[1].tags == []


def test__parse_prompts_yaml__invalid_item_names_index() -> None:
    document = IMPORT_DOCUMENT + """
  - slug: Bad Slug
    name: Bad
    description: Bad
    content: Bad
"""
    with pytest.raises(PromptValidationError) as exc_info:
        parse_prompts_yaml(document)

    assert exc_info.value.field == "prompts[2].slug"


@pytest.mark.parametrize(
    "document",
    [
        "prompts: [unclosed",
        "just a string",
        "items: []",
        "prompts: not-a-list",
    ],
)
def test__parse_prompts_yaml__rejects_malformed_documents(document: str) -> None:
    with pytest.raises(PromptValidationError) as exc_info:
        parse_prompts_yaml(document)
    assert exc_info.value.field == "yaml"


def test__parse_prompts_yaml__rejects_non_mapping_item() -> None:
    with pytest.raises(PromptValidationError) as exc_info:
        parse_prompts_yaml("prompts:\n  - just-a-string\n")
    assert exc_info.value.field == "prompts[0]"


def test__parse_prompts_yaml__rejects_too_many_prompts() -> None:
    items = [
        {"slug": f"p-{i}", "name": "n", "description": "d", "content": "c"}
        for i in range(MAX_IMPORT_PROMPTS + 1)
    ]
    with pytest.raises(PromptValidationError, match="Too many prompts"):
        parse_prompts_yaml(yaml.safe_dump({"prompts": items}))


@pytest.mark.parametrize(
    ("tags", "reason"),
    [
        ("[2024]", "Tags must be strings"),
        ("[web, 3.5]", "Tags must be strings"),
        ("python", "Tags must be a list of strings"),
        ("{a: b}", "Tags must be a list of strings"),
    ],
)
def test__parse_prompts_yaml__rejects_non_string_tags(tags: str, reason: str) -> None:
    document = SINGLE_PROMPT + f"    tags: {tags}\n"

    with pytest.raises(PromptValidationError, match=reason) as exc_info:
        parse_prompts_yaml(document)

    assert exc_info.value.field == "prompts[0].tags"


# =============================================================================
# export_prompts_yaml Tests
# =============================================================================


async def test__export_prompts_yaml__strips_engagement_fields(
    db_session: AsyncSession,
    service: PromptService,
) -> None:
    prompts = await service.insert_many(db_session, OWNER_ID, parse_prompts_yaml(IMPORT_DOCUMENT))
    await service.update_flags(db_session, OWNER_ID, "summarize", pinned=True)

    document = yaml.safe_load(export_prompts_yaml(prompts))

    assert document["prompts"][0] == {
        "slug": "code-review",
        "name": "Code Review",
        "description": "Review a diff",
        "content": "Review the following change.\nBe concise.\n",
        "tags": ["code", "review"],
        "parameters": [{"name": "language", "type": "string", "required": True}],
    }
    # No parameters key when the prompt has none
    assert set(document["prompts"][1]) == {"slug", "name", "description", "content", "tags"}


async def test__export_then_import__into_another_account(
    db_session: AsyncSession,
    service: PromptService,
) -> None:
    prompts = await service.insert_many(db_session, OWNER_ID, parse_prompts_yaml(IMPORT_DOCUMENT))

    imported = await service.insert_many(
        db_session, OTHER_OWNER_ID, parse_prompts_yaml(export_prompts_yaml(prompts)),
    )

    assert [p.slug for p in imported] == ["code-review", "summarize"]
    assert imported[0].tag_names == ["code", "review"]
    assert all(p.owner_id == OTHER_OWNER_ID for p in imported)


def test__export_prompts_yaml__empty() -> None:
    assert yaml.safe_load(export_prompts_yaml([])) == {"prompts": []}


# =============================================================================
# collect_prompts_yaml / select_import_candidates Tests
# =============================================================================


def test__collect_prompts_yaml__keeps_valid_and_reports_invalid() -> None:
    document = IMPORT_DOCUMENT + """
  - slug: Bad Slug
    name: Bad
    description: Bad
    content: Bad
  - just-a-string
"""
    parsed = collect_prompts_yaml(document)

    assert [p.slug for p in parsed.valid] == ["code-review", "summarize"]
    assert [e.field for e in parsed.errors] == ["prompts[2].slug", "prompts[3]"]


def test__collect_prompts_yaml__malformed_document_still_raises() -> None:
    with pytest.raises(PromptValidationError) as exc_info:
        collect_prompts_yaml("items: []")
    assert exc_info.value.field == "yaml"


def test__select_import_candidates__skips_existing_and_repeats() -> None:
    prompts = [
        parse_prompts_yaml(SINGLE_PROMPT.replace("tagged", slug))[0]
        for slug in ["a", "b", "a", "c"]
    ]

    to_create, skipped = select_import_candidates(prompts, existing={"c"})

    assert [p.slug for p in to_create] == ["a", "b"]
    assert skipped == ["a", "c"]


# =============================================================================
# preview_import / import_prompts Tests
# =============================================================================


async def test__preview_import__flags_existing_without_writing(
    db_session: AsyncSession,
    service: PromptService,
) -> None:
    await service.insert_many(db_session, OWNER_ID, parse_prompts_yaml(SINGLE_PROMPT))
    document = IMPORT_DOCUMENT + """
  - slug: tagged
    name: Tagged again
    description: Same slug
    content: Body
"""
    preview = await preview_import(db_session, OWNER_ID, service, document)

    assert [p.slug for p in preview.prompts] == ["code-review", "summarize", "tagged"]
    assert preview.existing == {"tagged"}
    assert preview.errors == []
    assert not await service.slug_exists(db_session, OWNER_ID, "code-review")


async def test__import_prompts__skips_existing_and_reports_errors(
    db_session: AsyncSession,
    service: PromptService,
) -> None:
    await service.insert_many(
        db_session, OTHER_OWNER_ID, parse_prompts_yaml(IMPORT_DOCUMENT),
    )
    await service.insert_many(db_session, OWNER_ID, parse_prompts_yaml(SINGLE_PROMPT))
    document = IMPORT_DOCUMENT + """
  - slug: tagged
    name: Tagged again
    description: Same slug
    content: Body
  - slug: Bad Slug
    name: Bad
    description: Bad
    content: Bad
"""
    result = await import_prompts(db_session, OWNER_ID, service, document)

    # Another owner's slugs do not count as taken
    assert [p.slug for p in result.created] == ["code-review", "summarize"]
    assert result.skipped == ["tagged"]
    assert [e.field for e in result.errors] == ["prompts[3].slug"]
    tagged = await service.get_by_slug(db_session, OWNER_ID, "tagged")
    assert tagged.name == "Tagged"


async def test__import_prompts__slug_selection(
    db_session: AsyncSession,
    service: PromptService,
) -> None:
    result = await import_prompts(
        db_session, OWNER_ID, service, IMPORT_DOCUMENT, slugs=["summarize", "unknown"],
    )

    assert [p.slug for p in result.created] == ["summarize"]
    assert not await service.slug_exists(db_session, OWNER_ID, "code-review")


async def test__import_prompts__nothing_valid_raises(
    db_session: AsyncSession,
    service: PromptService,
) -> None:
    with pytest.raises(PromptValidationError) as exc_info:
        await import_prompts(db_session, OWNER_ID, service, SINGLE_PROMPT, slugs=[])
    assert exc_info.value.field == "prompts"

    with pytest.raises(PromptValidationError) as exc_info:
        await import_prompts(
            db_session, OWNER_ID, service, SINGLE_PROMPT + "    tags: [2024]\n",
        )
    assert exc_info.value.field == "prompts[0].tags"


async def test__import_prompts__slug_taken_after_check_is_skipped(
    db_session: AsyncSession,
    service: PromptService,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A slug stored between the existence check and the insert is skipped, not fatal."""
    await service.insert_many(db_session, OWNER_ID, parse_prompts_yaml(SINGLE_PROMPT))

    async def nothing_exists(*args: object, **kwargs: object) -> set[str]:
        return set()

    monkeypatch.setattr(service, "existing_slugs", nothing_exists)
    document = SINGLE_PROMPT + """
  - slug: fresh
    name: Fresh
    description: New
    content: Body
"""
    result = await import_prompts(db_session, OWNER_ID, service, document)

    assert [p.slug for p in result.created] == ["fresh"]
    assert result.skipped == ["tagged"]
