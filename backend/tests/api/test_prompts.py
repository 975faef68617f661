"""Tests for prompt endpoints."""
import yaml
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_authorization_rules
from api.main import app
from core.authorization import AuthorizationRules, TableRules
from core.config import Settings
from tests.api.conftest import DEV_OWNER_ID, create_client, prompt_payload


async def create_prompts(client: AsyncClient, *payloads: dict) -> list[str]:
    response = await client.post("/prompts/", json={"prompts": list(payloads)})
    assert response.status_code == 201, response.text
    return response.json()["slugs"]


# =============================================================================
# Create
# =============================================================================


async def test_create_prompts_batch(client: AsyncClient) -> None:
    slugs = await create_prompts(
        client,
        prompt_payload("code-review", tags=["Code", "review"]),
        prompt_payload("summarize"),
    )
    assert slugs == ["code-review", "summarize"]

    response = await client.get("/prompts/code-review")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Name of code-review"
    assert data["tags"] == ["code", "review"]
    assert data["pinned"] is False
    assert data["usage_count"] == 0
    assert data["last_used_at"] is None
    assert "owner_id" not in data


async def test_create_prompts_duplicate_in_batch_creates_nothing(client: AsyncClient) -> None:
    response = await client.post(
        "/prompts/",
        json={"prompts": [prompt_payload("same-slug"), prompt_payload("same-slug")]},
    )
    assert response.status_code == 409
    assert response.json()["detail"]["error_code"] == "SLUG_CONFLICT"

    assert (await client.get("/prompts/")).json() == []


async def test_create_prompts_existing_slug_conflict(client: AsyncClient) -> None:
    await create_prompts(client, prompt_payload("taken"))

    response = await client.post(
        "/prompts/",
        json={"prompts": [prompt_payload("fresh"), prompt_payload("taken")]},
    )
    assert response.status_code == 409
    assert response.json()["detail"]["slug"] == "taken"
    assert (await client.get("/prompts/fresh")).status_code == 404


async def test_create_prompts_invalid_element_rejected(client: AsyncClient) -> None:
    response = await client.post(
        "/prompts/",
        json={"prompts": [prompt_payload("ok"), prompt_payload("team:prompt")]},
    )
    assert response.status_code == 422
    assert "colons" in response.text
    assert (await client.get("/prompts/ok")).status_code == 404


async def test_create_prompts_empty_batch_rejected(client: AsyncClient) -> None:
    response = await client.post("/prompts/", json={"prompts": []})
    assert response.status_code == 422


# =============================================================================
# Read
# =============================================================================


async def test_get_prompt_not_found(client: AsyncClient) -> None:
    response = await client.get("/prompts/missing")
    assert response.status_code == 404


async def test_get_prompt_invalid_slug(client: AsyncClient) -> None:
    response = await client.get("/prompts/Not-Valid")
    assert response.status_code == 400
    assert "Invalid slug format" in response.json()["detail"]


async def test_prompts_isolated_between_owners(
    client: AsyncClient,
    db_session: AsyncSession,
) -> None:
    await create_prompts(client, prompt_payload("private"))

    async with create_client(db_session, owner_id="someone-else") as other:
        assert (await other.get("/prompts/private")).status_code == 404
        assert (await other.get("/prompts/")).json() == []
        # Same slug is free for another owner
        await create_prompts(other, prompt_payload("private"))


async def test_list_prompts_ranked(client: AsyncClient) -> None:
    await create_prompts(
        client, prompt_payload("a-unused"), prompt_payload("b-used"), prompt_payload("c-pinned"),
    )
    await client.post("/prompts/b-used/usage")
    await client.patch("/prompts/c-pinned/flags", json={"pinned": True})

    response = await client.get("/prompts/")
    assert response.status_code == 200
    assert [p["slug"] for p in response.json()] == ["c-pinned", "b-used", "a-unused"]


async def test_list_prompts_tag_filter_and_limit(client: AsyncClient) -> None:
    await create_prompts(
        client,
        prompt_payload("web-one", tags=["web"]),
        prompt_payload("api-one", tags=["api"]),
        prompt_payload("plain"),
    )

    response = await client.get("/prompts/", params={"tags": "WEB, api"})
    assert sorted(p["slug"] for p in response.json()) == ["api-one", "web-one"]

    response = await client.get("/prompts/", params={"limit": 1})
    assert len(response.json()) == 1


async def test_list_prompts_too_many_filter_tags(client: AsyncClient) -> None:
    tags = ",".join(f"t{i}" for i in range(21))
    response = await client.get("/prompts/", params={"tags": tags})
    assert response.status_code == 400


async def test_search_prompts(client: AsyncClient) -> None:
    await create_prompts(
        client,
        prompt_payload("sql-basics", name="SQL Basics"),
        prompt_payload("joins", description="Explaining SQL joins"),
        prompt_payload("poetry", content="Write a haiku"),
    )

    response = await client.get("/prompts/", params={"q": "  SQL  "})
    assert sorted(p["slug"] for p in response.json()) == ["joins", "sql-basics"]

    response = await client.get("/prompts/", params={"q": "sql", "tags": "missing"})
    assert response.json() == []

    response = await client.get("/prompts/", params={"q": "   "})
    assert len(response.json()) == 3


async def test_list_tags(client: AsyncClient) -> None:
    await create_prompts(
        client,
        prompt_payload("one", tags=["web", "api"]),
        prompt_payload("two", tags=["web"]),
    )

    response = await client.get("/prompts/tags")
    assert response.status_code == 200
    assert response.json() == {
        "tags": [{"name": "web", "count": 2}, {"name": "api", "count": 1}],
    }


# =============================================================================
# Update / delete / engagement
# =============================================================================


async def test_update_prompt(client: AsyncClient) -> None:
    await create_prompts(client, prompt_payload("p", tags=["old"]))

    response = await client.put(
        "/prompts/p", json=prompt_payload("p-renamed", name="New name", tags=["new"]),
    )
    assert response.status_code == 200
    assert response.json() == {"updated": True}

    assert (await client.get("/prompts/p")).status_code == 404
    data = (await client.get("/prompts/p-renamed")).json()
    assert data["name"] == "New name"
    assert data["tags"] == ["new"]
    assert (await client.get("/prompts/tags")).json()["tags"] == [{"name": "new", "count": 1}]


async def test_update_prompt_conflict_and_not_found(client: AsyncClient) -> None:
    await create_prompts(client, prompt_payload("one"), prompt_payload("two"))

    response = await client.put("/prompts/one", json=prompt_payload("two"))
    assert response.status_code == 409

    response = await client.put("/prompts/missing", json=prompt_payload("missing"))
    assert response.status_code == 404


async def test_delete_prompt(client: AsyncClient) -> None:
    await create_prompts(client, prompt_payload("p", tags=["solo"]))

    response = await client.delete("/prompts/p")
    assert response.json() == {"deleted": True}
    assert (await client.get("/prompts/p")).status_code == 404
    assert (await client.get("/prompts/tags")).json() == {"tags": []}

    response = await client.delete("/prompts/p")
    assert response.status_code == 200
    assert response.json() == {"deleted": False}


async def test_update_flags(client: AsyncClient) -> None:
    await create_prompts(client, prompt_payload("p"))

    response = await client.patch("/prompts/p/flags", json={"favorited": True})
    assert response.json() == {"updated": True}
    data = (await client.get("/prompts/p")).json()
    assert data["favorited"] is True
    assert data["pinned"] is False

    assert (await client.patch("/prompts/p/flags", json={})).status_code == 400
    assert (await client.patch("/prompts/missing/flags", json={"pinned": True})).status_code == 404


async def test_track_usage(client: AsyncClient) -> None:
    await create_prompts(client, prompt_payload("p"))

    response = await client.post("/prompts/p/usage")
    assert response.status_code == 204

    data = (await client.get("/prompts/p")).json()
    assert data["usage_count"] == 1
    assert data["last_used_at"] > 0

    assert (await client.post("/prompts/missing/usage")).status_code == 404


# =============================================================================
# Export / import
# =============================================================================


async def test_export_prompts(client: AsyncClient) -> None:
    await create_prompts(client, prompt_payload("p", tags=["x"]))
    await client.post("/prompts/p/usage")

    response = await client.get("/prompts/export")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-yaml")
    assert "attachment" in response.headers["content-disposition"]

    document = yaml.safe_load(response.text)
    assert document["prompts"][0]["slug"] == "p"
    assert document["prompts"][0]["tags"] == ["x"]
    assert "usage_count" not in document["prompts"][0]


async def test_import_prompts(client: AsyncClient) -> None:
    document = yaml.safe_dump({"prompts": [prompt_payload("one"), prompt_payload("two")]})

    response = await client.post("/prompts/import", json={"yaml": document})
    assert response.status_code == 201
    assert response.json() == {
        "created": 2,
        "slugs": ["one", "two"],
        "skipped": [],
        "errors": [],
    }


async def test_import_prompts_skips_existing_and_repeated_slugs(client: AsyncClient) -> None:
    await create_prompts(client, prompt_payload("two", name="Original"))
    document = yaml.safe_dump({
        "prompts": [
            prompt_payload("one"),
            prompt_payload("two"),
            prompt_payload("one", name="Second copy"),
        ],
    })

    response = await client.post("/prompts/import", json={"yaml": document})
    assert response.status_code == 201
    data = response.json()
    assert data["slugs"] == ["one"]
    assert data["skipped"] == ["two", "one"]

    assert (await client.get("/prompts/one")).json()["name"] == "Name of one"
    assert (await client.get("/prompts/two")).json()["name"] == "Original"


async def test_import_prompts_selected_slugs_only(client: AsyncClient) -> None:
    document = yaml.safe_dump({
        "prompts": [prompt_payload("one"), prompt_payload("two"), prompt_payload("three")],
    })

    response = await client.post(
        "/prompts/import", json={"yaml": document, "slugs": ["three", "one"]},
    )
    assert response.status_code == 201
    assert response.json()["slugs"] == ["one", "three"]
    assert (await client.get("/prompts/two")).status_code == 404


async def test_import_prompts_reports_invalid_items(client: AsyncClient) -> None:
    document = yaml.safe_dump({"prompts": [prompt_payload("one"), prompt_payload("Bad Slug")]})

    response = await client.post("/prompts/import", json={"yaml": document})
    assert response.status_code == 201
    data = response.json()
    assert data["slugs"] == ["one"]
    assert len(data["errors"]) == 1
    assert data["errors"][0].startswith("prompts[1].slug")


async def test_import_prompts_nothing_valid(client: AsyncClient) -> None:
    document = yaml.safe_dump({"prompts": [prompt_payload("Bad Slug")]})

    response = await client.post("/prompts/import", json={"yaml": document})
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "prompts[0].slug"

    response = await client.post("/prompts/import", json={"yaml": "prompts: [oops"})
    assert response.status_code == 400

    document = yaml.safe_dump({"prompts": [prompt_payload("one")]})
    response = await client.post("/prompts/import", json={"yaml": document, "slugs": ["other"]})
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "prompts"


async def test_import_prompts_non_string_tags_rejected(client: AsyncClient) -> None:
    document = "prompts:\n" + "".join(
        f"  - {{slug: {slug}, name: n, description: d, content: c, tags: {tags}}}\n"
        for slug, tags in [("numbers", "[2024]"), ("scalar", "python")]
    )

    response = await client.post("/prompts/import", json={"yaml": document})
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "prompts[0].tags"


async def test_preview_import(client: AsyncClient) -> None:
    await create_prompts(client, prompt_payload("taken"))
    document = yaml.safe_dump({
        "prompts": [
            prompt_payload("taken"),
            prompt_payload("fresh", tags=["Web"]),
            prompt_payload("Bad Slug"),
        ],
    })

    response = await client.post("/prompts/import/preview", json={"yaml": document})
    assert response.status_code == 200
    data = response.json()
    assert [(p["slug"], p["duplicate"]) for p in data["prompts"]] == [
        ("taken", True),
        ("fresh", False),
    ]
    assert data["prompts"][1]["tags"] == ["web"]
    assert len(data["errors"]) == 1
    # Nothing is written
    assert (await client.get("/prompts/fresh")).status_code == 404


async def test_preview_import_malformed(client: AsyncClient) -> None:
    response = await client.post("/prompts/import/preview", json={"yaml": "items: []"})
    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "yaml"


# =============================================================================
# Configuration
# =============================================================================


async def test_inline_tag_strategy(db_session: AsyncSession) -> None:
    settings = Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        DEV_MODE="true",
        TAG_STRATEGY="inline",
    )
    async with create_client(db_session, settings=settings) as client:
        await create_prompts(client, prompt_payload("p", tags=["b", "a"]))

        data = (await client.get("/prompts/p")).json()
        assert data["tags"] == ["a", "b"]
        assert (await client.get("/health")).json()["tag_strategy"] == "inline"


async def test_authorization_denial_returns_403(db_session: AsyncSession) -> None:
    async with create_client(db_session) as client:
        await create_prompts(client, prompt_payload("p"))

        denying = AuthorizationRules()
        denying.register("prompts", TableRules(read=lambda ctx, doc: False))
        app.dependency_overrides[get_authorization_rules] = lambda: denying

        response = await client.get("/prompts/p")
        assert response.status_code == 403
        assert response.json() == {"detail": "Access denied"}


async def test_dev_mode_owner(client: AsyncClient, db_session: AsyncSession) -> None:
    await create_prompts(client, prompt_payload("p"))

    async with create_client(db_session, owner_id=DEV_OWNER_ID) as same_owner:
        assert (await same_owner.get("/prompts/p")).status_code == 200
