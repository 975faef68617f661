"""Maintenance script for the prompt library database.

Usage:
    PYTHONPATH=backend/src python backend/scripts/seed_data.py init-db
    PYTHONPATH=backend/src python backend/scripts/seed_data.py populate
    PYTHONPATH=backend/src python backend/scripts/seed_data.py populate --force
    PYTHONPATH=backend/src python backend/scripts/seed_data.py clear
    PYTHONPATH=backend/src python backend/scripts/seed_data.py backfill --batch-size 200

populate and clear write directly to the dev owner's data and require DEV_MODE=true.
init-db and backfill are safe to run against any database.
"""

import argparse
import asyncio
import logging
from collections.abc import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.authorization import build_default_rules
from core.config import get_settings
from models import Base, Prompt
from services.prompt_service import PromptService
from services.ranking_config_service import backfill_prompts, seed_ranking_config
from services.tag_service import get_tag_store

SAMPLE_PROMPTS = [
    {
        'slug': 'explain-code',
        'name': 'Explain Code',
        'description': 'Get a clear explanation of any code snippet',
        'content': (
            '# Code Explanation Request\n\n'
            'Please explain the following code in detail:\n\n'
            '```\n{{code}}\n```\n\n'
            '1. **Overview**: What does this code do at a high level?\n'
            '2. **Step-by-step breakdown**: Walk through each significant part\n'
            '3. **Potential issues**: Any bugs, edge cases, or improvements?\n\n'
            'Explain as if teaching a junior developer.'
        ),
        'tags': ['code', 'learning', 'documentation'],
        'parameters': [
            {'name': 'code', 'type': 'string', 'required': True},
        ],
    },
    {
        'slug': 'write-tests',
        'name': 'Write Unit Tests',
        'description': 'Generate comprehensive unit tests for your code',
        'content': (
            '# Unit Test Generation\n\n'
            'Write unit tests for the following code:\n\n'
            '```{{language}}\n{{code}}\n```\n\n'
            'Use **{{framework}}**. Cover the happy path, boundary conditions and '
            'error handling. Mock external dependencies.'
        ),
        'tags': ['testing', 'code', 'tdd'],
        'parameters': [
            {'name': 'code', 'type': 'string', 'required': True},
            {'name': 'language', 'type': 'string', 'required': True},
            {'name': 'framework', 'type': 'string', 'required': False},
        ],
    },
    {
        'slug': 'refactor-code',
        'name': 'Refactor Code',
        'description': 'Get suggestions to improve code quality and maintainability',
        'content': (
            '# Code Refactoring Request\n\n'
            'Review and refactor this code:\n\n'
            '```{{language}}\n{{code}}\n```\n\n'
            'Focus on readability, maintainability and type safety. Explain each change.'
        ),
        'tags': ['code', 'refactoring', 'quality'],
    },
    {
        'slug': 'api-design',
        'name': 'API Design Review',
        'description': 'Review and improve REST API design patterns',
        'content': (
            '# API Design Review\n\n'
            'Review this API endpoint design:\n\n{{endpoint}}\n\n'
            'Check naming, status codes, pagination, error shapes and versioning.'
        ),
        'tags': ['api-design', 'review'],
    },
    {
        'slug': 'summarize-text',
        'name': 'Summarize Text',
        'description': 'Condense a long document into key points',
        'content': 'Summarize the following text in {{bullet_count}} bullet points:\n\n{{text}}',
        'tags': ['writing'],
        'parameters': [
            {'name': 'text', 'type': 'string', 'required': True},
            {'name': 'bullet_count', 'type': 'number', 'required': False},
        ],
    },
]


def build_prompt_service() -> PromptService:
    """Prompt service wired the same way the API wires it."""
    settings = get_settings()
    return PromptService(
        rules=build_default_rules(settings.deny_missing_operations),
        tag_store=get_tag_store(settings.tag_strategy),
    )


async def run_in_session(work: Callable[[AsyncSession], Awaitable[None]]) -> None:
    """Run work in one transaction on a short-lived engine."""
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            await work(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await engine.dispose()


async def init_db() -> None:
    """Create any missing tables and seed the ranking config."""
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()

    await run_in_session(seed_ranking_config)
    print('Database initialized.')


async def clear_data(session: AsyncSession) -> None:
    """Delete all of the dev owner's prompts (and, with them, their tags)."""
    owner_id = get_settings().dev_owner_id
    service = build_prompt_service()
    result = await session.execute(select(Prompt.slug).where(Prompt.owner_id == owner_id))
    slugs = list(result.scalars().all())
    for slug in slugs:
        await service.delete_by_slug(session, owner_id, slug)
    print(f'Deleted {len(slugs)} prompts for {owner_id}.')


async def populate(force: bool = False) -> None:
    """Populate the dev owner's library with sample prompts."""
    owner_id = get_settings().dev_owner_id
    service = build_prompt_service()

    async def work(session: AsyncSession) -> None:
        existing = await service.list_ranked(session, owner_id, limit=1)
        if existing:
            if not force:
                print(f'{owner_id} already has prompts. Use --force to replace them.')
                return
            await clear_data(session)
            await session.flush()

        prompts = await service.insert_many(session, owner_id, SAMPLE_PROMPTS)
        print(f'Created {len(prompts)} prompts for {owner_id}.')

    await run_in_session(work)


async def backfill(batch_size: int) -> None:
    """Recompute search text missing from older prompt rows."""
    patched = 0

    async def work(session: AsyncSession) -> None:
        nonlocal patched
        patched = await backfill_prompts(session, batch_size=batch_size)

    await run_in_session(work)
    print(f'Backfilled {patched} prompts.')


def main() -> None:
    """CLI entry point."""
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description='Prompt library database maintenance.')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('init-db', help='Create tables and seed the ranking config')

    populate_parser = subparsers.add_parser('populate', help='Add sample prompts for the dev owner')
    populate_parser.add_argument(
        '--force', action='store_true',
        help='Replace existing prompts before populating',
    )

    subparsers.add_parser('clear', help='Remove all dev owner prompts')

    backfill_parser = subparsers.add_parser('backfill', help='Recompute missing prompt search text')
    backfill_parser.add_argument('--batch-size', type=int, default=100)

    args = parser.parse_args()

    if args.command in {'populate', 'clear'} and not get_settings().dev_mode:
        print(
            'ERROR: populate and clear require DEV_MODE=true.\n'
            'They modify data directly and must only run against a local dev database.'
        )
        raise SystemExit(1)

    if args.command == 'init-db':
        asyncio.run(init_db())
    elif args.command == 'populate':
        asyncio.run(populate(force=args.force))
    elif args.command == 'clear':
        asyncio.run(run_in_session(clear_data))
    elif args.command == 'backfill':
        asyncio.run(backfill(args.batch_size))


if __name__ == '__main__':
    main()
