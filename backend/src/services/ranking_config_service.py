"""Service layer for ranking configuration and prompt maintenance."""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.prompt import Prompt
from models.ranking_config import RankingConfig as RankingConfigRow
from services.ranking import DEFAULT_RANKING_CONFIG, RankingConfig, RankingWeights
from services.utils import build_search_text

logger = logging.getLogger(__name__)

GLOBAL_KEY = "global"


async def _get_row(db: AsyncSession, key: str) -> RankingConfigRow | None:
    result = await db.execute(
        select(RankingConfigRow).where(RankingConfigRow.key == key),
    )
    return result.scalar_one_or_none()


async def get_ranking_config(db: AsyncSession, key: str = GLOBAL_KEY) -> RankingConfig:
    """
    Read the ranking configuration.

    Args:
        db: Database session.
        key: Configuration key. The application uses 'global'.

    Returns:
        The stored configuration, or DEFAULT_RANKING_CONFIG if none is stored. A
        non-positive stored half-life is replaced by the default one.
    """
    row = await _get_row(db, key)
    if row is None:
        return DEFAULT_RANKING_CONFIG

    half_life_days = row.half_life_days
    if half_life_days <= 0:
        logger.warning(
            "Ranking config '%s' has non-positive half_life_days=%s, using default %s",
            key,
            half_life_days,
            DEFAULT_RANKING_CONFIG.weights.half_life_days,
        )
        half_life_days = DEFAULT_RANKING_CONFIG.weights.half_life_days

    return RankingConfig(
        weights=RankingWeights(
            usage=row.usage_weight,
            recency=row.recency_weight,
            favorite=row.favorite_weight,
            pinned=row.pinned_weight,
            half_life_days=half_life_days,
        ),
        search_rerank_limit=row.search_rerank_limit,
    )


async def seed_ranking_config(db: AsyncSession, key: str = GLOBAL_KEY) -> bool:
    """
    Store the default ranking configuration if none exists.

    Returns:
        True if a row was inserted, False if one already existed.
    """
    if await _get_row(db, key) is not None:
        return False

    defaults = DEFAULT_RANKING_CONFIG
    db.add(
        RankingConfigRow(
            key=key,
            usage_weight=defaults.weights.usage,
            recency_weight=defaults.weights.recency,
            favorite_weight=defaults.weights.favorite,
            pinned_weight=defaults.weights.pinned,
            half_life_days=defaults.weights.half_life_days,
            search_rerank_limit=defaults.search_rerank_limit,
        ),
    )
    await db.flush()
    logger.info("Seeded ranking config '%s' with defaults", key)
    return True


async def backfill_prompts(db: AsyncSession, batch_size: int = 100) -> int:
    """
    Recompute search_text for older prompt rows that lack it.

    Walks the table in id order, batch_size rows per query.

    Returns:
        Number of prompts patched.
    """
    await seed_ranking_config(db)

    patched = 0
    last_id = None
    while True:
        query = select(Prompt).order_by(Prompt.id).limit(batch_size)
        if last_id is not None:
            query = query.where(Prompt.id > last_id)
        result = await db.execute(query)
        page = list(result.scalars().all())
        if not page:
            break

        for prompt in page:
            if prompt.search_text:
                continue
            prompt.search_text = build_search_text(
                prompt.slug, prompt.name, prompt.description, prompt.content,
            )
            patched += 1

        await db.flush()
        last_id = page[-1].id

    logger.info("Backfilled %d prompts", patched)
    return patched
