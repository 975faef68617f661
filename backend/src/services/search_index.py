"""
Text search over prompts.

The search index only knows about text relevance and owner scoping. Engagement ranking
and tag filtering are applied afterwards by PromptService, which is why it may ask the
index for more candidates than it returns.
"""
from abc import ABC, abstractmethod

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.prompt import Prompt
from services.utils import escape_ilike


class PromptSearchIndex(ABC):
    """Owner-scoped text search returning relevance-ordered prompts."""

    @abstractmethod
    async def search(
        self,
        db: AsyncSession,
        owner_id: str,
        query: str,
        limit: int,
    ) -> list[Prompt]:
        """
        Search an owner's prompts.

        Args:
            db: Database session.
            owner_id: Owner to scope the search.
            query: Normalized (trimmed, lowercased), non-empty query.
            limit: Maximum number of results.

        Returns:
            Up to `limit` prompts, most relevant first.
        """
        ...


class SqlPromptSearchIndex(PromptSearchIndex):
    """
    Search index backed by the prompts.search_text column.

    Every whitespace-separated term must appear in search_text. Results whose slug
    equals the query rank first, then name matches, then description matches, then
    matches elsewhere; slug breaks ties.
    """

    async def search(
        self,
        db: AsyncSession,
        owner_id: str,
        query: str,
        limit: int,
    ) -> list[Prompt]:
        """Search an owner's prompts by substring match on search_text."""
        statement = select(Prompt).where(Prompt.owner_id == owner_id)
        for term in query.split():
            statement = statement.where(
                Prompt.search_text.like(f"%{escape_ilike(term)}%", escape="\\"),
            )

        pattern = f"%{escape_ilike(query)}%"
        relevance = case(
            (Prompt.slug == query, 0),
            (func.lower(Prompt.name).like(pattern, escape="\\"), 1),
            (func.lower(Prompt.description).like(pattern, escape="\\"), 2),
            else_=3,
        )
        statement = statement.order_by(relevance, Prompt.slug).limit(limit)

        result = await db.execute(statement)
        return list(result.scalars().all())
