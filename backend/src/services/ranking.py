"""
Ranking engine for prompt list and search results.

Pure functions only: no database access and no clock reads. Callers pass `now` in
epoch milliseconds, so the same inputs always produce the same order.

Score per prompt:

    usage    = ln(1 + max(0, usage_count)) * weights.usage
    recency  = exp(-(now - last_used_at) / (half_life_days * MS_PER_DAY)) * weights.recency
               (0 when the prompt has never been used)
    favorite = weights.favorite if favorited else 0
    pinned   = weights.pinned if pinned else 0

List mode groups pinned prompts first, then used prompts before never-used ones, then
orders by score. Search mode orders by score only, so pinning does not bury a prompt
that matched the query.
"""
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal, Protocol, TypeVar

MS_PER_DAY = 86_400_000

RankMode = Literal["list", "search"]


class RankCandidate(Protocol):
    """Fields the ranking engine reads from a candidate."""

    slug: str
    usage_count: int
    last_used_at: int | None
    favorited: bool
    pinned: bool


C = TypeVar("C", bound=RankCandidate)


@dataclass(frozen=True)
class RankingWeights:
    """Non-negative signal weights and the recency half-life in days."""

    usage: float
    recency: float
    favorite: float
    pinned: float
    half_life_days: float


@dataclass(frozen=True)
class RankingConfig:
    """Weights plus the cap on candidates examined by a tag-filtered search."""

    weights: RankingWeights
    search_rerank_limit: int


DEFAULT_RANKING_CONFIG = RankingConfig(
    weights=RankingWeights(
        usage=3,
        recency=2,
        favorite=1,
        pinned=0.5,
        half_life_days=14,
    ),
    search_rerank_limit=200,
)


def _last_used(candidate: RankCandidate) -> int:
    return candidate.last_used_at or 0


def is_used(candidate: RankCandidate) -> bool:
    """A prompt counts as used once it has a usage count or a last-used timestamp."""
    return (candidate.usage_count or 0) > 0 or _last_used(candidate) > 0


def compute_rank_score(candidate: RankCandidate, now: int, weights: RankingWeights) -> float:
    """Compute the weighted engagement score for one candidate."""
    usage_count = candidate.usage_count or 0
    usage_score = math.log1p(max(0, usage_count)) * weights.usage

    last_used_at = _last_used(candidate)
    recency_score = 0.0
    if last_used_at > 0:
        decay = math.exp(-(now - last_used_at) / (weights.half_life_days * MS_PER_DAY))
        recency_score = decay * weights.recency

    favorite_score = weights.favorite if candidate.favorited else 0
    pinned_score = weights.pinned if candidate.pinned else 0

    return usage_score + recency_score + favorite_score + pinned_score


def rerank(
    candidates: Iterable[C],
    weights: RankingWeights,
    mode: RankMode,
    now: int,
) -> list[C]:
    """
    Return the candidates in ranked order.

    Args:
        candidates: Prompts (or any objects with the RankCandidate fields).
        weights: Ranking weights.
        mode: "list" applies pinned-first and used-first grouping; "search" does not.
        now: Current time in epoch milliseconds.

    Returns:
        A new list; the input is not modified. Ties on score are broken by
        last_used_at descending, then slug ascending.
    """
    def sort_key(candidate: C) -> tuple:
        score = compute_rank_score(candidate, now, weights)
        tail = (-score, -_last_used(candidate), candidate.slug)
        if mode == "list":
            return (not candidate.pinned, not is_used(candidate), *tail)
        return tail

    return sorted(candidates, key=sort_key)
