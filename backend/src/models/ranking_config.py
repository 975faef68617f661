"""RankingConfig model for storing ranking weights."""
from sqlalchemy import Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDv7Mixin


class RankingConfig(Base, UUIDv7Mixin, TimestampMixin):
    """
    Ranking configuration - one row per key, the application reads key 'global'.

    Seeded lazily with defaults. Only administrative paths modify it.
    """

    __tablename__ = "ranking_config"

    key: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    usage_weight: Mapped[float] = mapped_column(Float, nullable=False)
    recency_weight: Mapped[float] = mapped_column(Float, nullable=False)
    favorite_weight: Mapped[float] = mapped_column(Float, nullable=False)
    pinned_weight: Mapped[float] = mapped_column(Float, nullable=False)
    half_life_days: Mapped[float] = mapped_column(Float, nullable=False)
    search_rerank_limit: Mapped[int] = mapped_column(Integer, nullable=False)
