"""Shared utility functions for service layer operations."""
import time


def escape_ilike(value: str) -> str:
    r"""
    Escape special ILIKE characters for safe use in LIKE/ILIKE patterns.

    LIKE/ILIKE treats these characters specially:
    - % matches any sequence of characters
    - _ matches any single character
    - \\ is the escape character

    This function escapes them so they match literally. Pass escape="\\" to the
    like/ilike call; SQLite has no default escape character.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_search_text(slug: str, name: str, description: str, content: str) -> str:
    """Build the lowercased, trimmed text the search index matches against."""
    return " ".join([slug, name, description, content]).lower().strip()


def normalize_query(query: str | None) -> str:
    """Normalize a free-text search query (trim, lowercase)."""
    if query is None:
        return ""
    return query.strip().lower()


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000
