"""
Shared validation functions for Pydantic schemas.

This module is the single source of the prompt input limits. Schemas, services and the
import path all read them from here so every call site enforces the same bounds.
"""
import re

# Validation limits
SLUG_MAX_LENGTH = 200
NAME_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
CONTENT_MAX_LENGTH = 100_000
TAG_NAME_MAX_LENGTH = 100
MAX_TAGS_PER_PROMPT = 50
MAX_PROMPTS_PER_BATCH = 100

# Slug format: lowercase alphanumeric with internal hyphens (e.g., 'code-review').
# Colons are reserved for a future namespace separator.
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")

# Tag format: lowercase alphanumeric with hyphens (e.g., 'machine-learning', 'web-dev')
TAG_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


def validate_slug(slug: str) -> str:
    """
    Validate slug format.

    Args:
        slug: The slug to validate.

    Returns:
        The slug, unchanged.

    Raises:
        ValueError: If slug is empty, too long, contains a colon, or has invalid format.
    """
    if not slug:
        raise ValueError("Slug cannot be empty")
    if len(slug) > SLUG_MAX_LENGTH:
        raise ValueError(
            f"Slug exceeds maximum length of {SLUG_MAX_LENGTH} characters "
            f"(got {len(slug)} characters).",
        )
    # Check colons first to give a more specific error message
    if ":" in slug:
        raise ValueError("Slug cannot contain colons (reserved for namespacing)")
    if not SLUG_PATTERN.match(slug):
        raise ValueError(
            f"Invalid slug format: '{slug}'. "
            "Use lowercase letters, numbers, and hyphens only (e.g., 'code-review'). "
            "Must start and end with a letter or number.",
        )
    return slug


def validate_required_text(value: str, field: str, max_length: int) -> str:
    """
    Validate a required free-text field.

    The value must be non-empty after trimming and no longer than max_length.
    The original (untrimmed) value is returned so content whitespace is preserved.
    """
    if not value.strip():
        raise ValueError(f"{field.capitalize()} cannot be empty")
    if len(value) > max_length:
        raise ValueError(
            f"{field.capitalize()} exceeds maximum length of {max_length:,} characters "
            f"(got {len(value):,} characters).",
        )
    return value


def validate_and_normalize_tag(tag: str) -> str:
    """
    Normalize and validate a single tag.

    Args:
        tag: The tag string to validate.

    Returns:
        The normalized tag (lowercase, trimmed).

    Raises:
        ValueError: If tag is empty, too long, or has invalid format.
    """
    normalized = tag.lower().strip()
    if not normalized:
        raise ValueError("Tag name cannot be empty")
    if len(normalized) > TAG_NAME_MAX_LENGTH:
        raise ValueError(
            f"Tag name exceeds maximum length of {TAG_NAME_MAX_LENGTH} characters "
            f"(got {len(normalized)} characters).",
        )
    if not TAG_PATTERN.match(normalized):
        raise ValueError(
            f"Invalid tag format: '{normalized}'. "
            "Use lowercase letters, numbers, and hyphens only (e.g., 'machine-learning').",
        )
    return normalized


def validate_and_normalize_tags(tags: list[str]) -> list[str]:
    """
    Normalize and validate a list of tags.

    Args:
        tags: List of tag strings to validate.

    Returns:
        List of normalized tags (lowercase, trimmed), with empty strings filtered out
        and duplicates removed (preserving first occurrence order).

    Raises:
        ValueError: If any tag is not a string, has invalid format, or there are too many tags.
    """
    normalized = []
    seen: set[str] = set()
    for tag in tags:
        if not isinstance(tag, str):
            raise ValueError(f"Tags must be strings, got {type(tag).__name__}: {tag!r}")
        trimmed = tag.lower().strip()
        if not trimmed:
            continue  # Skip empty tags silently
        validated = validate_and_normalize_tag(trimmed)
        if validated not in seen:
            seen.add(validated)
            normalized.append(validated)
    if len(normalized) > MAX_TAGS_PER_PROMPT:
        raise ValueError(
            f"Too many tags: maximum is {MAX_TAGS_PER_PROMPT} per prompt "
            f"(got {len(normalized)}).",
        )
    return normalized


def check_duplicate_parameter_names(parameters: list | None) -> None:
    """
    Check for duplicate parameter names in a list of parameters.

    Raises:
        ValueError: If duplicate parameter names are found.
    """
    if not parameters:
        return
    names = [param.name for param in parameters]
    duplicates = [name for name in names if names.count(name) > 1]
    if duplicates:
        unique_duplicates = sorted(set(duplicates))
        raise ValueError(
            f"Duplicate parameter name(s): {', '.join(unique_duplicates)}. "
            "Each parameter must have a unique name.",
        )
