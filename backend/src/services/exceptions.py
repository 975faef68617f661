"""Shared exceptions for service layer operations."""


class PromptValidationError(Exception):
    """
    Raised when prompt input is malformed, oversized, or missing required fields.

    Always caller-fixable. Carries the offending field and a specific reason so the
    HTTP layer can report it without parsing the message.
    """

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class SlugConflictError(Exception):
    """
    Raised when a slug is already taken within the owner's scope.

    Covers duplicates inside one batch, collisions with stored prompts, and renames
    onto an existing slug. Never retried automatically.
    """

    def __init__(self, slug: str, *, in_batch: bool = False) -> None:
        self.slug = slug
        self.in_batch = in_batch
        where = "in this batch" if in_batch else "for this user"
        super().__init__(f"Slug '{slug}' already exists {where}")
