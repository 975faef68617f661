"""
Row-level authorization rules.

Defense-in-depth: every service query already filters by owner, but each document is
also checked here before it is returned or written. If a new query forgets the owner
filter, the check raises instead of leaking another user's data.

Rules are registered per table and per operation on an AuthorizationRules instance that
is built once per process and injected into the services that need it.
"""
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class Operation(StrEnum):
    """Operations a rule can be registered for."""

    READ = "read"
    INSERT = "insert"
    MODIFY = "modify"
    DELETE = "delete"


@dataclass(frozen=True)
class CallerContext:
    """Identity of the authenticated caller, as supplied by the auth layer."""

    owner_id: str


AccessRule = Callable[[CallerContext, Any], bool]


class AuthorizationError(Exception):
    """Raised when a rule denies an operation. Carries table and operation for auditing."""

    def __init__(self, table: str, operation: Operation) -> None:
        self.table = table
        self.operation = operation
        super().__init__(f"Access denied: {operation.value} on '{table}'")


@dataclass(frozen=True)
class TableRules:
    """Per-operation rules for one table. A missing rule means no rule registered."""

    read: AccessRule | None = None
    insert: AccessRule | None = None
    modify: AccessRule | None = None
    delete: AccessRule | None = None

    def for_operation(self, operation: Operation) -> AccessRule | None:
        """Return the rule registered for the operation, if any."""
        return getattr(self, operation.value)


def is_owner(ctx: CallerContext, document: Any) -> bool:
    """User owns this document (owner_id matches the caller)."""
    if isinstance(document, Mapping):
        return document.get("owner_id") == ctx.owner_id
    return getattr(document, "owner_id", None) == ctx.owner_id


OWNER_ONLY = TableRules(read=is_owner, insert=is_owner, modify=is_owner, delete=is_owner)


@dataclass
class AuthorizationRules:
    """
    Registry of table rules.

    Tables with no registered rules are treated as global or system data and are always
    allowed. For registered tables, an operation with no rule is allowed unless
    deny_missing_operations is set, in which case it is denied.
    """

    tables: dict[str, TableRules] = field(default_factory=dict)
    deny_missing_operations: bool = False

    def register(self, table: str, rules: TableRules) -> None:
        """Register (or replace) the rules for a table."""
        self.tables[table] = rules

    def allowed(
        self,
        ctx: CallerContext,
        table: str,
        operation: Operation,
        document: Any,
    ) -> bool:
        """Return True if the caller may perform the operation on the document."""
        table_rules = self.tables.get(table)
        if table_rules is None:
            return True

        rule = table_rules.for_operation(operation)
        if rule is None:
            return not self.deny_missing_operations

        return rule(ctx, document)

    def check(
        self,
        ctx: CallerContext,
        table: str,
        operation: Operation,
        document: Any,
    ) -> None:
        """
        Assert that the caller may perform the operation on the document.

        Raises:
            AuthorizationError: If the operation is denied.
        """
        if not self.allowed(ctx, table, operation, document):
            logger.warning(
                "Authorization denied: table=%s operation=%s owner=%s",
                table,
                operation.value,
                ctx.owner_id,
            )
            raise AuthorizationError(table, operation)


def build_default_rules(deny_missing_operations: bool = False) -> AuthorizationRules:
    """
    Build the rule set used by the application.

    Owner-scoped tables (prompts, user_preferences) require the caller to own the
    document. Tags and prompt_tags are only reached through a prompt the caller owns,
    and every tag query is scoped by owner. ranking_config is system data.
    """
    rules = AuthorizationRules(deny_missing_operations=deny_missing_operations)
    rules.register("prompts", OWNER_ONLY)
    rules.register("user_preferences", OWNER_ONLY)
    return rules
