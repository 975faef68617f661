"""FastAPI dependencies for injection."""
from functools import lru_cache

from fastapi import Depends

from core.auth import get_current_owner
from core.authorization import AuthorizationRules, build_default_rules
from core.config import Settings, get_settings
from db.session import get_async_session
from services.preferences_service import PreferencesService
from services.prompt_service import PromptService
from services.tag_service import get_tag_store


@lru_cache
def build_cached_rules(deny_missing_operations: bool) -> AuthorizationRules:
    """Build the default authorization rules once per deny mode."""
    return build_default_rules(deny_missing_operations=deny_missing_operations)


def get_authorization_rules(
    settings: Settings = Depends(get_settings),
) -> AuthorizationRules:
    """Shared authorization rules for the configured deny mode."""
    return build_cached_rules(settings.deny_missing_operations)


def get_prompt_service(
    settings: Settings = Depends(get_settings),
    rules: AuthorizationRules = Depends(get_authorization_rules),
) -> PromptService:
    """Prompt service wired with the configured tag strategy."""
    return PromptService(rules=rules, tag_store=get_tag_store(settings.tag_strategy))


def get_preferences_service(
    rules: AuthorizationRules = Depends(get_authorization_rules),
) -> PreferencesService:
    """Preferences service wired with the authorization rules."""
    return PreferencesService(rules=rules)


__all__ = [
    "get_async_session",
    "get_authorization_rules",
    "get_current_owner",
    "get_preferences_service",
    "get_prompt_service",
    "get_settings",
]
