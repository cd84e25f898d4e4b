# ABOUTME: Backend session and tenant scope management with caching and retry logic
# ABOUTME: Provides the shared context factory used by tools

import asyncio
import functools
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, TypeVar

from finscope.auth import SupabaseSession, clear_session
from finscope.config import Settings, load_settings
from finscope.exceptions import (
    AuthenticationError,
    FinscopeError,
    NoTenantAssociationError,
    ValidationError,
)
from finscope.scope import resolve, restricted
from finscope.store import EntityStore
from finscope.types import Scope

logger = logging.getLogger(__name__)

# Module-level cache with lock for concurrent tool calls
_session: SupabaseSession | None = None
_scope: Scope | None = None
_lock = asyncio.Lock()

F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class ToolContext:
    """Everything a tool needs: scoped store access and settings."""

    store: EntityStore
    scope: Scope
    settings: Settings


async def get_client() -> SupabaseSession:
    """
    Get or create an authenticated backend session.

    Creates the session on first call, returns the cached one afterwards.
    """
    global _session

    async with _lock:
        if _session is None:
            logger.info("Creating new Supabase session")
            session = SupabaseSession(load_settings())
            await session.ensure_authenticated()
            _session = session
        return _session


async def get_scope() -> Scope:
    """
    Resolve (once) the tenant of the logged-in user.

    A user without a company gets an unresolved scope instead of an error,
    so callers can show the restricted-access state.
    """
    global _scope

    session = await get_client()
    async with _lock:
        if _scope is None:
            try:
                _scope = await resolve(EntityStore(session), session.user_id)
            except NoTenantAssociationError:
                _scope = restricted(session.user_id)
        return _scope


async def get_context() -> ToolContext:
    session = await get_client()
    scope = await get_scope()
    return ToolContext(store=EntityStore(session), scope=scope, settings=session.settings)


async def invalidate_client() -> None:
    """
    Invalidate the cached session and scope (e.g., on auth failure).

    Clears both in-memory cache and persisted session.
    """
    global _session, _scope

    async with _lock:
        if _session:
            await _session.close()
            clear_session(_session.settings.session_file)
            _session = None
        _scope = None
        logger.info("Invalidated Supabase session")


def with_auth_retry(func: F) -> F:
    """
    Decorator that retries on authentication failures.

    If a function fails with an auth error, this will:
    1. Invalidate the current session
    2. Retry the function once with a fresh session
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except AuthenticationError:
            logger.warning(f"Auth error in {func.__name__}, retrying with fresh session")
            await invalidate_client()
            return await func(*args, **kwargs)

    return wrapper  # type: ignore


def surface_errors(func: F) -> F:
    """
    Decorator that turns Finscope errors into an error payload for the caller.

    Auth errors still propagate so with_auth_retry can refresh the session.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except AuthenticationError:
            raise
        except FinscopeError as exc:
            logger.info(f"{func.__name__} failed: {exc.title}: {exc.description}")
            return {"error": exc.to_dict()}

    return wrapper  # type: ignore


def restricted_response(scope: Scope) -> dict | None:
    """Restricted-access payload for users without a company, else None."""
    if scope.is_resolved:
        return None
    return {
        "error": NoTenantAssociationError(
            "Usuário não está associado a nenhuma empresa. Entre em contato com o administrador."
        ).to_dict()
    }


def parse_day(value: str | None) -> date | None:
    """Parse a YYYY-MM-DD tool argument."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Data inválida: {value} (use AAAA-MM-DD)") from None
