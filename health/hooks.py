# ============================================================================
# HEALTH HOOK REGISTRY
# ============================================================================
# STATUS: Infrastructure - Extension and authorization hooks
# PURPOSE: Typed callback registry around the health response
# ============================================================================
"""
Health Hook Registry

Extension points of the health endpoint:

- Response hooks: called once per evaluation with the mutable payload and
  the evaluation, after every built-in section is populated and before
  the payload is sorted and serialized.
- require_authentication: whether the authenticated route demands
  credentials at all (default True).
- authenticator / privilege check: decide whether a request is
  authenticated, and whether it may trigger privileged side effects
  (cache flush). Defaults compare the request token with the configured
  HEALTH_AUTH_TOKEN / HEALTH_ADMIN_TOKEN.

Usage:
    from health.hooks import on_response

    @on_response(priority=20)
    def add_region(payload, evaluation):
        payload["region"] = "eu-west-1"
"""

import hmac
import logging
from itertools import count
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from core.config import get_config

if TYPE_CHECKING:
    from health.core import HealthEvaluation
    from health.request import HealthRequest

logger = logging.getLogger(__name__)

ResponseHook = Callable[[Dict[str, Any], "HealthEvaluation"], None]
RequestPredicate = Callable[["HealthRequest"], bool]


def _token_matches(token: Optional[str], expected: str) -> bool:
    if not token or not expected:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())


def default_authenticator(request: "HealthRequest") -> bool:
    config = get_config()
    return (
        _token_matches(request.token, config.auth_token)
        or _token_matches(request.token, config.admin_token)
    )


def default_privilege_check(request: "HealthRequest") -> bool:
    return _token_matches(request.token, get_config().admin_token)


class HealthHookRegistry:
    """
    Registry for health endpoint hooks.

    Response hooks run in ascending priority, then registration order.
    """

    def __init__(self):
        self._response_hooks: List[Tuple[int, int, str, ResponseHook]] = []
        self._sequence = count()
        self._require_authentication: Callable[[], bool] = lambda: True
        self._authenticator: RequestPredicate = default_authenticator
        self._privilege_check: RequestPredicate = default_privilege_check

    # ------------------------------------------------------------------
    # Response hooks
    # ------------------------------------------------------------------

    def add_response_hook(
        self,
        hook: ResponseHook,
        priority: int = 10,
        name: Optional[str] = None,
    ) -> str:
        """
        Register a response hook.

        Returns:
            The name the hook was registered under
        """
        hook_name = name or getattr(hook, "__qualname__", repr(hook))
        self._response_hooks.append((priority, next(self._sequence), hook_name, hook))
        self._response_hooks.sort(key=lambda entry: (entry[0], entry[1]))
        logger.debug(f"Registered response hook: {hook_name} (priority={priority})")
        return hook_name

    def remove_response_hook(self, name: str) -> bool:
        before = len(self._response_hooks)
        self._response_hooks = [h for h in self._response_hooks if h[2] != name]
        return len(self._response_hooks) != before

    def response_hooks(self) -> List[str]:
        return [entry[2] for entry in self._response_hooks]

    def apply_response_hooks(
        self,
        payload: Dict[str, Any],
        evaluation: "HealthEvaluation",
    ) -> None:
        """Run every response hook; a failing hook is logged and skipped."""
        for _, _, name, hook in self._response_hooks:
            try:
                hook(payload, evaluation)
            except Exception as e:
                logger.error(f"Response hook {name} failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def set_require_authentication(self, provider: Callable[[], bool]) -> None:
        self._require_authentication = provider

    def require_authentication(self) -> bool:
        return self._require_authentication() is True

    def set_authenticator(self, authenticator: RequestPredicate) -> None:
        self._authenticator = authenticator

    def is_authenticated(self, request: "HealthRequest") -> bool:
        return bool(self._authenticator(request))

    def set_privilege_check(self, check: RequestPredicate) -> None:
        self._privilege_check = check

    def is_privileged(self, request: "HealthRequest") -> bool:
        return bool(self._privilege_check(request))

    def clear(self) -> None:
        """Drop every hook and restore the default providers."""
        self._response_hooks.clear()
        self._require_authentication = lambda: True
        self._authenticator = default_authenticator
        self._privilege_check = default_privilege_check

    def __len__(self) -> int:
        return len(self._response_hooks)


# ============================================================================
# GLOBAL REGISTRY & DECORATOR
# ============================================================================

_hooks: Optional[HealthHookRegistry] = None


def get_hooks() -> HealthHookRegistry:
    """Get the global hook registry."""
    global _hooks
    if _hooks is None:
        _hooks = HealthHookRegistry()
    return _hooks


def reset_hooks() -> None:
    global _hooks
    _hooks = None


def on_response(priority: int = 10, name: Optional[str] = None):
    """
    Decorator to register a response hook on the global registry.

    Example:
        @on_response(priority=20)
        def add_region(payload, evaluation):
            payload["region"] = "eu-west-1"
    """
    def decorator(hook: ResponseHook) -> ResponseHook:
        get_hooks().add_response_hook(hook, priority=priority, name=name)
        return hook

    return decorator


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ResponseHook",
    "HealthHookRegistry",
    "default_authenticator",
    "default_privilege_check",
    "get_hooks",
    "reset_hooks",
    "on_response",
]
