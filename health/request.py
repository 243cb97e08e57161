# ============================================================================
# HEALTH REQUEST MODEL
# ============================================================================
# STATUS: Infrastructure - Request contract
# PURPOSE: Parse query parameters and headers into section flags
# ============================================================================
"""
Health Request Model

Recognized query parameters:
    mysql, object_cache (or redis), php, wp, build
        Section flags. A section runs only when its flag is present and
        true-ish (1/true/on/yes, case-insensitive).
    json
        Present at all -> JSON rendering. A `Content-Type:
        application/json` header does the same.
    pretty
        Pretty-print JSON even when disabled in configuration.
    cli=flush|flushdb
        Flush the object cache (privileged requests only).

The request token is read from `Authorization: Bearer <token>` or the
`X-Health-Token` header.
"""

from typing import Any, FrozenSet, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from core.config import TRUTHY
from health.core import (
    SECTION_BUILD,
    SECTION_MYSQL,
    SECTION_OBJECT_CACHE,
    SECTION_PHP,
    SECTION_WP,
)

FLUSH_COMMANDS = ("flush", "flushdb")
JSON_CONTENT_TYPE = "application/json"


def is_truthy(value: Any) -> bool:
    """Boolean filter semantics: only explicit truthy spellings count."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY


class HealthRequest(BaseModel):
    """Parsed health request."""

    mysql: bool = False
    object_cache: bool = False
    redis: bool = False
    php: bool = False
    wp: bool = False
    build: bool = False
    json_requested: bool = Field(default=False, alias="json")
    pretty: bool = False
    cli: Optional[str] = None
    content_type: Optional[str] = None
    token: Optional[str] = Field(default=None, repr=False)
    privileged: bool = False

    model_config = {"populate_by_name": True}

    @field_validator("mysql", "object_cache", "redis", "php", "wp", "build", "pretty", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return is_truthy(value)

    @classmethod
    def from_http(
        cls,
        query: Mapping[str, str],
        headers: Mapping[str, str],
    ) -> "HealthRequest":
        """Build from raw query parameters and (case-insensitive) headers."""
        token = headers.get("x-health-token")
        authorization = headers.get("authorization") or ""
        if not token and authorization.lower().startswith("bearer "):
            token = authorization[7:].strip()

        return cls(
            mysql=query.get("mysql"),
            object_cache=query.get("object_cache"),
            redis=query.get("redis"),
            php=query.get("php"),
            wp=query.get("wp"),
            build=query.get("build"),
            json_requested="json" in query,
            pretty=query.get("pretty"),
            cli=query.get("cli"),
            content_type=headers.get("content-type"),
            token=token or None,
        )

    def requested_sections(self) -> FrozenSet[str]:
        flags = {
            SECTION_MYSQL: self.mysql,
            SECTION_OBJECT_CACHE: self.object_cache or self.redis,
            SECTION_PHP: self.php,
            SECTION_WP: self.wp,
            SECTION_BUILD: self.build,
        }
        return frozenset(name for name, enabled in flags.items() if enabled)

    @property
    def wants_json(self) -> bool:
        if self.json_requested:
            return True
        if not self.content_type:
            return False
        return self.content_type.split(";")[0].strip().lower() == JSON_CONTENT_TYPE

    @property
    def wants_flush(self) -> bool:
        return self.cli in FLUSH_COMMANDS


__all__ = ["HealthRequest", "is_truthy", "FLUSH_COMMANDS"]
