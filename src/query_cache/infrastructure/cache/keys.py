"""Cache key derivation. Single place for the key format.

Key layout:
    <namespace>:<account>-<database>-<schema>:<normalized query>

Queries that differ only in letter case, whitespace or trailing semicolons
normalize to the same text and therefore share a key. Identity components
must not contain CACHE_KEY_SEP; the query is the last component, so it may.
"""

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from query_cache.core.config.constants import (
    CACHE_KEY_SEP,
    DEFAULT_CACHE_NAMESPACE,
    REDIS_META_SUFFIX,
)

_TRAILING_SEMICOLONS = re.compile(r";+$")
_WHITESPACE_RUN = re.compile(r"\s+")


class ConnectionIdentity(BaseModel):
    """Warehouse connection a query runs against. Missing fields render as empty."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    account: str = ""
    database: str = ""
    # "schema" shadows a BaseModel attribute
    schema_name: str = Field(default="", alias="schema")

    @field_validator("account", "database", "schema_name", mode="before")
    @classmethod
    def coerce_to_str(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @classmethod
    def from_any(cls, identity: "ConnectionIdentity | Mapping[str, Any] | None") -> "ConnectionIdentity":
        """Build from a model, a request-body mapping or None."""
        if isinstance(identity, cls):
            return identity
        if identity is None:
            return cls()
        return cls.model_validate(dict(identity))

    def tag(self) -> str:
        """account-database-schema component of the key."""
        for value, name in ((self.account, "account"), (self.database, "database"), (self.schema_name, "schema")):
            if CACHE_KEY_SEP in value:
                raise ValueError(
                    f"Connection identity field {name!r} must not contain separator {CACHE_KEY_SEP!r}"
                )
        return f"{self.account}-{self.database}-{self.schema_name}"


def normalize_query(raw_query: str) -> str:
    """Strip, drop trailing semicolons, collapse whitespace runs, lowercase (in that order).

    Whitespace left in front of the removed semicolons is stripped too, so
    "select 1 ;" and "select 1;" normalize alike.
    """
    text = raw_query.strip()
    text = _TRAILING_SEMICOLONS.sub("", text).rstrip()
    text = _WHITESPACE_RUN.sub(" ", text)
    return text.lower()


def derive_key(
    raw_query: str,
    connection_identity: "ConnectionIdentity | Mapping[str, Any] | None",
    namespace: str = DEFAULT_CACHE_NAMESPACE,
) -> str:
    """Canonical cache key for a query against a connection. Pure, no I/O."""
    identity = ConnectionIdentity.from_any(connection_identity)
    return f"{namespace}{CACHE_KEY_SEP}{identity.tag()}{CACHE_KEY_SEP}{normalize_query(raw_query)}"


def meta_key(key: str) -> str:
    """Redis hash holding access metadata for a cached value."""
    return f"{key}{REDIS_META_SUFFIX}"


def namespace_pattern(namespace: str) -> str:
    """SCAN pattern matching every key in a namespace (values and metadata)."""
    return f"{namespace}{CACHE_KEY_SEP}*"
