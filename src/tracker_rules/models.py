"""
Data models for the tracker rules pipeline.

This module defines the data structures passed between the fetch layer,
the rule generator, the rule cache, and the rule engine hand-off.
"""

from dataclasses import dataclass, field
from typing import Optional

from .enums import RuleAction


@dataclass
class HTTPRequest:
    """An outgoing GET request."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    bypass_local_cache: bool = False

    def with_header(self, name: str, value: str) -> "HTTPRequest":
        """Return a copy of this request with one header added or replaced."""
        headers = dict(self.headers)
        headers[name] = value
        return HTTPRequest(
            url=self.url,
            headers=headers,
            bypass_local_cache=self.bypass_local_cache,
        )


@dataclass
class HTTPResponse:
    """
    Response from the fetch layer.

    data is None for 304 Not Modified; callers decide "not modified" by the
    absence of data, never by inspecting status_code.
    """

    url: str
    status_code: int
    headers: dict[str, str]
    data: Optional[bytes]

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


@dataclass
class FetchedDataset:
    """Raw tracker dataset bytes paired with the ETag the response carried."""

    data: bytes
    etag: Optional[str] = None


@dataclass
class CachedRuleSnapshot:
    """Compiled rules as stored by the rule cache."""

    rules_json: str
    etag: Optional[str]
    timestamp: float  # unix seconds


@dataclass
class ContentRule:
    """A single compiled content blocking rule (trigger + action)."""

    url_filter: str
    action: RuleAction
    resource_types: Optional[list[str]] = None
    unless_domains: Optional[list[str]] = None

    def to_dict(self) -> dict:
        """Serialize into the rule engine's JSON shape."""
        trigger: dict = {"url-filter": self.url_filter}
        if self.resource_types:
            trigger["resource-type"] = list(self.resource_types)
        if self.unless_domains:
            trigger["unless-domain"] = list(self.unless_domains)
        return {
            "trigger": trigger,
            "action": {"type": self.action.value},
        }
