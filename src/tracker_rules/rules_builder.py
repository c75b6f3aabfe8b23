"""
Content blocking rule builder.

Compiles decoded tracker data into an ordered list of ContentRule objects.
The target engine evaluates rules in declaration order and an
ignore-previous-rules match cancels every earlier matching block, so the
emission order is:

1. per tracker: the default block rule, then its pattern rules
2. block rules for CNAME aliases of blocking trackers
3. ignore-previous-rules for every domain of an allowlisted entity

Every block rule also carries an unless-domain list holding the owning
entity's first-party domains plus every allowlisted domain.
"""

import re
from typing import Iterable, Optional

from .enums import RuleAction, TrackerAction
from .models import ContentRule
from .tracker_data import Tracker, TrackerData, TrackerRule


URL_FILTER_PREFIX = "^(https?)?(wss?)?://([a-z0-9-]+\\.)*"
URL_FILTER_SUFFIX = "(:?[0-9]+)?/.*"

# Dataset resource type names -> rule engine resource types
RESOURCE_TYPE_MAP = {
    "script": "script",
    "image": "image",
    "imageset": "image",
    "stylesheet": "style-sheet",
    "font": "font",
    "media": "media",
    "xmlhttprequest": "raw",
    "fetch": "fetch",
    "ping": "ping",
    "websocket": "websocket",
    "subdocument": "document",
    "document": "document",
    "popup": "popup",
    "other": "other",
}

_DOMAIN_LIKE = re.compile(r"^[a-z0-9*]([a-z0-9.-]*[a-z0-9])?$")


def domain_url_filter(domain: str) -> str:
    """Regex matching any http(s)/ws(s) URL on domain or its subdomains."""
    escaped = domain.lower().replace(".", "\\.")
    return f"{URL_FILTER_PREFIX}{escaped}{URL_FILTER_SUFFIX}"


def map_resource_types(types: Iterable[str]) -> list[str]:
    """Translate dataset type names, dropping unknown ones, keeping order."""
    mapped: list[str] = []
    for name in types:
        value = RESOURCE_TYPE_MAP.get(name.lower())
        if value and value not in mapped:
            mapped.append(value)
    return mapped


def _dedupe(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


class ContentBlockerRulesBuilder:
    """Build content blocking rules from tracker data."""

    def __init__(self, tracker_data: TrackerData) -> None:
        self._data = tracker_data

    def build_rules(self, exceptions: Optional[Iterable[str]] = None) -> list[ContentRule]:
        """
        Build the ordered rule list.

        Args:
            exceptions: Allowlist entries; domains (or entity names) whose
                        resources must never be blocked

        Returns:
            Ordered list of ContentRule
        """
        entries = sorted({e.strip().lower() for e in (exceptions or []) if e and e.strip()})
        exception_domains = [e for e in entries if "." in e and _DOMAIN_LIKE.match(e)]
        allowlisted_entities = self.resolve_entities(entries)

        rules: list[ContentRule] = []

        for key in sorted(self._data.trackers):
            rules.extend(self._tracker_rules(self._data.trackers[key], key, exception_domains))

        for alias in sorted(self._data.cname):
            tracker = self._data.trackers[self._data.cname[alias]]
            if tracker.default_action is TrackerAction.BLOCK:
                rules.append(ContentRule(
                    url_filter=domain_url_filter(alias),
                    action=RuleAction.BLOCK,
                    unless_domains=self._unless_domains(tracker, exception_domains) or None,
                ))

        for entity_name in sorted(allowlisted_entities):
            owned = self._data.trackers_owned_by(entity_name)
            if not owned:
                continue
            domains = _dedupe(self._data.entity_domains(entity_name) + [t.domain for t in owned])
            for domain in domains:
                rules.append(ContentRule(
                    url_filter=domain_url_filter(domain),
                    action=RuleAction.IGNORE_PREVIOUS_RULES,
                ))

        return rules

    def resolve_entities(self, entries: Iterable[str]) -> set[str]:
        """
        Map allowlist entries to entity names.

        An entry resolves when it names an entity (name or display name) or
        when it, or one of its parent domains, belongs to an entity.
        """
        resolved: set[str] = set()
        for entry in entries:
            entity = self._data.entity_named(entry)
            if entity is None and "." in entry:
                entity = self._data.entity_for_domain(entry)
            if entity is not None:
                resolved.add(entity.name)
        return resolved

    def _unless_domains(self, tracker: Tracker, exception_domains: list[str]) -> list[str]:
        first_party = self._data.entity_domains(tracker.owner)
        return [f"*{d}" for d in _dedupe(first_party + exception_domains)]

    def _tracker_rules(
        self,
        tracker: Tracker,
        key: str,
        exception_domains: list[str],
    ) -> list[ContentRule]:
        unless = self._unless_domains(tracker, exception_domains)
        rules: list[ContentRule] = []

        if tracker.default_action is TrackerAction.BLOCK:
            rules.append(ContentRule(
                url_filter=domain_url_filter(tracker.domain or key),
                action=RuleAction.BLOCK,
                unless_domains=unless or None,
            ))

        for rule in tracker.rules:
            rules.extend(self._pattern_rules(rule, unless))

        return rules

    def _pattern_rules(self, rule: TrackerRule, unless: list[str]) -> list[ContentRule]:
        if rule.action is TrackerAction.IGNORE:
            return [ContentRule(
                url_filter=rule.pattern,
                action=RuleAction.IGNORE_PREVIOUS_RULES,
            )]

        rule_unless = _dedupe(unless + [f"*{d.lower()}" for d in rule.exception_domains])
        rules = [ContentRule(
            url_filter=rule.pattern,
            action=RuleAction.BLOCK,
            resource_types=map_resource_types(rule.option_types) or None,
            unless_domains=rule_unless or None,
        )]

        exempt_types = map_resource_types(rule.exception_types)
        if exempt_types:
            rules.append(ContentRule(
                url_filter=rule.pattern,
                action=RuleAction.IGNORE_PREVIOUS_RULES,
                resource_types=exempt_types,
            ))

        return rules
