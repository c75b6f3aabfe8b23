"""
Tracker dataset model and decoder.

Decodes the upstream tracker-definitions document into typed structures.
Only the fields the rule builder needs are extracted; unknown fields are
ignored. References that do not resolve (a tracker owner or a domains entry
naming an unknown entity, a CNAME pointing at an unknown tracker) are
dropped rather than failing the whole decode.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from .enums import TrackerAction
from .exceptions import DatasetDecodeError


@dataclass
class Entity:
    """An organization owning one or more domains."""

    name: str
    display_name: str
    domains: list[str] = field(default_factory=list)
    prevalence: float = 0.0


@dataclass
class TrackerRule:
    """A pattern-specific rule inside a tracker entry."""

    pattern: str
    action: TrackerAction = TrackerAction.BLOCK
    exception_domains: list[str] = field(default_factory=list)
    exception_types: list[str] = field(default_factory=list)
    option_types: list[str] = field(default_factory=list)


@dataclass
class Tracker:
    """A tracking domain and how to treat it."""

    domain: str
    owner: Optional[str]  # entity name; None if the reference did not resolve
    default_action: TrackerAction = TrackerAction.BLOCK
    categories: list[str] = field(default_factory=list)
    rules: list[TrackerRule] = field(default_factory=list)


@dataclass
class TrackerData:
    """Decoded tracker dataset."""

    entities: dict[str, Entity] = field(default_factory=dict)
    trackers: dict[str, Tracker] = field(default_factory=dict)
    domains: dict[str, str] = field(default_factory=dict)
    cname: dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.entities or self.trackers or self.domains or self.cname)

    def entity_named(self, name: str) -> Optional[Entity]:
        """Find an entity by name or display name, ignoring case."""
        if name in self.entities:
            return self.entities[name]
        wanted = name.strip().lower()
        for entity in self.entities.values():
            if entity.name.lower() == wanted or entity.display_name.lower() == wanted:
                return entity
        return None

    def entity_for_domain(self, domain: str) -> Optional[Entity]:
        """
        Resolve the owning entity of a domain.

        Walks up parent domains (a.b.example.com, b.example.com, example.com)
        and consults both the domains map and tracker owners.
        """
        labels = domain.strip().lower().rstrip(".").split(".")
        for i in range(len(labels) - 1):
            candidate = ".".join(labels[i:])
            owner = self.domains.get(candidate)
            if owner is None and candidate in self.trackers:
                owner = self.trackers[candidate].owner
            if owner is not None and owner in self.entities:
                return self.entities[owner]
        return None

    def trackers_owned_by(self, entity_name: str) -> list[Tracker]:
        return [t for t in self.trackers.values() if t.owner == entity_name]

    def entity_domains(self, entity_name: Optional[str]) -> list[str]:
        """All domains attributed to an entity, in first-seen order."""
        if entity_name is None or entity_name not in self.entities:
            return []
        seen: dict[str, None] = {}
        for domain in self.entities[entity_name].domains:
            seen[domain] = None
        for domain, owner in sorted(self.domains.items()):
            if owner == entity_name:
                seen[domain] = None
        return list(seen)


def _fail(message: str, **details: Any) -> DatasetDecodeError:
    return DatasetDecodeError(code="invalid_schema", message=message, details=details)


def _expect_dict(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise _fail(f"Expected an object at {where}", where=where)
    return value


def _string_list(value: Any, where: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise _fail(f"Expected a list of strings at {where}", where=where)
    return list(value)


def _action(value: Any, where: str, default: TrackerAction) -> TrackerAction:
    if value is None:
        return default
    try:
        return TrackerAction(value)
    except ValueError:
        raise _fail(f"Unknown action {value!r} at {where}", where=where)


def _decode_rule(raw: Any, where: str) -> TrackerRule:
    rule = _expect_dict(raw, where)
    pattern = rule.get("rule")
    if not isinstance(pattern, str) or not pattern:
        raise _fail(f"Missing rule pattern at {where}", where=where)

    exceptions = _expect_dict(rule.get("exceptions") or {}, f"{where}.exceptions")
    options = _expect_dict(rule.get("options") or {}, f"{where}.options")

    return TrackerRule(
        pattern=pattern,
        action=_action(rule.get("action"), f"{where}.action", TrackerAction.BLOCK),
        exception_domains=_string_list(exceptions.get("domains"), f"{where}.exceptions.domains"),
        exception_types=_string_list(exceptions.get("types"), f"{where}.exceptions.types"),
        option_types=_string_list(options.get("types"), f"{where}.options.types"),
    )


def decode_tracker_data(data: bytes) -> TrackerData:
    """
    Decode raw dataset bytes.

    Args:
        data: UTF-8 JSON document with entities, trackers, domains and
              (optionally) cname sections

    Returns:
        Decoded TrackerData

    Raises:
        DatasetDecodeError: If the bytes are not JSON or do not match the schema
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise _fail(f"Dataset is not valid JSON: {e}")

    document = _expect_dict(document, "$")
    for section in ("entities", "trackers", "domains"):
        if section not in document:
            raise _fail(f"Dataset is missing the {section!r} section", section=section)

    entities: dict[str, Entity] = {}
    for name, raw_entity in _expect_dict(document["entities"], "entities").items():
        entity = _expect_dict(raw_entity, f"entities.{name}")
        prevalence = entity.get("prevalence", 0.0)
        entities[name] = Entity(
            name=name,
            display_name=entity.get("displayName") if isinstance(entity.get("displayName"), str) else name,
            domains=_string_list(entity.get("domains"), f"entities.{name}.domains"),
            prevalence=float(prevalence) if isinstance(prevalence, (int, float)) else 0.0,
        )

    trackers: dict[str, Tracker] = {}
    for key, raw_tracker in _expect_dict(document["trackers"], "trackers").items():
        where = f"trackers.{key}"
        tracker = _expect_dict(raw_tracker, where)

        owner_name = None
        owner = tracker.get("owner")
        if isinstance(owner, dict) and isinstance(owner.get("name"), str):
            owner_name = owner["name"]
        if owner_name not in entities:
            owner_name = None

        raw_rules = tracker.get("rules") or []
        if not isinstance(raw_rules, list):
            raise _fail(f"Expected a list at {where}.rules", where=where)

        domain = tracker.get("domain")
        trackers[key.lower()] = Tracker(
            domain=(domain if isinstance(domain, str) and domain else key).lower(),
            owner=owner_name,
            default_action=_action(tracker.get("default"), f"{where}.default", TrackerAction.BLOCK),
            categories=_string_list(tracker.get("categories"), f"{where}.categories"),
            rules=[_decode_rule(r, f"{where}.rules[{i}]") for i, r in enumerate(raw_rules)],
        )

    domains: dict[str, str] = {}
    for domain, owner_name in _expect_dict(document["domains"], "domains").items():
        if not isinstance(owner_name, str):
            raise _fail(f"Expected an entity name at domains.{domain}", where=f"domains.{domain}")
        if owner_name in entities:
            domains[domain.lower()] = owner_name

    cname: dict[str, str] = {}
    for alias, target in _expect_dict(document.get("cname") or {}, "cname").items():
        if not isinstance(target, str):
            raise _fail(f"Expected a domain at cname.{alias}", where=f"cname.{alias}")
        if target.lower() in trackers:
            cname[alias.lower()] = target.lower()

    return TrackerData(entities=entities, trackers=trackers, domains=domains, cname=cname)
