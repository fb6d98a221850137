"""In-memory routing configuration store.

Holds the channel and minimum severity for every finding category. Routing
decisions take snapshots under a shared lock; operator updates replace rules
under an exclusive lock. Rules are immutable, so a snapshot can never mix the
channel of one write with the threshold of another.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType

import structlog

from vulnrouter.core.errors import InvalidRoutingRuleError
from vulnrouter.routing.severity import is_known_severity, normalize_severity

logger = structlog.get_logger(__name__)


class FindingCategory(StrEnum):
    OS = "OS"
    APP = "APP"


KNOWN_CATEGORIES: frozenset[str] = frozenset(category.value for category in FindingCategory)


@dataclass(frozen=True)
class RoutingRule:
    """Destination channel and inclusive severity floor for one category."""

    channel: str
    min_severity: str

    def to_dict(self) -> dict[str, str]:
        return {"channel": self.channel, "min_severity": self.min_severity}


@dataclass(frozen=True)
class RoutingConfiguration:
    """Point-in-time, read-only view of every category's rule."""

    rules: Mapping[str, RoutingRule] = field(default_factory=dict)

    def rule_for(self, category: str) -> RoutingRule | None:
        return self.rules.get(category)

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {category: rule.to_dict() for category, rule in sorted(self.rules.items())}


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    Writers are preferred: once a writer is waiting, new readers queue behind
    it, so a steady stream of routing decisions cannot starve an update.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer_active = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer_active or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer_active or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer_active = True
        try:
            yield
        finally:
            with self._cond:
                self._writer_active = False
                self._cond.notify_all()


def validate_rule(category: str, rule: RoutingRule) -> RoutingRule:
    """Check a rule write and return it with its threshold normalized.

    Unknown categories and thresholds off the severity scale are rejected
    rather than stored.
    """
    if category not in KNOWN_CATEGORIES:
        raise InvalidRoutingRuleError(
            f"Unknown finding category: {category!r}",
            category=category,
            details={"known_categories": sorted(KNOWN_CATEGORIES)},
        )
    if not is_known_severity(rule.min_severity):
        raise InvalidRoutingRuleError(
            f"Unknown severity threshold: {rule.min_severity!r}",
            category=category,
            details={"min_severity": rule.min_severity},
        )
    channel = rule.channel.strip()
    if not channel:
        raise InvalidRoutingRuleError("Channel must not be blank", category=category)
    return RoutingRule(channel=channel, min_severity=normalize_severity(rule.min_severity))


class RoutingConfigStore:
    """Process-wide routing configuration, shared by ingestion and operators."""

    def __init__(self, initial_rules: Mapping[str, RoutingRule]) -> None:
        missing = KNOWN_CATEGORIES - set(initial_rules)
        if missing:
            raise InvalidRoutingRuleError(
                "Initial routing configuration is missing categories",
                category=",".join(sorted(missing)),
            )
        self._lock = ReadWriteLock()
        self._rules: dict[str, RoutingRule] = {
            category: validate_rule(category, rule) for category, rule in initial_rules.items()
        }

    def snapshot(self) -> RoutingConfiguration:
        """Copy the current rules out under the shared lock."""
        with self._lock.read_locked():
            rules = dict(self._rules)
        return RoutingConfiguration(rules=MappingProxyType(rules))

    def replace(self, category: str, rule: RoutingRule) -> RoutingRule:
        """Install ``rule`` for ``category``. Returns the rule it replaced."""
        validated = validate_rule(category, rule)
        with self._lock.write_locked():
            previous = self._rules[category]
            self._rules[category] = validated
        logger.info(
            "Routing rule replaced",
            category=category,
            previous=previous.to_dict(),
            current=validated.to_dict(),
        )
        return previous

    def replace_many(self, rules: Mapping[str, RoutingRule]) -> None:
        """Install several rules in one exclusive section, all or nothing."""
        validated = {category: validate_rule(category, rule) for category, rule in rules.items()}
        with self._lock.write_locked():
            previous = {category: self._rules[category] for category in validated}
            self._rules.update(validated)
        logger.info(
            "Routing rules replaced",
            previous={category: rule.to_dict() for category, rule in previous.items()},
            current={category: rule.to_dict() for category, rule in validated.items()},
        )
