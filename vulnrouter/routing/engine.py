"""Routing decision engine.

Maps a finding and a configuration snapshot to an optional dispatch request.
No I/O and no exceptions: malformed severities or categories simply produce
no dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass

from vulnrouter.routing.severity import UNRANKED, rank
from vulnrouter.routing.store import KNOWN_CATEGORIES, RoutingConfiguration
from vulnrouter.schemas.v1.findings import Finding


@dataclass(frozen=True)
class DispatchRequest:
    """Instruction to announce ``finding`` on ``channel``."""

    channel: str
    finding: Finding


def decide(finding: Finding, config: RoutingConfiguration) -> DispatchRequest | None:
    """Return where to notify about ``finding``, or None to stay quiet.

    The threshold is inclusive: a finding exactly at the category's minimum
    severity is dispatched.
    """
    if finding.category not in KNOWN_CATEGORIES:
        return None

    rule = config.rule_for(finding.category)
    if rule is None:
        return None

    finding_rank = rank(finding.severity)
    if finding_rank == UNRANKED:
        return None

    if finding_rank >= rank(rule.min_severity):
        return DispatchRequest(channel=rule.channel, finding=finding)
    return None
