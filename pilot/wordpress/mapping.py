"""Ranking, default selection and conflict detection for endpoint mapping."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from pilot.wordpress.classifier import confidence_band, contextual_confidence, is_opposite
from pilot.wordpress.contracts import ROLES, DiscoveredEndpoint, DiscoveredEndpointSet, Role

CONFLICT_WARNING = (
    "The same endpoint is mapped to both Communities and Properties. "
    "Both feeds will import the same content."
)


@dataclass(frozen=True)
class ScoredCandidate:
    """Candidate endpoint with its confidence for one role."""

    endpoint: DiscoveredEndpoint
    confidence: float
    band: str
    classified_as_other_role: bool


@dataclass(frozen=True)
class RoleMapping:
    """Ranked pool plus suggested and effective selection for one role."""

    role: Role
    candidates: list[ScoredCandidate]
    suggested: str | None
    effective: str | None
    skipped: bool


@dataclass(frozen=True)
class MappingView:
    """Everything the mapping step shows and validates."""

    roles: dict[Role, RoleMapping]
    conflict: bool
    can_confirm: bool
    warnings: list[str] = field(default_factory=list)

    def effective(self, role: Role) -> str | None:
        return self.roles[role].effective


def rank_candidates(endpoint_set: DiscoveredEndpointSet, role: Role) -> list[ScoredCandidate]:
    """Sort the pool by contextual confidence, descending.

    ``sorted`` is stable, so equal scores keep discovery order.
    """
    scored: list[ScoredCandidate] = []
    for endpoint in endpoint_set.candidates():
        score = contextual_confidence(endpoint, role)
        scored.append(
            ScoredCandidate(
                endpoint=endpoint,
                confidence=score,
                band=confidence_band(score),
                classified_as_other_role=is_opposite(endpoint, role),
            )
        )
    return sorted(scored, key=lambda candidate: candidate.confidence, reverse=True)


def suggested_default(ranked: list[ScoredCandidate]) -> str | None:
    """Top-ranked rest_base, or None for an empty pool."""
    if not ranked:
        return None
    return ranked[0].endpoint.rest_base


def effective_selection(suggested: str | None, selections: Mapping[Role, str | None], role: Role) -> str | None:
    """Explicit choice wins; a None choice means "don't sync"; unset falls back to the default."""
    if role in selections:
        return selections[role]
    return suggested


def has_conflict(community: str | None, prop: str | None) -> bool:
    return community is not None and community == prop


def resolve_mapping(
    endpoint_set: DiscoveredEndpointSet,
    selections: Mapping[Role, str | None] | None = None,
) -> MappingView:
    """Build ranked candidates, defaults and effective choices for both roles."""
    selections = selections or {}
    roles: dict[Role, RoleMapping] = {}
    for role in ROLES:
        ranked = rank_candidates(endpoint_set, role)
        suggested = suggested_default(ranked)
        roles[role] = RoleMapping(
            role=role,
            candidates=ranked,
            suggested=suggested,
            effective=effective_selection(suggested, selections, role),
            skipped=role in selections and selections[role] is None,
        )

    conflict = has_conflict(roles["community"].effective, roles["property"].effective)
    warnings = [CONFLICT_WARNING] if conflict else []
    return MappingView(
        roles=roles,
        conflict=conflict,
        can_confirm=can_confirm(
            roles["community"].effective,
            roles["property"].effective,
            skipped={role for role, mapping in roles.items() if mapping.skipped},
        ),
        warnings=warnings,
    )


def can_confirm(community: str | None, prop: str | None, *, skipped: set[Role] | frozenset[Role] = frozenset()) -> bool:
    """Blocked only when neither role has a selection and not both were skipped."""
    if community is not None or prop is not None:
        return True
    return set(ROLES) <= set(skipped)
