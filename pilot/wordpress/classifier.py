"""Role-specific re-scoring of discovered endpoints.

Discovery assigns each endpoint a single global classification. Mapping
needs one confidence per target role, so an endpoint classified as a
listing type scores low as a community candidate, and the more certain the
listing classification, the lower that score gets.
"""

from pilot.wordpress.contracts import Classification, DiscoveredEndpoint, Role

HIGH_MATCH_THRESHOLD = 0.7
POSSIBLE_MATCH_THRESHOLD = 0.4
UNKNOWN_CONFIDENCE = 0.35
OPPOSITE_CEILING = 0.3
OPPOSITE_FLOOR = 0.1

_MATCHING: dict[Role, Classification] = {"community": "community", "property": "home"}
_OPPOSITE: dict[Role, Classification] = {"community": "home", "property": "community"}


def contextual_confidence(endpoint: DiscoveredEndpoint, role: Role) -> float:
    """Return the endpoint's suitability for ``role`` in [0, 1]."""
    raw = endpoint.confidence or 0.0
    classification = endpoint.classification

    if classification == _MATCHING[role]:
        return raw
    if classification == _OPPOSITE[role]:
        return max(OPPOSITE_FLOOR, OPPOSITE_CEILING - raw * OPPOSITE_CEILING)
    return UNKNOWN_CONFIDENCE


def is_opposite(endpoint: DiscoveredEndpoint, role: Role) -> bool:
    """True when discovery classified the endpoint as the other role."""
    return endpoint.classification == _OPPOSITE[role]


def confidence_band(confidence: float) -> str:
    """Display label only; never used for ranking or selection."""
    if confidence >= HIGH_MATCH_THRESHOLD:
        return "High match"
    if confidence >= POSSIBLE_MATCH_THRESHOLD:
        return "Possible match"
    return "Low match"
