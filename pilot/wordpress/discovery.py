"""Discovery collaborator: list a site's custom post types over its REST API.

How an endpoint is first classified is a pluggable concern. The default
``KeywordEndpointClassifier`` only looks at the route slug; replace it by
passing a different ``classifier`` to ``WordPressDiscoveryClient``.
"""

import logging
import re

import httpx

from pilot.wordpress.client import WordPressClient, total_from_headers
from pilot.wordpress.contracts import Classification, DiscoveredEndpoint, DiscoveredEndpointSet
from pilot.wordpress.errors import DiscoveryUnreachable

logger = logging.getLogger(__name__)

_ROUTE_PATTERN = re.compile(r"^/wp/v2/([a-z0-9_-]+)$", flags=re.IGNORECASE)

CORE_TYPES = frozenset(
    {
        "posts",
        "pages",
        "media",
        "blocks",
        "templates",
        "template-parts",
        "navigation",
        "comments",
        "search",
        "categories",
        "tags",
        "users",
        "settings",
        "themes",
        "plugins",
        "block-types",
        "block-patterns",
        "block-directory",
        "types",
        "statuses",
        "taxonomies",
        "menus",
        "menu-items",
        "menu-locations",
        "sidebars",
        "widgets",
        "widget-types",
        "global-styles",
        "font-families",
        "font-collections",
        "wp_pattern_category",
        "pattern-directory",
    }
)

COMMUNITY_KEYWORDS = ("community", "communities", "location", "locations", "site", "sites", "park", "parks")
HOME_KEYWORDS = (
    "home",
    "homes",
    "property",
    "properties",
    "listing",
    "listings",
    "house",
    "houses",
    "unit",
    "units",
)


class KeywordEndpointClassifier:
    """Slug keyword matching: exact keyword 0.9, keyword inside the slug 0.6."""

    exact_confidence = 0.9
    partial_confidence = 0.6

    def classify(self, slug: str) -> tuple[Classification, float | None, list[str]]:
        tokens = [token for token in re.split(r"[-_]", slug.lower()) if token]
        community = _keyword_score(tokens, COMMUNITY_KEYWORDS, HOME_KEYWORDS)
        home = _keyword_score(tokens, HOME_KEYWORDS, COMMUNITY_KEYWORDS)

        if community is None and home is None:
            return "unknown", None, ["No community or listing keywords in slug"]

        if community is not None and (home is None or community[0] >= home[0]):
            exact, keyword = community
            confidence = self.exact_confidence if exact else self.partial_confidence
            signals = [f'Slug {"matches" if exact else "contains"} "{keyword}"']
            if home is not None:
                confidence -= 0.2
                signals.append(f'Slug also contains "{home[1]}"')
            return "community", confidence, signals

        exact, keyword = home
        confidence = self.exact_confidence if exact else self.partial_confidence
        signals = [f'Slug {"matches" if exact else "contains"} "{keyword}"']
        if community is not None:
            confidence -= 0.2
            signals.append(f'Slug also contains "{community[1]}"')
        return "home", confidence, signals


class BaseDiscoveryClient:
    """Discovery collaborator interface."""

    def test_connection(self, site_url: str) -> None:
        """Raise ``DiscoveryUnreachable`` when the site has no usable REST API."""
        _ = site_url
        raise NotImplementedError

    def discover(self, site_url: str) -> DiscoveredEndpointSet:
        """Return candidate endpoints grouped by classification."""
        _ = site_url
        raise NotImplementedError


class WordPressDiscoveryClient(BaseDiscoveryClient):
    """Reads ``/wp-json`` routes and counts items per custom post type."""

    def __init__(
        self,
        client: WordPressClient | None = None,
        classifier: KeywordEndpointClassifier | None = None,
    ):
        self._client = client or WordPressClient()
        self._classifier = classifier or KeywordEndpointClassifier()

    def test_connection(self, site_url: str) -> None:
        self._routes(site_url)

    def discover(self, site_url: str) -> DiscoveredEndpointSet:
        routes = self._routes(site_url)
        community: list[DiscoveredEndpoint] = []
        home: list[DiscoveredEndpoint] = []
        unclassified: list[DiscoveredEndpoint] = []
        seen: set[str] = set()

        for route in routes:
            match = _ROUTE_PATTERN.match(route)
            if not match:
                continue
            slug = match.group(1)
            if slug.lower() in CORE_TYPES or slug in seen:
                continue
            seen.add(slug)

            classification, confidence, signals = self._classifier.classify(slug)
            endpoint = DiscoveredEndpoint(
                slug=slug,
                display_name=slug.replace("-", " ").replace("_", " "),
                rest_base=slug,
                classification=classification,
                confidence=confidence,
                signals=signals,
                approximate_post_count=self._count_items(site_url, slug),
            )
            if classification == "community":
                community.append(endpoint)
            elif classification == "home":
                home.append(endpoint)
            else:
                unclassified.append(endpoint)

        logger.info(
            "Discovered %d community, %d home, %d unclassified endpoints on %s",
            len(community),
            len(home),
            len(unclassified),
            site_url,
        )
        return DiscoveredEndpointSet(
            community_endpoints=community,
            home_endpoints=home,
            unclassified_endpoints=unclassified,
        )

    def _routes(self, site_url: str) -> list[str]:
        try:
            payload, _headers = self._client.get_json(f"{site_url}/wp-json")
        except httpx.HTTPStatusError as exc:
            raise DiscoveryUnreachable(
                f"WordPress REST API returned status {exc.response.status_code} for {site_url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DiscoveryUnreachable(f"Could not reach {site_url}: {exc}") from exc
        except ValueError as exc:
            raise DiscoveryUnreachable(f"{site_url} did not return a WordPress REST API response") from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("routes"), dict):
            raise DiscoveryUnreachable(f"{site_url} did not return a WordPress REST API response")
        return list(payload["routes"].keys())

    def _count_items(self, site_url: str, rest_base: str) -> int | None:
        try:
            response = self._client.get(f"{site_url}/wp-json/wp/v2/{rest_base}", params={"per_page": 1})
        except httpx.HTTPError as exc:
            logger.debug("Item count unavailable for %s: %s", rest_base, exc)
            return None
        if response.status_code != 200:
            return None
        return total_from_headers(response.headers)


def _keyword_score(
    tokens: list[str],
    keywords: tuple[str, ...],
    other_keywords: tuple[str, ...],
) -> tuple[bool, str] | None:
    """Return (exact, keyword) for the best hit in slug tokens, or None.

    A partial hit is ignored when it only occurs inside one of the other
    role's keywords ("unit" inside "community").
    """
    for token in tokens:
        if token in keywords:
            return True, token
    for token in tokens:
        for keyword in keywords:
            if keyword not in token:
                continue
            if any(keyword in other and other in token for other in other_keywords):
                continue
            return False, keyword
    return None
