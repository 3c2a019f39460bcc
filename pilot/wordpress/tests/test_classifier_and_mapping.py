"""Tests for contextual scoring, ranking and mapping defaults."""

import unittest

from pilot.wordpress.classifier import confidence_band, contextual_confidence
from pilot.wordpress.contracts import DiscoveredEndpointSet
from pilot.wordpress.mapping import (
    CONFLICT_WARNING,
    can_confirm,
    rank_candidates,
    resolve_mapping,
    suggested_default,
)
from pilot.wordpress.tests.fakes import community_and_listing, endpoint


class ContextualConfidenceTests(unittest.TestCase):
    """Per-role confidence from one global classification."""

    def test_matching_classification_keeps_raw_confidence(self) -> None:
        self.assertEqual(contextual_confidence(endpoint("sites", "community", 0.72), "community"), 0.72)
        self.assertEqual(contextual_confidence(endpoint("homes", "home", 0.55), "property"), 0.55)

    def test_opposite_classification_is_inverted_and_floored(self) -> None:
        self.assertAlmostEqual(contextual_confidence(endpoint("homes", "home", 0.0), "community"), 0.3)
        self.assertAlmostEqual(contextual_confidence(endpoint("homes", "home", 0.5), "community"), 0.15)
        self.assertAlmostEqual(contextual_confidence(endpoint("homes", "home", 0.9), "community"), 0.1)
        self.assertAlmostEqual(contextual_confidence(endpoint("parks", "community", 1.0), "property"), 0.1)

    def test_opposite_score_never_increases_with_certainty(self) -> None:
        scores = [
            contextual_confidence(endpoint("homes", "home", step / 10), "community")
            for step in range(11)
        ]
        for earlier, later in zip(scores, scores[1:]):
            self.assertGreaterEqual(earlier, later)
        self.assertTrue(all(score >= 0.1 for score in scores))

    def test_unknown_and_missing_classification_score_035_for_both_roles(self) -> None:
        for candidate in (endpoint("things", "unknown", None), endpoint("stuff", None, 0.8)):
            self.assertEqual(contextual_confidence(candidate, "community"), 0.35)
            self.assertEqual(contextual_confidence(candidate, "property"), 0.35)

    def test_bands(self) -> None:
        self.assertEqual(confidence_band(0.7), "High match")
        self.assertEqual(confidence_band(0.4), "Possible match")
        self.assertEqual(confidence_band(0.39), "Low match")


class MappingTests(unittest.TestCase):
    """Ranking, defaults, conflicts and confirm eligibility."""

    def test_community_and_listing_scenario(self) -> None:
        endpoint_set = community_and_listing()

        community = rank_candidates(endpoint_set, "community")
        self.assertEqual([c.endpoint.rest_base for c in community], ["community", "listing"])
        self.assertAlmostEqual(community[0].confidence, 0.9)
        self.assertAlmostEqual(community[1].confidence, 0.1)
        self.assertTrue(community[1].classified_as_other_role)

        prop = rank_candidates(endpoint_set, "property")
        self.assertEqual([c.endpoint.rest_base for c in prop], ["listing", "community"])
        self.assertAlmostEqual(prop[0].confidence, 0.8)
        self.assertAlmostEqual(prop[1].confidence, 0.1)

        view = resolve_mapping(endpoint_set)
        self.assertEqual(view.effective("community"), "community")
        self.assertEqual(view.effective("property"), "listing")
        self.assertFalse(view.conflict)
        self.assertTrue(view.can_confirm)

    def test_ties_keep_discovery_order(self) -> None:
        endpoint_set = DiscoveredEndpointSet(
            unclassified_endpoints=[
                endpoint("alpha", "unknown", None),
                endpoint("beta", "unknown", None),
                endpoint("gamma", "unknown", None),
            ]
        )
        ranked = rank_candidates(endpoint_set, "community")
        self.assertEqual([c.endpoint.rest_base for c in ranked], ["alpha", "beta", "gamma"])
        self.assertEqual(suggested_default(ranked), "alpha")

    def test_top_candidate_is_never_below_another(self) -> None:
        endpoint_set = DiscoveredEndpointSet(
            community_endpoints=[endpoint("locations", "community", 0.6)],
            home_endpoints=[endpoint("homes", "home", 0.9), endpoint("units", "home", 0.2)],
            unclassified_endpoints=[endpoint("events", "unknown", None)],
        )
        for role in ("community", "property"):
            ranked = rank_candidates(endpoint_set, role)
            self.assertTrue(all(ranked[0].confidence >= other.confidence for other in ranked))

    def test_pool_is_the_union_without_duplicates(self) -> None:
        endpoint_set = DiscoveredEndpointSet(
            community_endpoints=[endpoint("places", "community", 0.6)],
            home_endpoints=[endpoint("places", "home", 0.6)],
        )
        self.assertEqual(len(rank_candidates(endpoint_set, "property")), 1)

    def test_empty_set_has_no_defaults(self) -> None:
        view = resolve_mapping(DiscoveredEndpointSet())
        self.assertIsNone(view.effective("community"))
        self.assertIsNone(view.effective("property"))
        self.assertFalse(view.can_confirm)

    def test_same_endpoint_for_both_roles_warns_but_allows_confirm(self) -> None:
        view = resolve_mapping(community_and_listing(), {"property": "community"})
        self.assertTrue(view.conflict)
        self.assertEqual(view.warnings, [CONFLICT_WARNING])
        self.assertTrue(view.can_confirm)

    def test_explicit_none_means_do_not_sync(self) -> None:
        view = resolve_mapping(community_and_listing(), {"community": None})
        self.assertIsNone(view.effective("community"))
        self.assertTrue(view.roles["community"].skipped)
        self.assertEqual(view.effective("property"), "listing")

    def test_can_confirm(self) -> None:
        self.assertFalse(can_confirm(None, None))
        self.assertTrue(can_confirm("community", None))
        self.assertTrue(can_confirm(None, "listing"))
        self.assertFalse(can_confirm(None, None, skipped={"community"}))
        self.assertTrue(can_confirm(None, None, skipped={"community", "property"}))


if __name__ == "__main__":
    unittest.main()
