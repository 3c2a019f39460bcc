"""Tests for the pure connection workflow."""

import unittest
from datetime import UTC, datetime

from pilot.wordpress import workflow
from pilot.wordpress.contracts import ConnectionConfig, DiscoveredEndpointSet
from pilot.wordpress.errors import (
    ConfirmationInvalid,
    ConnectionNotFound,
    DisconnectCascadeDenied,
    OperationInProgress,
)
from pilot.wordpress.tests.fakes import community_and_listing
from pilot.wordpress.workflow import CheckConnection, DeleteConnection, Discover, SaveMapping

SITE = "https://example.com"


def _mapping_state(endpoint_set: DiscoveredEndpointSet | None = None) -> workflow.WorkflowState:
    state = workflow.initial_state("agent-1", None)
    state = workflow.submit(state, SITE).state
    state = workflow.connection_tested(state, state.generation).state
    return workflow.endpoints_discovered(state, state.generation, endpoint_set or community_and_listing()).state


class WorkflowTests(unittest.TestCase):
    """Transitions, guards and emitted effects."""

    def test_initial_state_follows_stored_config(self) -> None:
        self.assertEqual(workflow.initial_state("agent-1", None).step, "url_entry")
        config = ConnectionConfig(connection_id="agent-1", site_url=SITE)
        state = workflow.initial_state("agent-1", config)
        self.assertEqual(state.step, "connected")
        self.assertEqual(state.site_url, SITE)

    def test_submit_tests_then_discovers(self) -> None:
        state = workflow.initial_state("agent-1", None)
        transition = workflow.submit(state, SITE)
        self.assertEqual(transition.state.step, "testing")
        self.assertEqual(transition.effects, (CheckConnection(site_url=SITE, generation=1),))

        transition = workflow.connection_tested(transition.state, 1)
        self.assertEqual(transition.state.step, "discovering")
        self.assertEqual(transition.effects, (Discover(site_url=SITE, generation=1),))

        transition = workflow.endpoints_discovered(transition.state, 1, community_and_listing())
        self.assertEqual(transition.state.step, "mapping")
        self.assertIsNone(transition.state.notice)

    def test_empty_url_stays_in_url_entry_with_error(self) -> None:
        transition = workflow.submit(workflow.initial_state("agent-1", None), "   ")
        self.assertEqual(transition.state.step, "url_entry")
        self.assertIsNotNone(transition.state.error)
        self.assertEqual(transition.effects, ())

    def test_failed_connection_test_returns_to_url_entry(self) -> None:
        state = workflow.submit(workflow.initial_state("agent-1", None), SITE).state
        state = workflow.connection_tested(state, state.generation, "Could not reach example.com").state
        self.assertEqual(state.step, "url_entry")
        self.assertEqual(state.error, "Could not reach example.com")

    def test_discovery_failure_returns_to_url_entry(self) -> None:
        state = workflow.submit(workflow.initial_state("agent-1", None), SITE).state
        state = workflow.connection_tested(state, state.generation).state
        state = workflow.discovery_failed(state, state.generation, "boom").state
        self.assertEqual(state.step, "url_entry")
        self.assertEqual(state.error, "boom")

    def test_empty_discovery_still_reaches_mapping_with_notice(self) -> None:
        state = _mapping_state(DiscoveredEndpointSet())
        self.assertEqual(state.step, "mapping")
        self.assertEqual(state.notice, workflow.EMPTY_DISCOVERY_NOTICE)

    def test_results_from_an_older_generation_are_stale(self) -> None:
        state = workflow.submit(workflow.initial_state("agent-1", None), SITE).state
        state = workflow.connection_tested(state, state.generation).state
        cancelled = workflow.cancel(state).state
        self.assertEqual(cancelled.step, "url_entry")

        transition = workflow.endpoints_discovered(cancelled, state.generation, community_and_listing())
        self.assertTrue(transition.stale)
        self.assertIs(transition.state, cancelled)

    def test_second_submit_while_pending_is_rejected(self) -> None:
        state = workflow.submit(workflow.initial_state("agent-1", None), SITE).state
        with self.assertRaises(OperationInProgress):
            workflow.submit(state, "https://other.example.com")
        with self.assertRaises(OperationInProgress):
            workflow.disconnect(state, delete_synced_data=False, confirmation=None, expected_confirmation="DELETE")

    def test_confirm_outside_mapping_is_rejected(self) -> None:
        state = workflow.initial_state("agent-1", None)
        with self.assertRaises(ConfirmationInvalid):
            workflow.confirm(state, "community", "listing")

    def test_confirm_requires_at_least_one_feed_unless_both_skipped(self) -> None:
        state = _mapping_state()
        with self.assertRaises(ConfirmationInvalid):
            workflow.confirm(state, None, None)

        self.assertEqual(workflow.confirm(state, "community", None).state.step, "connected")
        self.assertEqual(workflow.confirm(state, None, "listing").state.step, "connected")
        skipped = workflow.confirm(state, None, None, skip=("community", "property"))
        self.assertEqual(skipped.state.step, "connected")

    def test_confirm_rejects_endpoint_outside_the_pool(self) -> None:
        with self.assertRaises(ConfirmationInvalid):
            workflow.confirm(_mapping_state(), "events", None)

    def test_confirm_emits_config_to_save(self) -> None:
        now = datetime(2026, 3, 1, tzinfo=UTC)
        transition = workflow.confirm(_mapping_state(), "community", "community", now=now)
        (effect,) = transition.effects
        self.assertIsInstance(effect, SaveMapping)
        self.assertEqual(effect.config.site_url, SITE)
        self.assertEqual(effect.config.community_endpoint, "community")
        self.assertEqual(effect.config.home_endpoint, "community")
        self.assertTrue(effect.config.has_conflict())
        self.assertEqual(transition.state.config, effect.config)

    def test_select_endpoint(self) -> None:
        state = _mapping_state()
        state = workflow.select_endpoint(state, "property", "community").state
        self.assertEqual(state.selections, {"property": "community"})
        state = workflow.select_endpoint(state, "community", None, skip=True).state
        self.assertEqual(state.selections, {"property": "community", "community": None})
        state = workflow.select_endpoint(state, "property", None).state
        self.assertEqual(state.selections, {"community": None})
        with self.assertRaises(ConfirmationInvalid):
            workflow.select_endpoint(state, "property", "events")

    def test_edit_then_reconfirm_new_site_resets_sync_bookkeeping(self) -> None:
        config = ConnectionConfig(
            connection_id="agent-1",
            site_url=SITE,
            community_endpoint="community",
            community_sync_interval="daily",
            community_last_sync=datetime(2026, 2, 1, tzinfo=UTC),
            community_count=12,
        )
        state = workflow.initial_state("agent-1", config)
        state = workflow.edit(state).state
        self.assertEqual(state.step, "url_entry")
        self.assertEqual(state.site_url, SITE)
        self.assertEqual(state.config, config)

        state = workflow.submit(state, "https://new.example.com").state
        state = workflow.connection_tested(state, state.generation).state
        state = workflow.endpoints_discovered(state, state.generation, community_and_listing()).state
        saved = workflow.confirm(state, "community", "listing").state.config
        self.assertEqual(saved.site_url, "https://new.example.com")
        self.assertIsNone(saved.community_last_sync)
        self.assertEqual(saved.community_count, 0)
        self.assertEqual(saved.community_sync_interval, "daily")

    def test_reconfirm_same_site_resets_only_roles_with_a_new_endpoint(self) -> None:
        synced_at = datetime(2026, 2, 1, tzinfo=UTC)
        config = ConnectionConfig(
            connection_id="agent-1",
            site_url=SITE,
            community_endpoint="community",
            home_endpoint="homes",
            community_last_sync=synced_at,
            community_count=4,
            home_last_sync=synced_at,
            home_count=9,
        )
        state = workflow.edit(workflow.initial_state("agent-1", config)).state
        state = workflow.submit(state, SITE).state
        state = workflow.connection_tested(state, state.generation).state
        state = workflow.endpoints_discovered(state, state.generation, community_and_listing()).state

        saved = workflow.confirm(state, "community", "listing").state.config

        self.assertEqual((saved.community_last_sync, saved.community_count), (synced_at, 4))
        self.assertEqual((saved.home_last_sync, saved.home_count), (None, 0))

    def test_cancel_keeps_stored_config(self) -> None:
        config = ConnectionConfig(connection_id="agent-1", site_url=SITE, community_endpoint="community")
        state = workflow.edit(workflow.initial_state("agent-1", config)).state
        state = workflow.submit(state, SITE).state
        state = workflow.cancel(state).state
        self.assertEqual(state.step, "url_entry")
        self.assertEqual(state.config, config)

        state = workflow.cancel(state).state
        self.assertEqual(state.step, "connected")
        self.assertEqual(state.site_url, SITE)
        self.assertEqual(state.config, config)

    def test_cancel_without_connection_stays_in_url_entry(self) -> None:
        state = workflow.initial_state("agent-1", None)
        self.assertEqual(workflow.cancel(state).state, state)

    def test_disconnect(self) -> None:
        config = ConnectionConfig(connection_id="agent-1", site_url=SITE)
        state = workflow.initial_state("agent-1", config)

        with self.assertRaises(DisconnectCascadeDenied):
            workflow.disconnect(state, delete_synced_data=True, confirmation="delete", expected_confirmation="DELETE")

        transition = workflow.disconnect(
            state, delete_synced_data=True, confirmation="DELETE", expected_confirmation="DELETE"
        )
        self.assertEqual(transition.state.step, "url_entry")
        self.assertIsNone(transition.state.config)
        self.assertEqual(transition.effects, (DeleteConnection(connection_id="agent-1", cascade=True),))

        with self.assertRaises(ConnectionNotFound):
            workflow.disconnect(
                transition.state, delete_synced_data=False, confirmation=None, expected_confirmation="DELETE"
            )

    def test_disconnect_while_mapping_is_rejected(self) -> None:
        with self.assertRaises(OperationInProgress):
            workflow.disconnect(
                _mapping_state(), delete_synced_data=False, confirmation=None, expected_confirmation="DELETE"
            )


if __name__ == "__main__":
    unittest.main()
