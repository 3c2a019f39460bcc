"""Tests for sync cadence and last-sync labels."""

import unittest
from datetime import UTC, datetime, timedelta

from pilot.wordpress.contracts import SYNC_INTERVAL_OPTIONS, ConnectionConfig, parse_role, parse_sync_interval
from pilot.wordpress.schedule import format_last_sync, interval_delta, is_due, next_due

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class ScheduleTests(unittest.TestCase):
    def test_every_interval_option_has_a_cadence(self) -> None:
        for value, _label in SYNC_INTERVAL_OPTIONS:
            delta = interval_delta(value)
            if value == "manual":
                self.assertIsNone(delta)
            else:
                self.assertIsNotNone(delta)
        self.assertEqual(interval_delta("hourly_3"), timedelta(hours=3))
        self.assertEqual(interval_delta("hourly_8"), timedelta(hours=8))
        self.assertEqual(interval_delta("daily"), timedelta(days=1))

    def test_next_due(self) -> None:
        self.assertIsNone(next_due(NOW, "manual", NOW))
        self.assertEqual(next_due(None, "hourly_6", NOW), NOW)
        self.assertEqual(next_due(NOW, "hourly_6", NOW), NOW + timedelta(hours=6))
        naive = NOW.replace(tzinfo=None)
        self.assertEqual(next_due(naive, "daily", NOW), NOW + timedelta(days=1))

    def test_is_due_per_role(self) -> None:
        config = ConnectionConfig(
            connection_id="agent-1",
            site_url="https://example.com",
            community_endpoint="communities",
            home_endpoint="homes",
            community_sync_interval="hourly_1",
            home_sync_interval="daily",
            community_last_sync=NOW - timedelta(minutes=61),
            home_last_sync=NOW - timedelta(hours=2),
        )
        self.assertTrue(is_due(config, "community", NOW))
        self.assertFalse(is_due(config, "property", NOW))

    def test_role_without_endpoint_or_manual_is_never_due(self) -> None:
        config = ConnectionConfig(
            connection_id="agent-1",
            site_url="https://example.com",
            community_endpoint="communities",
            community_sync_interval="manual",
            home_sync_interval="hourly_1",
        )
        self.assertFalse(is_due(config, "community", NOW))
        self.assertFalse(is_due(config, "property", NOW))

    def test_format_last_sync(self) -> None:
        self.assertEqual(format_last_sync(None, NOW), "Never")
        self.assertEqual(format_last_sync(NOW - timedelta(seconds=30), NOW), "Just now")
        self.assertEqual(format_last_sync(NOW - timedelta(minutes=5), NOW), "5m ago")
        self.assertEqual(format_last_sync(NOW - timedelta(hours=3, minutes=10), NOW), "3h ago")
        self.assertEqual(format_last_sync(NOW - timedelta(days=2, hours=1), NOW), "2d ago")

    def test_parsers(self) -> None:
        self.assertEqual(parse_role("home"), "property")
        self.assertEqual(parse_role("Communities"), "community")
        self.assertEqual(parse_sync_interval("HOURLY_12"), "hourly_12")
        with self.assertRaises(ValueError):
            parse_role("agents")
        with self.assertRaises(ValueError):
            parse_sync_interval("weekly")


if __name__ == "__main__":
    unittest.main()
