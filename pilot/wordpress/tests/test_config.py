"""Tests for environment-driven WordPress sync settings."""

import os
import unittest

from pilot.wordpress.config import load_wordpress_sync_config

_KEYS = (
    "PILOT_WP_PER_PAGE",
    "PILOT_WP_HTTP_TIMEOUT_SECONDS",
    "PILOT_WP_SCHEDULER_ENABLED",
    "PILOT_WP_DISCONNECT_CONFIRMATION",
    "PILOT_WP_EXTRACTION_MODE",
    "PILOT_WP_CURSOR_OVERLAP_HOURS",
)


class WordPressSyncConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._original = {key: os.environ.get(key) for key in _KEYS}

    def tearDown(self) -> None:
        for key, value in self._original.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def test_defaults(self) -> None:
        for key in _KEYS:
            os.environ.pop(key, None)
        config = load_wordpress_sync_config()
        self.assertEqual(config.per_page, 100)
        self.assertEqual(config.disconnect_confirmation, "DELETE")
        self.assertEqual(config.cursor_overlap_hours, 14)
        self.assertEqual(config.extraction_mode, "standard")
        self.assertTrue(config.scheduler_enabled)

    def test_overrides_and_invalid_values(self) -> None:
        os.environ["PILOT_WP_PER_PAGE"] = "500"
        os.environ["PILOT_WP_HTTP_TIMEOUT_SECONDS"] = "abc"
        os.environ["PILOT_WP_SCHEDULER_ENABLED"] = "false"
        os.environ["PILOT_WP_DISCONNECT_CONFIRMATION"] = "REMOVE"
        os.environ["PILOT_WP_EXTRACTION_MODE"] = "magic"
        os.environ["PILOT_WP_CURSOR_OVERLAP_HOURS"] = "6"

        config = load_wordpress_sync_config()

        self.assertEqual(config.per_page, 100)
        self.assertEqual(config.http_timeout_seconds, 15.0)
        self.assertFalse(config.scheduler_enabled)
        self.assertEqual(config.disconnect_confirmation, "REMOVE")
        self.assertEqual(config.cursor_overlap_hours, 6)
        self.assertEqual(config.extraction_mode, "standard")


if __name__ == "__main__":
    unittest.main()
