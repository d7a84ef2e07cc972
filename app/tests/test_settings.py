"""
Tests for settings loading and link option validation.
"""
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from biolink.config.settings import ConfigurationError, Settings, validate_link_options

class SettingsTests(unittest.TestCase):

    def make_settings(self):
        return Settings(load_files=False, load_env=True)

    def test_link_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            options = self.make_settings().link_options()

        self.assertEqual(options, {
            "max_reconnect_attempts": 5,
            "reconnect_base_delay_ms": 1000,
            "reconnect_max_delay_ms": 30000,
            "heartbeat_interval_ms": 2000,
            "stale_threshold_ms": 5000,
            "stale_policy": "warn",
        })

    def test_environment_overrides_keep_types(self):
        env = {
            "BIOLINK_MAX_RECONNECT_ATTEMPTS": "8",
            "BIOLINK_LOG_TO_FILE": "yes",
            "BIOLINK_DEFAULT_ENDPOINT": "serial:///dev/ttyUSB0",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = self.make_settings()

        self.assertEqual(settings.MAX_RECONNECT_ATTEMPTS, 8)
        self.assertIs(settings.LOG_TO_FILE, True)
        self.assertEqual(settings.get("DEFAULT_ENDPOINT"), "serial:///dev/ttyUSB0")

    def test_zero_ceiling_disables_it(self):
        settings = self.make_settings()
        settings.update({"RECONNECT_MAX_DELAY_MS": 0})
        self.assertIsNone(settings.link_options()["reconnect_max_delay_ms"])

    def test_invalid_link_settings(self):
        cases = [
            {"MAX_RECONNECT_ATTEMPTS": -1},
            {"RECONNECT_BASE_DELAY_MS": 0},
            {"RECONNECT_MAX_DELAY_MS": 10},
            {"HEARTBEAT_INTERVAL_MS": "often"},
            {"STALE_THRESHOLD_MS": -5},
            {"STALE_POLICY": "panic"},
        ]
        for override in cases:
            with self.subTest(override=override):
                settings = self.make_settings()
                settings.update(override)
                with self.assertRaises(ConfigurationError):
                    settings.link_options()

    def test_validate_link_options_accepts_no_ceiling(self):
        validate_link_options(5, 1000, None, 2000, 5000, "reconnect")

    def test_load_file_and_profiles(self):
        with tempfile.TemporaryDirectory() as tmp:
            config_file = Path(tmp) / "biolink.yaml"
            config_file.write_text("STALE_POLICY: reconnect\nHEARTBEAT_INTERVAL_MS: 500\n")

            settings = self.make_settings()
            settings.load_file(config_file)
            self.assertEqual(settings.STALE_POLICY, "reconnect")
            self.assertEqual(settings.HEARTBEAT_INTERVAL_MS, 500)

            settings.update({"CONFIG_PROFILES_DIR": str(Path(tmp) / "profiles")})
            self.assertTrue(settings.save_profile("bench", {"MAX_RECONNECT_ATTEMPTS": 2}))

            other = self.make_settings()
            other.update({"CONFIG_PROFILES_DIR": str(Path(tmp) / "profiles")})
            self.assertTrue(other.load_profile("bench"))
            self.assertEqual(other.MAX_RECONNECT_ATTEMPTS, 2)
            self.assertFalse(other.load_profile("missing"))

    def test_bad_config_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            config_file = Path(tmp) / "bad.yaml"
            config_file.write_text("- just\n- a list\n")
            with self.assertRaises(ConfigurationError):
                self.make_settings().load_file(config_file)

            with self.assertRaises(ConfigurationError):
                self.make_settings().load_file(Path(tmp) / "missing.yaml")

    def test_unknown_setting(self):
        with self.assertRaises(AttributeError):
            self.make_settings().NOT_A_SETTING

if __name__ == '__main__':
    unittest.main()
