"""
Tests for the command-line monitor's argument handling.
"""
import asyncio
import io
import unittest
from unittest import mock

from biolink import main
from biolink.config import settings

class CommandLineTests(unittest.TestCase):

    def setUp(self):
        self._saved = settings.as_dict()

    def tearDown(self):
        settings._settings = self._saved

    def test_arguments_update_settings(self):
        args = main.parse_arguments([
            "--endpoint", "serial://COM4", "--max-attempts", "2",
            "--stale-policy", "reconnect", "--debug",
        ])
        main.apply_command_line_settings(args)

        self.assertEqual(settings.DEFAULT_ENDPOINT, "serial://COM4")
        self.assertEqual(settings.MAX_RECONNECT_ATTEMPTS, 2)
        self.assertEqual(settings.STALE_POLICY, "reconnect")
        self.assertEqual(settings.LOG_LEVEL, "DEBUG")

    def test_defaults_leave_settings_alone(self):
        main.apply_command_line_settings(main.parse_arguments([]))
        self.assertEqual(settings.as_dict(), self._saved)

    def test_command_choices(self):
        args = main.parse_arguments(["--command", "calibrate", "--duration", "1.5"])
        self.assertEqual(args.command, "calibrate")
        self.assertEqual(args.duration, 1.5)

        with self.assertRaises(SystemExit):
            main.parse_arguments(["--command", "reboot"])

    def test_missing_config_file_exits_with_error(self):
        self.assertEqual(main.main(["--config", "/nonexistent/biolink.yaml"]), 2)

    def test_monitor_stops_when_transport_cannot_start(self):
        settings.update({"DEFAULT_ENDPOINT": "ftp://nowhere"})
        code = asyncio.run(asyncio.wait_for(main.monitor(), timeout=5))
        self.assertEqual(code, 1)

    def test_list_ports(self):
        ports = [mock.Mock(device="/dev/ttyUSB0"), mock.Mock(device="/dev/ttyACM1")]
        with mock.patch("biolink.core.transport.serial.tools.list_ports.comports",
                        return_value=ports), \
                mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            self.assertEqual(main.main(["--list-ports"]), 0)

        self.assertEqual(stdout.getvalue().split(), ["/dev/ttyUSB0", "/dev/ttyACM1"])

if __name__ == '__main__':
    unittest.main()
