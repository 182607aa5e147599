import unittest
from unittest.mock import patch

from click.testing import CliRunner

from driver_tracker import cli as cli_module
from driver_tracker.exceptions import AuthenticationError
from driver_tracker.models import User

USER = User(id="u-1", email="driver@fleet.co", role="driver", vehicleId="veh-1")


class TestCLI(unittest.TestCase):

    def setUp(self):
        self.runner = CliRunner()
        patcher = patch.object(cli_module, "AuthClient", autospec=True)
        self.AuthClient = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.AuthClient.return_value

    def test_login(self):
        self.client.login.return_value = USER
        result = self.runner.invoke(cli_module.cli, ["login", "--email", "driver@fleet.co", "--password", "pw"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Hello, driver@fleet.co", result.output)
        self.client.login.assert_called_once_with("driver@fleet.co", "pw")

    def test_login_failure(self):
        self.client.login.side_effect = AuthenticationError("Invalid password")
        result = self.runner.invoke(cli_module.cli, ["login", "--email", "driver@fleet.co", "--password", "pw"])
        self.assertEqual(result.exit_code, 1)

    def test_whoami_requires_login(self):
        self.client.restore_session.return_value = None
        result = self.runner.invoke(cli_module.cli, ["whoami"])
        self.assertEqual(result.exit_code, 1)

    def test_whoami(self):
        self.client.restore_session.return_value = USER
        result = self.runner.invoke(cli_module.cli, ["whoami"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn('"vehicleId": "veh-1"', result.output)

    def test_logout(self):
        result = self.runner.invoke(cli_module.cli, ["logout"])
        self.assertEqual(result.exit_code, 0)
        self.client.logout.assert_called_once_with()

    def test_build_tracker_prefers_explicit_vehicle(self):
        tracker = cli_module.build_tracker(USER, "veh-override", 10, 30.0)
        self.assertEqual(tracker.vehicle_id, "veh-override")
        self.assertEqual(tracker.tracking_interval, 10)
