"""Tests for api.py — FastAPI REST endpoints."""

import unittest
from unittest.mock import MagicMock

import usb.core
from fastapi.testclient import TestClient

from gaii.api import app, configure_auth, configure_plugin
from gaii.commands import PWM_SYNC_ENABLE_REPORT, QUERY_TEMPERATURE_REPORT
from gaii.exceptions import DeviceUnavailable, WriteFailure


def _plugin(value=27.0, running=True, send_ok=True):
    plugin = MagicMock()
    plugin.sensor.value = value
    plugin.sensor.is_running = running
    plugin.channel.try_send.return_value = None if send_ok else DeviceUnavailable("no cooler")
    return plugin


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        configure_auth(None)
        configure_plugin(None)
        self.client = TestClient(app)

    def tearDown(self):
        configure_auth(None)
        configure_plugin(None)


class TestHealthEndpoint(ApiTestCase):
    """GET /health always returns 200."""

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["status"], "ok")
        self.assertIn("version", data)


class TestAuthMiddleware(ApiTestCase):
    """Token auth middleware."""

    def setUp(self):
        super().setUp()
        configure_plugin(_plugin())

    def test_no_token_required(self):
        resp = self.client.get("/temperature")
        self.assertEqual(resp.status_code, 200)

    def test_token_required_rejects_missing(self):
        configure_auth("secret123")
        resp = self.client.get("/temperature")
        self.assertEqual(resp.status_code, 401)

    def test_token_required_rejects_wrong(self):
        configure_auth("secret123")
        resp = self.client.get("/temperature", headers={"X-API-Token": "wrong"})
        self.assertEqual(resp.status_code, 401)

    def test_token_required_accepts_correct(self):
        configure_auth("secret123")
        resp = self.client.get("/temperature", headers={"X-API-Token": "secret123"})
        self.assertEqual(resp.status_code, 200)

    def test_health_bypasses_auth(self):
        configure_auth("secret123")
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)


class TestTemperature(ApiTestCase):

    def test_no_plugin(self):
        resp = self.client.get("/temperature")
        self.assertEqual(resp.status_code, 503)

    def test_reading(self):
        plugin = _plugin(value=31.0)
        configure_plugin(plugin)
        resp = self.client.get("/temperature")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"value": 31.0, "running": True})
        plugin.update.assert_called_once()

    def test_absent_reading(self):
        configure_plugin(_plugin(value=None, running=False))
        resp = self.client.get("/temperature")
        self.assertEqual(resp.json(), {"value": None, "running": False})

    def test_sensor_not_loaded(self):
        plugin = _plugin()
        plugin.sensor = None
        configure_plugin(plugin)
        resp = self.client.get("/temperature")
        self.assertEqual(resp.json(), {"value": None, "running": False})


class TestCommands(ApiTestCase):

    def test_no_plugin(self):
        resp = self.client.post("/commands", json={"hex": "0181"})
        self.assertEqual(resp.status_code, 503)

    def test_channel_not_initialized(self):
        plugin = _plugin()
        plugin.channel = None
        configure_plugin(plugin)
        resp = self.client.post("/commands", json={"hex": "0181"})
        self.assertEqual(resp.status_code, 503)

    def test_send(self):
        plugin = _plugin()
        configure_plugin(plugin)
        resp = self.client.post("/commands", json={"hex": "0181"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"sent": True})
        [report] = plugin.channel.try_send.call_args[0]
        self.assertEqual(report, QUERY_TEMPERATURE_REPORT)

    def test_invalid_hex(self):
        plugin = _plugin()
        configure_plugin(plugin)
        resp = self.client.post("/commands", json={"hex": "018"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Odd number", resp.json()["detail"])
        plugin.channel.try_send.assert_not_called()

    def test_send_failed(self):
        configure_plugin(_plugin(send_ok=False))
        resp = self.client.post("/commands", json={"hex": "0181"})
        self.assertEqual(resp.status_code, 502)
        self.assertIn("no cooler", resp.json()["detail"])

    def test_failure_detail_from_this_send(self):
        plugin = _plugin()
        plugin.channel.try_send.return_value = WriteFailure("pipe")
        plugin.channel.last_error = None  # a heartbeat succeeded meanwhile
        configure_plugin(plugin)
        resp = self.client.post("/commands", json={"hex": "0181"})
        self.assertEqual(resp.status_code, 502)
        self.assertIn("pipe", resp.json()["detail"])

    def test_missing_body(self):
        configure_plugin(_plugin())
        resp = self.client.post("/commands", json={})
        self.assertEqual(resp.status_code, 422)


class TestPwmSync(ApiTestCase):

    def test_enable(self):
        plugin = _plugin()
        configure_plugin(plugin)
        resp = self.client.post("/pwm-sync")
        self.assertEqual(resp.status_code, 200)
        plugin.channel.try_send.assert_called_once_with(PWM_SYNC_ENABLE_REPORT)

    def test_failed(self):
        configure_plugin(_plugin(send_ok=False))
        resp = self.client.post("/pwm-sync")
        self.assertEqual(resp.status_code, 502)
        self.assertIn("no cooler", resp.json()["detail"])


class TestRealChannel(ApiTestCase):
    """Commands flow through a real channel to the transport."""

    def test_command_written(self):
        from gaii.pump import PumpCommandChannel

        transport = MagicMock()
        transport.writable = True
        plugin = _plugin()
        plugin.channel = PumpCommandChannel(lambda: transport)
        configure_plugin(plugin)

        resp = self.client.post("/commands", json={"hex": "01 81"})
        self.assertEqual(resp.status_code, 200)
        report = transport.write.call_args[0][0]
        self.assertEqual(len(report), 64)
        self.assertEqual(bytes(report[:2]), b"\x01\x81")
        transport.close.assert_called_once()

    def test_missing_usb_backend_is_bad_gateway(self):
        from gaii.pump import PumpCommandChannel

        transport = MagicMock()
        transport.open.side_effect = usb.core.NoBackendError("No backend available")
        plugin = _plugin()
        plugin.channel = PumpCommandChannel(lambda: transport)
        configure_plugin(plugin)

        resp = self.client.post("/pwm-sync")
        self.assertEqual(resp.status_code, 502)
        self.assertIn("No backend available", resp.json()["detail"])
        transport.write.assert_not_called()


if __name__ == '__main__':
    unittest.main()
