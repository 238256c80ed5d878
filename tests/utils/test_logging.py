"""Tests for the structlog setup."""

import logging
import os

from radar.utils.logging import scanner_context, setup_logging


class TestScannerContext:
    def test_stamps_service_and_scanner(self):
        add = scanner_context("RADAR", "node-7")
        event = add(None, "info", {"event": "scan_cycle_started"})

        assert event["service"] == "radar"
        assert event["scanner"] == "node-7"

    def test_event_keys_win(self):
        add = scanner_context("RADAR", "node-7")
        event = add(None, "info", {"event": "x", "scanner": "override"})

        assert event["scanner"] == "override"

    def test_defaults_to_hostname(self, monkeypatch):
        monkeypatch.setattr("radar.utils.logging.socket.gethostname", lambda: "host-a")

        event = scanner_context("RADAR")(None, "info", {"event": "x"})

        assert event["scanner"] == "host-a"


class TestSetupLogging:
    def test_file_named_after_app(self, tmp_path):
        root = logging.getLogger()
        saved = list(root.handlers)
        try:
            path = setup_logging(app_name="RADAR", scanner_id="node-7", log_dir=str(tmp_path / "logs"))
            assert path == os.path.join(str(tmp_path / "logs"), "radar.log")
            assert os.path.isfile(path)
        finally:
            for handler in root.handlers:
                if handler not in saved:
                    handler.close()
            root.handlers[:] = saved
