"""Tests for the wa-proxy command line interface."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from wa_proxy.cli import main, run_async
from wa_proxy.client import WaProxyClientError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def client():
    with patch("wa_proxy.cli.WaProxyClient") as factory:
        instance = MagicMock()
        instance.close = AsyncMock()
        factory.return_value = instance
        instance.factory = factory
        yield instance


class TestHelpers:
    def test_run_async(self):
        async def sample():
            await asyncio.sleep(0)
            return 42

        assert run_async(sample()) == 42


class TestStatusCommands:
    def test_status(self, runner, client):
        client.status = AsyncMock(return_value={
            "ok": True,
            "phase": "awaiting_challenge",
            "ready": False,
            "challenge": "2@QRDATA",
            "reconnect_attempts": 1,
        })

        result = runner.invoke(main, ["--url", "http://proxy:9000", "--token", "t0k", "status"])

        assert result.exit_code == 0
        assert "awaiting_challenge" in result.output
        assert "2@QRDATA" in result.output
        client.factory.assert_called_once_with("http://proxy:9000", token="t0k")
        client.close.assert_awaited_once()

    def test_status_json(self, runner, client):
        client.status = AsyncMock(return_value={"ok": True, "phase": "connected"})
        result = runner.invoke(main, ["status", "--json"])
        assert result.exit_code == 0
        assert '"phase": "connected"' in result.output

    def test_queue(self, runner, client):
        client.queue_status = AsyncMock(return_value={
            "ok": True, "pending": 3, "in_flight": 1, "total": 4, "processing": True,
        })
        result = runner.invoke(main, ["queue"])
        assert result.exit_code == 0
        assert "Pending" in result.output
        assert "yes" in result.output

    def test_server_error_exits_1(self, runner, client):
        client.status = AsyncMock(side_effect=WaProxyClientError(401, "Invalid or missing API token"))
        result = runner.invoke(main, ["status"])
        assert result.exit_code == 1
        client.close.assert_awaited_once()


class TestSend:
    def test_send_text(self, runner, client):
        client.send = AsyncMock(return_value={"ok": True, "id": "abc", "queue_position": 2})

        result = runner.invoke(main, ["send", "0501234567", "Hello"])

        assert result.exit_code == 0
        assert "Message queued: abc (position 2)" in result.output
        client.send.assert_awaited_once_with("0501234567", "Hello", None)

    def test_send_image_with_caption(self, runner, client):
        client.send = AsyncMock(return_value={"ok": True, "id": "abc", "queue_position": 1})

        result = runner.invoke(
            main, ["send", "0501234567", "--image", "/srv/a.jpg", "--filename", "a.jpg", "Caption"]
        )

        assert result.exit_code == 0
        client.send.assert_awaited_once_with(
            "0501234567", "Caption", {"kind": "image", "path": "/srv/a.jpg", "filename": "a.jpg"}
        )

    def test_send_requires_content(self, runner, client):
        client.send = AsyncMock()
        result = runner.invoke(main, ["send", "0501234567"])
        assert result.exit_code == 1
        client.send.assert_not_awaited()

    def test_send_rejects_two_attachments(self, runner, client):
        client.send = AsyncMock()
        result = runner.invoke(main, ["send", "0501234567", "--image", "/a.jpg", "--audio", "/b.mp3"])
        assert result.exit_code == 1
        client.send.assert_not_awaited()

    def test_send_validation_error(self, runner, client):
        client.send = AsyncMock(side_effect=WaProxyClientError(
            400, {"error": "Invalid destination: '1'", "code": "invalid_destination"}
        ))
        result = runner.invoke(main, ["send", "1", "hi"])
        assert result.exit_code == 1


class TestSessionCommands:
    def test_logout(self, runner, client):
        client.logout = AsyncMock(return_value={"ok": True})
        result = runner.invoke(main, ["logout"])
        assert result.exit_code == 0
        assert "Logged out" in result.output

    def test_reconnect(self, runner, client):
        client.reconnect = AsyncMock(return_value={"ok": True})
        result = runner.invoke(main, ["reconnect"])
        assert result.exit_code == 0
        assert "Reconnect requested" in result.output

    def test_message(self, runner, client):
        client.message = AsyncMock(return_value={"ok": True, "message": {"id": "abc", "status": "pending"}})
        result = runner.invoke(main, ["message", "abc"])
        assert result.exit_code == 0
        assert '"status": "pending"' in result.output

    def test_clear_with_yes(self, runner, client):
        client.clear_queue = AsyncMock(return_value={"ok": True, "removed": 5})
        result = runner.invoke(main, ["clear", "--yes"])
        assert result.exit_code == 0
        assert "Removed 5 pending message(s)" in result.output

    def test_clear_declined(self, runner, client):
        client.clear_queue = AsyncMock()
        result = runner.invoke(main, ["clear"], input="n\n")
        assert result.exit_code == 0
        assert "Aborted." in result.output
        client.clear_queue.assert_not_awaited()


class TestServe:
    def test_serve_uses_config(self, runner, tmp_path, monkeypatch):
        for name in ("WAP_HOST", "WAP_PORT", "WAP_BRIDGE_URL", "WAP_BRIDGE_SESSION"):
            monkeypatch.delenv(name, raising=False)
        config = tmp_path / "config.ini"
        config.write_text("[server]\nhost = 127.0.0.1\nport = 8123\n")
        app = object()

        with patch("uvicorn.run") as uvicorn_run, \
                patch("wa_proxy.server.build_app", return_value=app) as build_app, \
                patch("wa_proxy.logger.configure_logging") as configure_logging:
            result = runner.invoke(main, ["serve", "--config", str(config), "--port", "9001"])

        assert result.exit_code == 0, result.output
        configure_logging.assert_called_once_with(None)
        settings = build_app.call_args.args[0]
        assert settings["http_host"] == "127.0.0.1"
        uvicorn_run.assert_called_once_with(app, host="127.0.0.1", port=9001)
