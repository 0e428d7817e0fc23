"""Tests for the application factory, its endpoints and the CLI entry points."""

from dataclasses import replace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from botbridge import server
from botbridge.__version__ import __build_date__, __commit_sha__, __version__
from botbridge.channels import CHANNEL_TYPES, ChannelAdapter, build_registry, get_adapter_class
from botbridge.channels.hangouts import HangoutsChatChannel
from botbridge.main import create_app


class TestHealthEndpoint:
    def test_health_returns_ok_status(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestVersionEndpoint:
    def test_version_matches_package_version(self, client):
        resp = client.get("/api/version")
        assert resp.status_code == 200
        assert resp.json() == {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }


class TestStaticAssets:
    def test_static_directory_is_served_when_present(self, app_factory, settings, tmp_path):
        static_dir = tmp_path / "assets"
        static_dir.mkdir()
        (static_dir / "avatar.txt").write_text("bot")

        app = app_factory(settings=replace(settings, static_dir=str(static_dir)))
        with TestClient(app) as client:
            resp = client.get("/static/avatar.txt")

        assert resp.status_code == 200
        assert resp.text == "bot"

    def test_missing_static_directory_is_not_mounted(self, client):
        assert client.get("/static/avatar.txt").status_code == 404


class TestRegistry:
    def test_enabled_channels_are_built_from_settings(self, settings):
        registry = build_registry(settings)

        assert list(registry) == ["hangouts"]
        assert isinstance(registry["hangouts"], HangoutsChatChannel)
        with pytest.raises(TypeError):
            registry["other"] = registry["hangouts"]

    def test_unknown_channel_is_rejected(self, settings):
        with pytest.raises(ValueError, match="slack"):
            build_registry(replace(settings, enabled_channels=("hangouts", "slack")))

    def test_adapter_lookup_is_case_insensitive(self):
        assert get_adapter_class("Hangouts") is HangoutsChatChannel
        with pytest.raises(KeyError):
            get_adapter_class("telegram")

    def test_adapter_must_be_buildable_from_settings(self):
        class Incomplete(ChannelAdapter):
            channel_name = "incomplete"

            async def receive(self, payload, reply):  # pragma: no cover - not reached
                return None

            async def respond(self, message):  # pragma: no cover - not reached
                return None

        with pytest.raises(TypeError, match="from_settings"):
            Incomplete()

    def test_channel_types_are_read_only(self):
        with pytest.raises(TypeError):
            CHANNEL_TYPES["x"] = HangoutsChatChannel

    def test_app_builds_registry_when_not_injected(self, settings, webhook):
        app = create_app(settings, webhook=webhook)

        assert set(app.state.registry) == {"hangouts"}
        assert app.state.settings is settings


class TestServer:
    def test_parser_defaults_come_from_settings(self, monkeypatch, settings):
        monkeypatch.setattr(server, "get_settings", lambda: replace(settings, port=4321))

        args = server.build_parser().parse_args([])

        assert args.port == 4321
        assert args.host == settings.host
        assert args.reload is False

    def test_main_runs_uvicorn(self, monkeypatch, settings):
        monkeypatch.setattr(server, "get_settings", lambda: settings)

        with patch.object(server.uvicorn, "run") as run:
            server.main(["--port", "8081", "--host", "127.0.0.1"])

        run.assert_called_once_with(
            "botbridge.main:app", host="127.0.0.1", port=8081, reload=False
        )
