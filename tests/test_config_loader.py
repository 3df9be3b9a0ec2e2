import pytest

from wa_proxy.config_loader import build_config, load_settings

ENV_VARS = (
    "WAP_CONFIG",
    "WAP_HOST",
    "WAP_PORT",
    "WAP_API_TOKEN",
    "WAP_BRIDGE_URL",
    "WAP_BRIDGE_SESSION",
    "WAP_BRIDGE_TOKEN",
    "WAP_MIN_DELAY",
    "WAP_MAX_DELAY",
    "WAP_SEND_TIMEOUT",
    "WAP_MAX_ATTEMPTS",
    "WAP_MAX_RECONNECT_ATTEMPTS",
    "WAP_REQUIRE_CONNECTION",
    "WAP_LOG_DELIVERY_ACTIVITY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_config_file(tmp_path):
    settings = load_settings(str(tmp_path / "missing.ini"))

    assert settings["http_host"] == "0.0.0.0"
    assert settings["http_port"] == 8000
    assert settings["api_token"] is None
    assert settings["bridge_url"] == "http://localhost:3000"
    assert settings["min_delay"] == 1.0
    assert settings["max_delay"] == 5.0
    assert settings["send_timeout"] == 60.0
    assert settings["max_attempts"] == 3
    assert settings["max_reconnect_attempts"] == 10
    assert settings["require_connection"] is False


def test_config_file_values(tmp_path):
    config = tmp_path / "config.ini"
    config.write_text(
        "[server]\n"
        "port = 9000\n"
        "api_token =  secret  \n"
        "[bridge]\n"
        "url = http://bridge:3000\n"
        "session = shop\n"
        "[pacing]\n"
        "min_delay = 2\n"
        "max_delay = 8.5\n"
        "[retry]\n"
        "max_attempts = 5\n"
        "[delivery]\n"
        "require_connection = yes\n"
        "[logging]\n"
        "delivery_activity = on\n"
    )

    settings = load_settings(str(config))

    assert settings["http_port"] == 9000
    assert settings["api_token"] == "secret"
    assert settings["bridge_session"] == "shop"
    assert settings["max_delay"] == 8.5
    assert settings["max_attempts"] == 5
    assert settings["require_connection"] is True
    assert settings["log_delivery_activity"] is True


def test_environment_fallbacks(tmp_path, monkeypatch):
    config = tmp_path / "config.ini"
    config.write_text("[bridge]\nurl = http://from-file:3000\n")
    monkeypatch.setenv("WAP_CONFIG", str(config))
    monkeypatch.setenv("WAP_BRIDGE_URL", "http://from-env:3000")
    monkeypatch.setenv("WAP_PORT", "8443")
    monkeypatch.setenv("WAP_BRIDGE_TOKEN", "   ")
    monkeypatch.setenv("WAP_MAX_RECONNECT_ATTEMPTS", "4")

    settings = load_settings()

    assert settings["bridge_url"] == "http://from-file:3000"
    assert settings["http_port"] == 8443
    assert settings["bridge_token"] is None
    assert settings["max_reconnect_attempts"] == 4


def test_build_config(tmp_path):
    config = tmp_path / "config.ini"
    config.write_text("[pacing]\nmin_delay = 0.5\nmax_delay = 1.5\n[bridge]\ntoken = abc\n")

    proxy_config = build_config(load_settings(str(config)))

    assert proxy_config.pacing.min_delay == 0.5
    assert proxy_config.pacing.max_delay == 1.5
    assert proxy_config.pacing.settle_interval == 0.1
    assert proxy_config.retry.max_attempts == 3
    assert proxy_config.connection.challenge_ttl == 120.0
    assert proxy_config.bridge.token == "abc"
    assert proxy_config.events.queue_size == 1000
    assert proxy_config.require_connection is False
