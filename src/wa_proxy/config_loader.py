# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Settings loader: INI file with ``WAP_*`` environment fallbacks."""

from __future__ import annotations

import configparser
import os
from pathlib import Path

from .proxy_config import BridgeConfig, ConnectionConfig, EventsConfig, PacingConfig, ProxyConfig, RetryConfig


def load_settings(config_path: str | None = None) -> dict[str, object]:
    """
    Load configuration from an INI file (default: config.ini) with environment variables as fallbacks.

    Environment variables (all prefixed with WAP_):
      WAP_CONFIG - Path to config.ini file (default: config.ini)
      WAP_HOST - Server host (default: 0.0.0.0)
      WAP_PORT - Server port (default: 8000)
      WAP_API_TOKEN - API authentication token
      WAP_BRIDGE_URL - Bridge base URL (default: http://localhost:3000)
      WAP_BRIDGE_SESSION - Bridge session name (default: default)
      WAP_BRIDGE_TOKEN - Bridge bearer token
      WAP_MIN_DELAY / WAP_MAX_DELAY - Pacing window in seconds (default: 1 / 5)
      WAP_SEND_TIMEOUT - Send outcome timeout in seconds (default: 60)
      WAP_MAX_ATTEMPTS - Delivery attempts per message (default: 3)
      WAP_MAX_RECONNECT_ATTEMPTS - Reconnect attempts (default: 10)
      WAP_REQUIRE_CONNECTION - Reject sends while disconnected (default: False)
      WAP_LOG_DELIVERY_ACTIVITY - Log delivery activity (default: False)

    Config file sections/keys:
      [server] host, port, api_token
      [bridge] url, session, token, request_timeout, poll_timeout
      [pacing] min_delay, max_delay, settle_interval, send_timeout
      [retry] max_attempts
      [connection] challenge_ttl, max_reconnect_attempts, backoff_step, backoff_cap
      [events] queue_size, put_timeout, status_interval
      [delivery] require_connection
      [logging] delivery_activity
    """
    path = Path(config_path or os.getenv("WAP_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    parser.read(path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None = None, default: int | None = None) -> int | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        return int(value)

    def get_float(section: str, option: str, fallback: str | None = None, default: float | None = None) -> float | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        return float(value)

    def get_bool(section: str, option: str, fallback: str | None = None, default: bool | None = None) -> bool | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        normalized = str(value).strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
        return default

    settings: dict[str, object] = {
        "http_host": get("server", "host", os.getenv("WAP_HOST", "0.0.0.0")),
        "http_port": get_int("server", "port", os.getenv("WAP_PORT", "8000")),
        "api_token": get("server", "api_token", os.getenv("WAP_API_TOKEN")),
        "bridge_url": get("bridge", "url", os.getenv("WAP_BRIDGE_URL", "http://localhost:3000")),
        "bridge_session": get("bridge", "session", os.getenv("WAP_BRIDGE_SESSION", "default")),
        "bridge_token": get("bridge", "token", os.getenv("WAP_BRIDGE_TOKEN")),
        "bridge_request_timeout": get_float("bridge", "request_timeout", default=30.0),
        "bridge_poll_timeout": get_float("bridge", "poll_timeout", default=25.0),
        "min_delay": get_float("pacing", "min_delay", os.getenv("WAP_MIN_DELAY"), default=1.0),
        "max_delay": get_float("pacing", "max_delay", os.getenv("WAP_MAX_DELAY"), default=5.0),
        "settle_interval": get_float("pacing", "settle_interval", default=0.1),
        "send_timeout": get_float("pacing", "send_timeout", os.getenv("WAP_SEND_TIMEOUT"), default=60.0),
        "max_attempts": get_int("retry", "max_attempts", os.getenv("WAP_MAX_ATTEMPTS"), default=3),
        "challenge_ttl": get_float("connection", "challenge_ttl", default=120.0),
        "max_reconnect_attempts": get_int(
            "connection",
            "max_reconnect_attempts",
            os.getenv("WAP_MAX_RECONNECT_ATTEMPTS"),
            default=10,
        ),
        "backoff_step": get_float("connection", "backoff_step", default=5.0),
        "backoff_cap": get_float("connection", "backoff_cap", default=30.0),
        "event_queue_size": get_int("events", "queue_size", default=1000),
        "event_put_timeout": get_float("events", "put_timeout", default=5.0),
        "status_interval": get_float("events", "status_interval", default=5.0),
        "require_connection": get_bool(
            "delivery", "require_connection", os.getenv("WAP_REQUIRE_CONNECTION"), default=False
        ),
        "log_delivery_activity": get_bool(
            "logging",
            "delivery_activity",
            os.getenv("WAP_LOG_DELIVERY_ACTIVITY"),
            default=False,
        ),
    }

    for key in ("api_token", "bridge_token"):
        token = settings.get(key)
        if isinstance(token, str):
            token = token.strip() or None
        settings[key] = token
    return settings


def build_config(settings: dict[str, object]) -> ProxyConfig:
    """Turn the flat mapping returned by :func:`load_settings` into a :class:`ProxyConfig`."""
    return ProxyConfig(
        pacing=PacingConfig(
            min_delay=float(settings["min_delay"]),
            max_delay=float(settings["max_delay"]),
            settle_interval=float(settings["settle_interval"]),
            send_timeout=float(settings["send_timeout"]),
        ),
        retry=RetryConfig(max_attempts=int(settings["max_attempts"])),
        connection=ConnectionConfig(
            challenge_ttl=float(settings["challenge_ttl"]),
            max_reconnect_attempts=int(settings["max_reconnect_attempts"]),
            backoff_step=float(settings["backoff_step"]),
            backoff_cap=float(settings["backoff_cap"]),
        ),
        bridge=BridgeConfig(
            url=str(settings["bridge_url"]),
            session=str(settings["bridge_session"]),
            token=settings.get("bridge_token"),  # type: ignore[arg-type]
            request_timeout=float(settings["bridge_request_timeout"]),
            poll_timeout=float(settings["bridge_poll_timeout"]),
        ),
        events=EventsConfig(
            queue_size=int(settings["event_queue_size"]),
            put_timeout=float(settings["event_put_timeout"]),
            status_interval=float(settings["status_interval"]),
        ),
        require_connection=bool(settings.get("require_connection")),
        log_delivery_activity=bool(settings.get("log_delivery_activity")),
    )


__all__ = ["build_config", "load_settings"]
