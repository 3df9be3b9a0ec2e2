from fastapi.testclient import TestClient

from helpers import FakeTransport
from wa_proxy import api
from wa_proxy.proxy import WaProxy
from wa_proxy.proxy_config import EventsConfig, PacingConfig, ProxyConfig
from wa_proxy.server import build_app


def test_lifespan_starts_and_stops_proxy():
    original = api.service
    transport = FakeTransport()
    proxy = WaProxy(
        config=ProxyConfig(
            pacing=PacingConfig(min_delay=0.0, max_delay=0.0, settle_interval=0.0),
            events=EventsConfig(status_interval=60.0),
        ),
        transport=transport,
    )
    app = build_app({"api_token": "secret"}, proxy=proxy)

    try:
        with TestClient(app) as client:
            unauthorized = client.get("/queue-status")
            assert unauthorized.status_code == 401

            response = client.post(
                "/send-message",
                json={"destination": "0501234567", "text": "hello"},
                headers={"X-API-Token": "secret"},
            )
            assert response.status_code == 200
            assert response.json()["ok"] is True
    finally:
        api.service = original
        api.app.state.api_token = None

    assert transport.shut_down
