"""Tests for the WebSocket stream and HTTP quote routes."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from quotehub.main import create_app
from quotehub.market.config import MarketSettings
from quotehub.market.factory import create_market_services
from quotehub.market.models import InstrumentMatch

AUTH = {"Authorization": "Bearer good-token"}


@pytest.fixture
def settings():
    return MarketSettings(
        api_tokens={"good-token": "alice"},
        refresh_interval=60.0,
        shutdown_grace=0.0,
        instance_id="test-instance",
    )


@pytest.fixture
def services(settings):
    return create_market_services(settings)


@pytest.fixture
def client(settings, services):
    with TestClient(create_app(settings, services)) as client:
        yield client


class TestStream:
    """Tests for /api/stream/ws."""

    @pytest.mark.parametrize("query", ["", "?token=", "?token=wrong"])
    def test_rejects_bad_token(self, client, query):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/api/stream/ws{query}") as ws:
                ws.receive_json()
        assert exc_info.value.code == 1008

    def test_subscribe_flow(self, client):
        with client.websocket_connect("/api/stream/ws?token=good-token") as ws:
            ws.send_json({"event": "subscribe", "data": {"symbol": "aapl"}})
            assert ws.receive_json() == {
                "event": "subscribed",
                "data": {"symbol": "AAPL", "room": "stock:AAPL"},
            }
            update = ws.receive_json()
            assert update["event"] == "price_update"
            assert update["data"]["symbol"] == "AAPL"
            assert update["data"]["dataSource"] == "simulated"

            ws.send_json({"event": "get_subscriptions"})
            assert ws.receive_json() == {"event": "subscriptions", "data": {"symbols": ["AAPL"]}}

            health = client.get("/health").json()
            assert health["local_symbols"] == ["AAPL"]

            ws.send_json({"event": "unsubscribe", "data": {"symbol": "AAPL"}})
            assert ws.receive_json() == {"event": "unsubscribed", "data": {"symbol": "AAPL"}}

    def test_malformed_frames(self, client):
        with client.websocket_connect("/api/stream/ws?token=good-token") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["event"] == "error"
            ws.send_json({"data": {"symbol": "AAPL"}})
            assert ws.receive_json() == {
                "event": "error",
                "data": {"message": "Malformed message: event is required"},
            }
            ws.send_json({"event": "subscribe"})
            assert ws.receive_json() == {
                "event": "error",
                "data": {"message": "Invalid request: symbol is required"},
            }


class TestQuoteRoutes:
    """Tests for /api/market."""

    def test_requires_token(self, client):
        assert client.get("/api/market/quote/AAPL").status_code == 401
        assert client.get("/api/market/quote/AAPL", headers={"Authorization": "Bearer nope"}).status_code == 401
        assert client.get("/api/market/quote/AAPL", headers={"Authorization": "good-token"}).status_code == 401

    def test_single_quote(self, client):
        response = client.get("/api/market/quote/aapl", headers=AUTH)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["symbol"] == "AAPL"
        assert data["isRealTime"] is False

    def test_single_quote_served_from_cache(self, client):
        first = client.get("/api/market/quote/MSFT", headers=AUTH).json()["data"]
        second = client.get("/api/market/quote/MSFT", headers=AUTH).json()["data"]
        assert first == second

    def test_invalid_symbol(self, client):
        assert client.get("/api/market/quote/ABCDEFGHIJKL", headers=AUTH).status_code == 400

    def test_batch(self, client):
        response = client.post("/api/market/quotes", json={"symbols": ["msft", "AAPL"]}, headers=AUTH)
        assert response.status_code == 200
        assert [q["symbol"] for q in response.json()["data"]] == ["MSFT", "AAPL"]

    @pytest.mark.parametrize("count", [0, 21])
    def test_batch_size_limits(self, client, count):
        body = {"symbols": [f"S{i}" for i in range(count)]}
        assert client.post("/api/market/quotes", json=body, headers=AUTH).status_code == 400

    def test_search_requires_query(self, client):
        assert client.get("/api/market/search", params={"q": " "}, headers=AUTH).status_code == 400

    def test_search_saves_metadata(self, client, services, make_provider):
        match = InstrumentMatch("AAPL", "APPLE INC")
        services.resolver.providers = [make_provider(search_results=[match])]

        response = client.get("/api/market/search", params={"q": "apple"}, headers=AUTH)

        assert response.json() == {"data": [{"symbol": "AAPL", "description": "APPLE INC"}]}
        saved = services.resolver.instruments._rows["AAPL"]
        assert saved.name == "APPLE INC"


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["instance"] == "test-instance"
    assert body["scheduler_running"] is True
