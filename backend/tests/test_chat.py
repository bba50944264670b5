"""End-to-end tests for the WebSocket relay with multiple clients.

Protocol reminder: frames are ``{"type": <event>, "data": <payload>}``.
"""
from unittest.mock import AsyncMock

from chat_relay.store import StoreUnavailableError

from helpers import make_message


def register(ws, key):
    """Register under *key* and consume the acknowledgement."""
    ws.send_json({"type": "register", "data": key})
    notice = ws.receive_json()
    assert notice == {"type": "notice", "data": "You successfully registered."}


def test_register_then_message_then_history(api_client):
    """Client A posts into a room it never joined; B receives it; A reads it back."""
    with api_client.websocket_connect("/ws") as ws_a, \
         api_client.websocket_connect("/ws") as ws_b:

        register(ws_a, "userA")
        register(ws_b, "lobby")

        payload = make_message(content="hi", msg_id="1", room="lobby")
        ws_a.send_json({"type": "message", "data": payload})

        received = ws_b.receive_json()
        assert received == {"type": "reply", "data": payload}

        ws_a.send_json({"type": "getMessages", "data": {"userId": "userA", "id": "lobby"}})
        history = ws_a.receive_json()
        assert history == {"type": "prevMessages", "data": [payload]}


def test_broadcast_scope_three_clients(api_client):
    """Members of the room get the message; a client in another room does not."""
    with api_client.websocket_connect("/ws") as ws1, \
         api_client.websocket_connect("/ws") as ws2, \
         api_client.websocket_connect("/ws") as ws3:

        register(ws1, "room-r")
        register(ws2, "room-r")
        register(ws3, "room-s")

        payload = make_message(content="only for r", room="room-r")
        ws1.send_json({"type": "message", "data": payload})

        assert ws1.receive_json() == {"type": "reply", "data": payload}
        assert ws2.receive_json() == {"type": "reply", "data": payload}

        # The next frame ws3 sees must be its own history reply, not the broadcast.
        ws3.send_json({"type": "getMessages", "data": {"userId": "room-s", "id": "room-s"}})
        assert ws3.receive_json() == {"type": "prevMessages", "data": []}


def test_disconnected_client_leaves_its_rooms(api_client):
    registry = api_client.app.state.registry
    with api_client.websocket_connect("/ws") as ws1:
        register(ws1, "room-r")
        with api_client.websocket_connect("/ws") as ws2:
            register(ws2, "room-r")
            assert api_client.get("/health").json()["sessions"] == 2
            assert len(registry.members("room-r")) == 2

        payload = make_message(content="after ws2 left", room="room-r")
        ws1.send_json({"type": "message", "data": payload})
        assert ws1.receive_json() == {"type": "reply", "data": payload}

        assert api_client.get("/health").json()["sessions"] == 1
        assert len(registry.members("room-r")) == 1


def test_messages_keep_send_order(api_client):
    with api_client.websocket_connect("/ws") as ws:
        register(ws, "lobby")
        for i in range(5):
            ws.send_json({"type": "message", "data": make_message(content=f"m{i}", msg_id=str(i))})
            assert ws.receive_json()["data"]["id"] == str(i)

        ws.send_json({"type": "getMessages", "data": {"userId": "lobby", "id": "lobby"}})
        history = ws.receive_json()["data"]
        assert [m["content"] for m in history] == ["m0", "m1", "m2", "m3", "m4"]


def test_room_isolation(api_client):
    with api_client.websocket_connect("/ws") as ws:
        register(ws, "me")
        ws.send_json({"type": "message", "data": make_message(content="in a", room="room-a")})
        ws.send_json({"type": "getMessages", "data": {"userId": "me", "id": "room-b"}})

        assert ws.receive_json() == {"type": "prevMessages", "data": []}


def test_malformed_frames_keep_connection_open(api_client):
    with api_client.websocket_connect("/ws") as ws:
        ws.send_text("not json at all")
        error = ws.receive_json()
        assert error["type"] == "error"

        ws.send_json({"type": "message", "data": {"content": "no room"}})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["data"]["event"] == "message"

        # Still usable afterwards.
        register(ws, "userA")


def test_history_http_endpoint(api_client):
    with api_client.websocket_connect("/ws") as ws:
        register(ws, "lobby")
        payload = make_message(content="over http", room="lobby")
        ws.send_json({"type": "message", "data": payload})
        ws.receive_json()

    response = api_client.get("/rooms/lobby/messages")
    assert response.status_code == 200
    assert response.json() == {"room": "lobby", "messages": [payload]}


def test_history_http_endpoint_empty_room(api_client):
    response = api_client.get("/rooms/nothing-here/messages")
    assert response.status_code == 200
    assert response.json()["messages"] == []


def test_health(api_client):
    response = api_client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["store"] == "ok"
    assert body["sessions"] == 0


def test_history_http_endpoint_store_down(api_client):
    failing = AsyncMock()
    failing.list.side_effect = StoreUnavailableError("redis down")
    real_store = api_client.app.state.store
    api_client.app.state.store = failing
    try:
        response = api_client.get("/rooms/lobby/messages")
    finally:
        api_client.app.state.store = real_store

    assert response.status_code == 503
