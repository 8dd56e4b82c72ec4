from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect


def _new_game_with_players(client: TestClient) -> tuple[str, str, str]:
    gid = client.post("/games", json={}).json()["game_id"]
    p1 = client.post(f"/games/{gid}/join", json={"name": "Ada"}).json()["player_id"]
    p2 = client.post(f"/games/{gid}/join", json={"name": "Grace"}).json()["player_id"]
    return gid, p1, p2


def test_game_socket_receives_vote_and_scene_updates(client: TestClient) -> None:
    gid, p1, p2 = _new_game_with_players(client)

    with client.websocket_connect(f"/ws/games/{gid}") as ws:
        ack = ws.receive_json()
        assert ack["type"] == "subscribed"
        assert ack["data"]["channel"] == f"game:{gid}"

        client.post(f"/games/{gid}/vote", json={"player_id": p1, "choice_id": "right"})
        client.post(f"/games/{gid}/vote", json={"player_id": p2, "choice_id": "right"})

        vote = ws.receive_json()
        assert vote == {"type": "vote-update", "data": {"votes": {p1: "right"}}}

        scene = ws.receive_json()
        assert scene["type"] == "scene-update"
        assert scene["data"]["scene"]["id"] == "scene-right"
        assert scene["data"]["votes"] == {}


def test_game_socket_receives_roster_update(client: TestClient) -> None:
    gid = client.post("/games", json={}).json()["game_id"]

    with client.websocket_connect(f"/ws/games/{gid}") as ws:
        ws.receive_json()
        pid = client.post(f"/games/{gid}/join", json={"name": "Ada"}).json()["player_id"]

        msg = ws.receive_json()
        assert msg == {"type": "roster-update", "data": [{"id": pid, "name": "Ada"}]}


def test_finished_game_announced(client: TestClient) -> None:
    gid, p1, p2 = _new_game_with_players(client)

    with client.websocket_connect(f"/ws/games/{gid}") as ws:
        ws.receive_json()
        client.post(f"/games/{gid}/vote", json={"player_id": p1, "choice_id": "stop"})
        client.post(f"/games/{gid}/vote", json={"player_id": p2, "choice_id": "stop"})

        types = [ws.receive_json()["type"] for _ in range(3)]
        assert types == ["vote-update", "scene-update", "game-finished"]


def test_unknown_game_socket_is_closed(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as e:
        with client.websocket_connect("/ws/games/missing") as ws:
            ws.receive_json()
    assert e.value.code == 4404


def test_lobby_socket_gets_lobby_traffic_only(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ack = ws.receive_json()
        assert ack["data"]["channel"] == "lobby"

        gid = client.post("/games", json={}).json()["game_id"]
        created = ws.receive_json()
        assert created["type"] == "lobby-games"
        assert [g["id"] for g in created["data"]] == [gid]

        client.post("/lobby/chat", json={"author": "Ada", "text": "hello"})
        chat = ws.receive_json()
        assert chat["type"] == "chat:message"
        assert chat["data"]["text"] == "hello"

        ws.send_json({"action": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_lobby_socket_can_subscribe_to_a_game(client: TestClient) -> None:
    gid = client.post("/games", json={}).json()["game_id"]

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()

        ws.send_json({"action": "subscribe", "channel": f"game:{gid}"})
        assert ws.receive_json() == {"type": "subscribed", "data": {"channel": f"game:{gid}"}}

        client.post(f"/games/{gid}/join", json={"name": "Ada"})
        assert ws.receive_json()["type"] == "roster-update"
        assert ws.receive_json()["type"] == "lobby-games"

        ws.send_json({"action": "unsubscribe", "channel": f"game:{gid}"})
        assert ws.receive_json()["type"] == "unsubscribed"

        client.post("/lobby/todo", json={"text": "more stories"})
        # Only lobby traffic now: the next join's roster update must not arrive.
        client.post(f"/games/{gid}/join", json={"name": "Grace"})
        assert ws.receive_json()["type"] == "todo:create"
        assert ws.receive_json()["type"] == "lobby-games"


def test_bad_command_gets_error_frame(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"
        ws.send_json({"action": "subscribe"})
        assert ws.receive_json() == {"type": "error", "data": {"detail": "channel is required"}}


def test_disconnect_unsubscribes(client: TestClient) -> None:
    gid = client.post("/games", json={}).json()["game_id"]
    broker = client.app.state.broker

    with client.websocket_connect(f"/ws/games/{gid}") as ws:
        ws.receive_json()
        assert len(broker.subscribers(f"game:{gid}")) == 1

    # The server side tears down after the client disconnect is processed.
    client.get("/healthcheck")
    assert broker.subscribers(f"game:{gid}") == set()
