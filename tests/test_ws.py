import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import request_ride
from moveeazy.auth import create_access_token
from moveeazy.routers.ws import may_join
from moveeazy.ws_manager import EventHub


def _join(ws, event, ident):
    ws.send_json({"event": event, "data": ident})
    msg = ws.receive_json()
    assert msg["event"] == "joined"
    return msg["data"]["room"]


def test_new_ride_request_is_broadcast(client, rider):
    with client.websocket_connect("/ws") as ws:
        assert _join(ws, "driver_join", 7) == "driver_7"
        ride = request_ride(client, rider["headers"], distance=4)
        msg = ws.receive_json()
    assert msg["event"] == "new_ride_request"
    assert msg["data"] == {
        "rideId": ride["id"],
        "pickup_location": "Cairo Road, Lusaka",
        "dropoff_location": "Manda Hill, Great East Road",
        "estimated_fare": 1500 + 3200,
    }


def test_ride_accept_and_status_events(client, rider, driver):
    ride = request_ride(client, rider["headers"])
    with client.websocket_connect("/socket") as ws:
        _join(ws, "user_join", rider["id"])
        client.post(f"/api/rides/accept/{ride['id']}", headers=driver["headers"])
        msg = ws.receive_json()
        assert msg == {"event": f"ride_accepted_{rider['id']}", "data": {"rideId": ride["id"], "driverId": driver["id"]}}

        client.put(f"/api/rides/status/{ride['id']}", headers=driver["headers"], json={"status": "picked_up"})
        msg = ws.receive_json()
        assert msg == {"event": f"ride_status_{rider['id']}", "data": {"rideId": ride["id"], "status": "picked_up"}}


def test_cancel_notifies_driver(client, rider, driver):
    ride = request_ride(client, rider["headers"])
    client.post(f"/api/rides/accept/{ride['id']}", headers=driver["headers"])
    with client.websocket_connect("/ws") as ws:
        _join(ws, "driver_join", driver["id"])
        client.put(f"/api/rides/cancel/{ride['id']}", headers=rider["headers"])
        msg = ws.receive_json()
    assert msg == {"event": f"ride_cancelled_{driver['id']}", "data": {"rideId": ride["id"]}}


def test_driver_status_event(client, admin_headers, driver):
    with client.websocket_connect("/ws") as ws:
        _join(ws, "driver_join", driver["id"])
        client.put(f"/api/admin/drivers/{driver['id']}/status", headers=admin_headers, json={"status": "suspended"})
        msg = ws.receive_json()
    assert msg == {"event": f"driver_status_{driver['id']}", "data": {"status": "suspended"}}


def test_location_relay(client, driver):
    with client.websocket_connect("/ws") as watcher, client.websocket_connect("/ws") as sender:
        _join(watcher, "user_join", 1)
        sender.send_json({"event": "update_location", "data": {"driverId": 5, "latitude": -15.4, "longitude": 28.3}})
        msg = watcher.receive_json()
        assert msg == {"event": "driver_location_5", "data": {"latitude": -15.4, "longitude": 28.3}}

        client.post("/api/driver/location", headers=driver["headers"], json={"latitude": -15.5, "longitude": 28.2})
        msg = watcher.receive_json()
        assert msg["event"] == f"driver_location_{driver['id']}"


def test_token_query_param(client, rider):
    token = create_access_token(rider["id"], "user")
    with client.websocket_connect(f"/ws?token={token}") as ws:
        assert _join(ws, "user_join", rider["id"]) == f"user_{rider['id']}"

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?token=garbage") as ws:
            ws.receive_json()
    assert exc.value.code == 4401


def test_binary_frames_are_ignored(client, rider):
    with client.websocket_connect("/ws") as ws:
        ws.send_bytes(b"\x00\x01")
        ws.send_text("not json")
        assert _join(ws, "user_join", rider["id"]) == f"user_{rider['id']}"


def test_token_pins_joins_to_its_principal(client, rider, driver):
    token = create_access_token(rider["id"], "user")
    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"event": "user_join", "data": rider["id"] + 1})
        assert ws.receive_json() == {"event": "error", "data": {"code": "forbidden", "room": f"user_{rider['id'] + 1}"}}
        ws.send_json({"event": "driver_join", "data": rider["id"]})
        assert ws.receive_json()["event"] == "error"
        assert _join(ws, "user_join", {"id": rider["id"]}) == f"user_{rider['id']}"

    admin_token = create_access_token(1, "admin")
    with client.websocket_connect(f"/ws?token={admin_token}") as ws:
        assert _join(ws, "driver_join", driver["id"]) == f"driver_{driver['id']}"


def test_may_join_rules():
    assert may_join(None, "user", "5")
    assert may_join({"sub": "5", "type": "user"}, "user", "5")
    assert not may_join({"sub": "5", "type": "user"}, "user", "6")
    assert not may_join({"sub": "5", "type": "driver"}, "user", "5")
    assert may_join({"sub": "1", "type": "admin"}, "driver", "9")


class _FakeSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def accept(self):
        pass

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


def test_hub_rooms_and_pruning():
    async def scenario():
        hub = EventHub()
        alive, dead, other = _FakeSocket(), _FakeSocket(fail=True), _FakeSocket()
        for s in (alive, dead, other):
            await hub.connect(s)
        await hub.join("user_1", alive)
        await hub.join("user_1", dead)

        assert await hub.emit("ping", {"n": 1}, room="user_1") == 1
        assert hub.connection_count == 2
        assert hub.room_size("user_1") == 1

        assert await hub.emit("hello", None) == 2
        return alive.sent, other.sent

    alive_sent, other_sent = asyncio.run(scenario())
    assert alive_sent == [{"event": "ping", "data": {"n": 1}}, {"event": "hello", "data": None}]
    assert other_sent == [{"event": "hello", "data": None}]


def test_publish_targets_room_when_enabled(monkeypatch):
    from moveeazy.config import settings

    async def scenario():
        hub = EventHub()
        member, outsider = _FakeSocket(), _FakeSocket()
        await hub.connect(member)
        await hub.connect(outsider)
        await hub.join("user_9", member)
        await hub.publish("ride_status_9", {"status": "accepted"}, "user_9")
        return member.sent, outsider.sent

    monkeypatch.setattr(settings, "EVENTS_TARGETED", True)
    member_sent, outsider_sent = asyncio.run(scenario())
    assert len(member_sent) == 1
    assert outsider_sent == []

    monkeypatch.setattr(settings, "EVENTS_TARGETED", False)
    member_sent, outsider_sent = asyncio.run(scenario())
    assert len(member_sent) == 1
    assert len(outsider_sent) == 1
