import pytest
from starlette.websockets import WebSocketDisconnect

from ridehail.core.security import Principal
from ridehail.realtime.feed import INSERT, UPDATE, ChangeFeed, feed
from ridehail.realtime.router import _ride_row_for


def test_feed_filters_by_table_event_and_columns():
    feed = ChangeFeed()
    seen = []
    feed.subscribe("ride_offers", seen.append, events={INSERT}, filters={"driver_id": "d1"})

    assert feed.publish("ride_offers", INSERT, {"id": "o1", "driver_id": "d1"}) == 1
    assert feed.publish("ride_offers", INSERT, {"id": "o2", "driver_id": "d2"}) == 0
    assert feed.publish("ride_offers", UPDATE, {"id": "o1", "driver_id": "d1"}) == 0
    assert feed.publish("ride_requests", INSERT, {"id": "r1", "driver_id": "d1"}) == 0

    assert [c.new["id"] for c in seen] == ["o1"]
    assert seen[0].to_dict()["id"] == "o1"
    assert seen[0].to_dict()["event"] == INSERT


def test_unsubscribe_stops_delivery():
    feed = ChangeFeed()
    seen = []
    sub = feed.subscribe("notifications", seen.append)
    assert feed.subscriber_count("notifications") == 1

    sub.unsubscribe()
    sub.unsubscribe()
    assert feed.subscriber_count() == 0
    assert feed.publish("notifications", INSERT, {"id": "n1"}) == 0
    assert seen == []


def test_failing_subscriber_does_not_block_others():
    feed = ChangeFeed()
    seen = []

    def _boom(change):
        raise RuntimeError("subscriber bug")

    feed.subscribe("ride_requests", _boom)
    feed.subscribe("ride_requests", seen.append)
    assert feed.publish("ride_requests", UPDATE, {"id": "r1"}) == 1
    assert len(seen) == 1


def test_published_row_is_a_snapshot():
    feed = ChangeFeed()
    seen = []
    feed.subscribe("ride_requests", seen.append)
    row = {"id": "r1", "status": "pending"}
    feed.publish("ride_requests", INSERT, row)
    row["status"] = "accepted"
    assert seen[0].new["status"] == "pending"


def test_rider_receives_ride_updates(client, register, online_driver, book):
    passenger = register("passenger")
    driver = online_driver(28.601, 77.201)
    ride_id = book(passenger)["ride"]["id"]

    with client.websocket_connect(f"/realtime/rides/{ride_id}?token={passenger['token']}") as ws:
        assert client.post(f"/rides/{ride_id}/accept", headers=driver["headers"]).status_code == 200
        msg = ws.receive_json()

    assert msg["table"] == "ride_requests"
    assert msg["event"] == "UPDATE"
    assert msg["id"] == ride_id
    assert msg["new"]["status"] == "accepted"
    assert msg["new"]["driver_id"] == driver["user_id"]
    # The rider is the one who reads the OTP out.
    assert msg["new"]["otp"] is not None


def test_driver_stream_hides_otp(client, register, online_driver, book):
    passenger = register("passenger")
    driver = online_driver(28.601, 77.201)
    ride_id = book(passenger)["ride"]["id"]

    with client.websocket_connect(f"/realtime/rides/{ride_id}?token={driver['token']}") as ws:
        client.post(f"/rides/{ride_id}/accept", headers=driver["headers"])
        msg = ws.receive_json()

    assert msg["new"]["status"] == "accepted"
    assert msg["new"]["otp"] is None


def test_driver_receives_new_offers(client, register, online_driver, book):
    driver = online_driver(28.601, 77.201)
    with client.websocket_connect(f"/realtime/offers?token={driver['token']}") as ws:
        ride = book(register("passenger"))["ride"]
        msg = ws.receive_json()

    assert msg["table"] == "ride_offers"
    assert msg["event"] == "INSERT"
    assert msg["new"]["ride_id"] == ride["id"]
    assert msg["new"]["driver_id"] == driver["user_id"]


def test_drivers_see_new_ride_requests(client, register, book):
    driver = register("driver")
    with client.websocket_connect(f"/realtime/ride-requests?token={driver['token']}") as ws:
        ride = book(register("passenger"))["ride"]
        msg = ws.receive_json()

    assert msg["new"]["id"] == ride["id"]
    assert msg["new"]["status"] == "pending"
    assert msg["new"]["otp"] is None


def test_location_stream(client, register, online_driver):
    watcher = register("passenger")
    driver = online_driver(28.601, 77.201)
    with client.websocket_connect(
        f"/realtime/driver-locations?token={watcher['token']}&driver_id={driver['user_id']}"
    ) as ws:
        client.post("/drivers/me/location", json={"lat": 28.605, "lon": 77.205}, headers=driver["headers"])
        msg = ws.receive_json()

    assert msg["event"] == "UPDATE"
    assert msg["new"]["driver_id"] == driver["user_id"]
    assert msg["new"]["lat"] == pytest.approx(28.605)


def test_bad_token_is_rejected(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/realtime/notifications?token=not-a-jwt") as ws:
            ws.receive_json()


def test_passenger_cannot_watch_offers(client, register):
    passenger = register("passenger")
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/realtime/offers?token={passenger['token']}") as ws:
            ws.receive_json()


def test_outsiders_cannot_watch_a_ride(client, register, online_driver, book):
    passenger = register("passenger")
    driver = online_driver(28.601, 77.201)
    ride_id = book(passenger)["ride"]["id"]
    client.post(f"/rides/{ride_id}/accept", headers=driver["headers"])

    for outsider in (register("passenger"), register("driver")):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/realtime/rides/{ride_id}?token={outsider['token']}") as ws:
                ws.receive_json()

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/realtime/rides/unknown?token={passenger['token']}") as ws:
            ws.receive_json()


def test_taken_ride_stops_streaming_to_other_drivers():
    row = {"id": "r1", "rider_id": "p1", "driver_id": "d1", "status": "accepted", "otp": "4321"}
    assert _ride_row_for(Principal(sub="d2", role="driver"), row) is None
    assert _ride_row_for(Principal(sub="d2", role="driver"), {**row, "status": "pending", "driver_id": None}) is not None
    assert _ride_row_for(Principal(sub="d1", role="driver"), row)["otp"] is None
    assert _ride_row_for(Principal(sub="p1", role="passenger"), row)["otp"] == "4321"
    assert _ride_row_for(Principal(sub="a1", role="admin"), row) is not None


def test_binary_frame_ends_the_stream(client, register):
    user = register("passenger")
    with client.websocket_connect(f"/realtime/notifications?token={user['token']}") as ws:
        ws.send_bytes(b"\x00\x01")
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == 1003
    assert feed.subscriber_count("notifications") == 0
