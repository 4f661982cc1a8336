from datetime import date, timedelta

from hotelops.models import RoleEnum


def test_room_crud(hotel, rooms_client):
    headers = hotel["manager"]
    room_type_id = hotel["room_type_id"]

    create_resp = rooms_client.post(
        "/rooms",
        json={"room_number": "201", "floor": 2, "room_type_id": room_type_id},
        headers=headers,
    )
    assert create_resp.status_code == 201
    room_id = create_resp.json()["id"]
    assert create_resp.json()["room_type"]["name"] == "Deluxe Room"

    duplicate = rooms_client.post(
        "/rooms",
        json={"room_number": "201", "floor": 2, "room_type_id": room_type_id},
        headers=headers,
    )
    assert duplicate.status_code == 400

    list_resp = rooms_client.get("/rooms?floor=2")
    assert list_resp.status_code == 200
    assert [room["room_number"] for room in list_resp.json()] == ["201"]

    update_resp = rooms_client.put(f"/rooms/{room_id}", json={"floor": 3}, headers=headers)
    assert update_resp.status_code == 200
    assert update_resp.json()["floor"] == 3

    delete_resp = rooms_client.delete(f"/rooms/{room_id}", headers=headers)
    assert delete_resp.status_code == 204
    assert rooms_client.get(f"/rooms/{room_id}").status_code == 404


def test_room_writes_require_manager(hotel, register_user, rooms_client):
    guest = register_user("guest")
    response = rooms_client.post(
        "/rooms",
        json={"room_number": "301", "floor": 3, "room_type_id": hotel["room_type_id"]},
        headers=guest,
    )
    assert response.status_code == 403


def test_room_status_is_cached(hotel, rooms_client):
    room_id = hotel["room_ids"][0]

    status_resp = rooms_client.get(f"/rooms/{room_id}/status")
    assert status_resp.status_code == 200
    assert status_resp.json()["cached_status"] == "available"
    assert status_resp.json()["occupied_today"] is False
    assert status_resp.json()["consistent"] is True

    cached_resp = rooms_client.get(f"/rooms/{room_id}/status")
    assert cached_resp.status_code == 200
    assert cached_resp.json()["checked_at"] == status_resp.json()["checked_at"]

    refresh_resp = rooms_client.get(f"/rooms/{room_id}/status?force_refresh=true")
    assert refresh_resp.status_code == 200
    assert refresh_resp.json()["checked_at"] != status_resp.json()["checked_at"]


def test_housekeeping_status_update_invalidates_cache(hotel, register_user, rooms_client):
    room_id = hotel["room_ids"][0]
    reception = register_user("reception", RoleEnum.RECEPTIONIST)
    rooms_client.get(f"/rooms/{room_id}/status")

    patch_resp = rooms_client.patch(f"/rooms/{room_id}/status", json={"status": "maintenance"}, headers=reception)
    assert patch_resp.status_code == 200

    status_resp = rooms_client.get(f"/rooms/{room_id}/status")
    assert status_resp.json()["cached_status"] == "maintenance"

    filtered = rooms_client.get("/rooms?status=maintenance")
    assert [room["id"] for room in filtered.json()] == [room_id]


def test_available_rooms_skip_maintenance(hotel, rooms_client):
    first, second = hotel["room_ids"]
    rooms_client.put(f"/rooms/{first}", json={"status": "maintenance"}, headers=hotel["manager"])

    check_in = date.today() + timedelta(days=10)
    response = rooms_client.get(
        "/rooms/available",
        params={"check_in": check_in.isoformat(), "check_out": (check_in + timedelta(days=2)).isoformat()},
    )
    assert response.status_code == 200
    assert [room["id"] for room in response.json()] == [second]


def test_available_rooms_respect_guest_count(hotel, rooms_client):
    check_in = date.today() + timedelta(days=10)
    params = {"check_in": check_in.isoformat(), "check_out": (check_in + timedelta(days=1)).isoformat()}

    assert len(rooms_client.get("/rooms/available", params={**params, "guests": 3}).json()) == 2
    assert rooms_client.get("/rooms/available", params={**params, "guests": 4}).json() == []


def test_available_rooms_reject_inverted_window(hotel, rooms_client):
    check_in = date.today() + timedelta(days=10)
    response = rooms_client.get(
        "/rooms/available",
        params={"check_in": check_in.isoformat(), "check_out": check_in.isoformat()},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_inactive_room_type_hidden(hotel, rooms_client):
    headers = hotel["manager"]
    rooms_client.put(f"/room-types/{hotel['room_type_id']}", json={"is_active": False}, headers=headers)

    assert rooms_client.get("/room-types").json() == []
    assert len(rooms_client.get("/room-types?include_inactive=true").json()) == 1
