from datetime import date, timedelta

from hotelops.models import RoleEnum


def _stay(offset: int = 10, nights: int = 2) -> tuple[str, str]:
    check_in = date.today() + timedelta(days=offset)
    return check_in.isoformat(), (check_in + timedelta(days=nights)).isoformat()


def _book(bookings_client, headers, room_id, check_in, check_out, **extra):
    return bookings_client.post(
        "/bookings",
        json={"room_id": room_id, "check_in_date": check_in, "check_out_date": check_out, **extra},
        headers=headers,
    )


def test_booking_flow(hotel, register_user, bookings_client):
    room_id = hotel["room_ids"][0]
    guest = register_user("guest")
    check_in, check_out = _stay()

    booking_resp = _book(bookings_client, guest, room_id, check_in, check_out, adults=2)
    assert booking_resp.status_code == 201
    booking = booking_resp.json()
    assert booking["status"] == "confirmed"
    assert booking["nights"] == 2
    assert booking["total_amount"] == 7000.0
    assert booking["booking_reference"].startswith("BK")

    same_dates = bookings_client.get(
        "/bookings/availability",
        params={"room_id": room_id, "check_in": check_in, "check_out": check_out},
    )
    assert same_dates.json()["available"] is False

    # Checking in on the previous guest's check-out day does not conflict.
    later = bookings_client.get(
        "/bookings/availability",
        params={"room_id": room_id, "check_in": check_out, "check_out": _stay(12, 1)[1]},
    )
    assert later.status_code == 200
    assert later.json()["available"] is True

    mine = bookings_client.get("/bookings/me", headers=guest)
    assert [entry["id"] for entry in mine.json()] == [booking["id"]]


def test_overlapping_booking_conflicts(hotel, register_user, bookings_client):
    first, second = hotel["room_ids"]
    guest = register_user("guest")
    check_in, check_out = _stay()
    assert _book(bookings_client, guest, first, check_in, check_out).status_code == 201

    overlap_in = (date.fromisoformat(check_in) + timedelta(days=1)).isoformat()
    overlap_out = (date.fromisoformat(check_out) + timedelta(days=1)).isoformat()
    conflict = _book(bookings_client, register_user("other"), first, overlap_in, overlap_out)
    assert conflict.status_code == 409
    assert conflict.json()["code"] == "RESOURCE_UNAVAILABLE"
    assert conflict.json()["alternatives"] == [second]


def test_booking_by_room_type_picks_free_room(hotel, register_user, bookings_client):
    first, second = hotel["room_ids"]
    guest = register_user("guest")
    check_in, check_out = _stay()

    rooms = []
    for _ in range(2):
        response = bookings_client.post(
            "/bookings",
            json={"room_type_id": hotel["room_type_id"], "check_in_date": check_in, "check_out_date": check_out},
            headers=guest,
        )
        assert response.status_code == 201
        rooms.append(response.json()["room_id"])
    assert sorted(rooms) == sorted([first, second])

    sold_out = bookings_client.post(
        "/bookings",
        json={"room_type_id": hotel["room_type_id"], "check_in_date": check_in, "check_out_date": check_out},
        headers=guest,
    )
    assert sold_out.status_code == 409


def test_booking_validation(hotel, register_user, bookings_client):
    room_id = hotel["room_ids"][0]
    guest = register_user("guest")
    check_in, _ = _stay()

    same_day = _book(bookings_client, guest, room_id, check_in, check_in)
    assert same_day.status_code == 400

    yesterday = (date.today() - timedelta(days=1)).isoformat()
    past = _book(bookings_client, guest, room_id, yesterday, date.today().isoformat())
    assert past.status_code == 400

    too_many = _book(bookings_client, guest, room_id, *_stay(), adults=3, children=1)
    assert too_many.status_code == 400

    ota = _book(bookings_client, guest, room_id, *_stay(), platform="airbnb")
    assert ota.status_code == 403


def test_cancel_frees_the_room(hotel, register_user, bookings_client):
    room_id = hotel["room_ids"][0]
    guest = register_user("guest")
    check_in, check_out = _stay()
    booking_id = _book(bookings_client, guest, room_id, check_in, check_out).json()["id"]

    cancel = bookings_client.post(f"/bookings/{booking_id}/cancel", json={"reason": "Change of plans"}, headers=guest)
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "cancelled"
    assert cancel.json()["cancellation_reason"] == "Change of plans"

    rebook = _book(bookings_client, register_user("other"), room_id, check_in, check_out)
    assert rebook.status_code == 201

    again = bookings_client.post(f"/bookings/{booking_id}/cancel", headers=guest)
    assert again.status_code == 400
    assert again.json()["code"] == "INVALID_TRANSITION"


def test_customer_cancellation_cutoff(hotel, register_user, bookings_client):
    room_id = hotel["room_ids"][0]
    guest = register_user("guest")
    booking_id = _book(bookings_client, guest, room_id, *_stay(offset=0, nights=1)).json()["id"]

    late = bookings_client.post(f"/bookings/{booking_id}/cancel", headers=guest)
    assert late.status_code == 400

    reception = register_user("reception", RoleEnum.RECEPTIONIST)
    staff = bookings_client.post(f"/bookings/{booking_id}/cancel", headers=reception)
    assert staff.status_code == 200


def test_status_lifecycle(hotel, register_user, bookings_client, rooms_client):
    room_id = hotel["room_ids"][0]
    guest = register_user("guest")
    reception = register_user("reception", RoleEnum.RECEPTIONIST)
    booking = _book(bookings_client, guest, room_id, *_stay(offset=0, nights=1), status="pending").json()
    assert booking["status"] == "pending"

    denied = bookings_client.patch(f"/bookings/{booking['id']}/status", json={"status": "confirmed"}, headers=guest)
    assert denied.status_code == 403

    skip = bookings_client.patch(f"/bookings/{booking['id']}/status", json={"status": "checked_out"}, headers=reception)
    assert skip.status_code == 400

    for target in ("confirmed", "checked_in"):
        response = bookings_client.patch(f"/bookings/{booking['id']}/status", json={"status": target}, headers=reception)
        assert response.status_code == 200
        assert response.json()["status"] == target

    room = rooms_client.get(f"/rooms/{room_id}").json()
    assert room["status"] == "occupied"

    checkout = bookings_client.patch(f"/bookings/{booking['id']}/status", json={"status": "checked_out"}, headers=reception)
    assert checkout.status_code == 200
    assert rooms_client.get(f"/rooms/{room_id}").json()["status"] == "cleaning"


def test_confirming_pending_booking_rechecks_conflicts(hotel, register_user, bookings_client):
    room_id = hotel["room_ids"][0]
    reception = register_user("reception", RoleEnum.RECEPTIONIST)
    check_in, check_out = _stay()

    pending = _book(bookings_client, register_user("guest"), room_id, check_in, check_out, status="pending").json()
    assert _book(bookings_client, register_user("other"), room_id, check_in, check_out).status_code == 201

    confirm = bookings_client.patch(f"/bookings/{pending['id']}/status", json={"status": "confirmed"}, headers=reception)
    assert confirm.status_code == 409


def test_reschedule_booking(hotel, register_user, bookings_client):
    first, second = hotel["room_ids"]
    guest = register_user("guest")
    booking_id = _book(bookings_client, guest, first, *_stay()).json()["id"]
    _book(bookings_client, register_user("other"), second, *_stay(offset=20))

    check_in, check_out = _stay(offset=11, nights=3)
    moved = bookings_client.put(
        f"/bookings/{booking_id}",
        json={"check_in_date": check_in, "check_out_date": check_out},
        headers=guest,
    )
    assert moved.status_code == 200
    assert moved.json()["nights"] == 3
    assert moved.json()["total_amount"] == 10500.0

    blocked = bookings_client.put(
        f"/bookings/{booking_id}",
        json={"room_id": second, "check_in_date": _stay(offset=20)[0], "check_out_date": _stay(offset=20)[1]},
        headers=guest,
    )
    assert blocked.status_code == 409


def test_booking_access_control(hotel, register_user, bookings_client):
    booking_id = _book(bookings_client, register_user("guest"), hotel["room_ids"][0], *_stay()).json()["id"]
    other = register_user("other")

    assert bookings_client.get(f"/bookings/{booking_id}", headers=other).status_code == 403
    assert bookings_client.get("/bookings", headers=other).status_code == 403
    assert bookings_client.get("/bookings/999", headers=hotel["manager"]).status_code == 404


def test_list_bookings_filters_and_pages(hotel, register_user, bookings_client):
    first, second = hotel["room_ids"]
    guest = register_user("guest")
    reception = register_user("reception", RoleEnum.RECEPTIONIST)
    _book(bookings_client, guest, first, *_stay(offset=5))
    _book(bookings_client, guest, second, *_stay(offset=5))
    _book(bookings_client, reception, first, *_stay(offset=15), platform="makemytrip")

    page = bookings_client.get("/bookings", params={"limit": 2}, headers=reception).json()
    assert page["total"] == 3
    assert page["pages"] == 2
    assert len(page["items"]) == 2

    ota = bookings_client.get("/bookings", params={"platform": "makemytrip"}, headers=reception).json()
    assert ota["total"] == 1

    window = bookings_client.get(
        "/bookings",
        params={"check_in_to": (date.today() + timedelta(days=6)).isoformat()},
        headers=reception,
    ).json()
    assert window["total"] == 2


def test_booking_calendar(hotel, register_user, bookings_client):
    first, second = hotel["room_ids"]
    reception = register_user("reception", RoleEnum.RECEPTIONIST)
    booking = _book(bookings_client, register_user("guest"), first, *_stay(offset=3)).json()

    start = date.today()
    response = bookings_client.get(
        "/bookings/calendar",
        params={"start_date": start.isoformat(), "end_date": (start + timedelta(days=7)).isoformat()},
        headers=reception,
    )
    assert response.status_code == 200
    calendar = {entry["room_id"]: entry for entry in response.json()}
    assert [entry["id"] for entry in calendar[first]["bookings"]] == [booking["id"]]
    assert calendar[first]["bookings"][0]["guest"] == "Guest"
    assert calendar[second]["bookings"] == []

    too_wide = bookings_client.get(
        "/bookings/calendar",
        params={"start_date": start.isoformat(), "end_date": (start + timedelta(days=120)).isoformat()},
        headers=reception,
    )
    assert too_wide.status_code == 400
