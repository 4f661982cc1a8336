from datetime import date, timedelta

from hotelops.models import RoleEnum


def _checked_in_guest(hotel, register_user, bookings_client) -> dict:
    reception = register_user("reception", RoleEnum.RECEPTIONIST)
    guest = register_user("guest")
    today = date.today()
    booking = bookings_client.post(
        "/bookings",
        json={
            "room_id": hotel["room_ids"][0],
            "check_in_date": today.isoformat(),
            "check_out_date": (today + timedelta(days=1)).isoformat(),
        },
        headers=guest,
    ).json()
    bookings_client.patch(f"/bookings/{booking['id']}/status", json={"status": "checked_in"}, headers=reception)
    future = bookings_client.post(
        "/bookings",
        json={
            "room_id": hotel["room_ids"][1],
            "check_in_date": (today + timedelta(days=1)).isoformat(),
            "check_out_date": (today + timedelta(days=3)).isoformat(),
        },
        headers=guest,
    ).json()
    return {"reception": reception, "guest": guest, "booking": booking, "future": future}


def test_dashboard_metrics_by_role(hotel, register_user, bookings_client, reports_client):
    setup = _checked_in_guest(hotel, register_user, bookings_client)

    guest_metrics = reports_client.get("/dashboard/metrics", headers=setup["guest"]).json()
    assert guest_metrics["bookings"]["total"] == 2
    assert guest_metrics["bookings"]["upcoming"] == 2
    assert guest_metrics["bookings"]["by_status"] == {"checked_in": 1, "confirmed": 1}

    front_office = reports_client.get("/dashboard/metrics", headers=setup["reception"]).json()
    assert front_office["bookings"]["today"] == 2
    assert front_office["bookings"]["occupancy_rate"] == 50.0
    assert front_office["rooms"] == {"total": 2, "booked": 1, "available": 1, "room_types": 1}
    assert front_office["revenue"]["today"] == 3500.0 + 7000.0
    assert "orders" not in front_office

    manager = reports_client.get("/dashboard/metrics", headers=hotel["manager"]).json()
    assert manager["customers"]["total"] == 1
    assert manager["orders"]["today"] == 0


def test_occupancy_report_flags_mismatches(hotel, register_user, bookings_client, rooms_client, reports_client):
    setup = _checked_in_guest(hotel, register_user, bookings_client)
    second = hotel["room_ids"][1]
    rooms_client.patch(f"/rooms/{second}/status", json={"status": "occupied"}, headers=setup["reception"])

    report = reports_client.get("/reports/occupancy", headers=setup["reception"]).json()
    assert report["total_rooms"] == 2
    assert report["booked_rooms"] == 1
    assert report["occupancy_rate"] == 50.0
    assert report["by_status"]["occupied"] == 2
    assert report["by_room_type"]["Deluxe Room"] == {"total": 2, "booked": 1}
    assert [entry["room_id"] for entry in report["status_mismatches"]] == [second]

    assert reports_client.get("/reports/occupancy", headers=setup["guest"]).status_code == 403


def test_night_audit(hotel, register_user, bookings_client, reports_client):
    setup = _checked_in_guest(hotel, register_user, bookings_client)

    audit = reports_client.get("/reports/audit", headers=setup["reception"]).json()
    assert audit["business_date"] == date.today().isoformat()
    assert audit["rooms"]["arrivals"] == 1
    assert audit["rooms"]["in_house"] == 1
    assert audit["rooms"]["pending_arrivals"] == 0
    assert audit["rooms"]["room_revenue"] == 3500.0
    assert audit["restaurant"]["orders_served"] == 0
    assert audit["payments"]["succeeded"] == {"count": 0, "amount": 0.0}
    assert audit["total_revenue"] == 3500.0

    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    next_day = reports_client.get("/reports/audit", params={"business_date": tomorrow}, headers=setup["reception"])
    assert next_day.json()["rooms"]["departures"] == 1
    assert next_day.json()["rooms"]["pending_arrivals"] == 1


def test_statistics_report(hotel, register_user, bookings_client, reports_client):
    _checked_in_guest(hotel, register_user, bookings_client)
    today = date.today()
    params = {"start_date": today.isoformat(), "end_date": (today + timedelta(days=1)).isoformat()}

    stats = reports_client.get("/reports/statistics", params=params, headers=hotel["manager"]).json()
    assert stats["room_nights_available"] == 4
    assert stats["room_nights_sold"] == 2
    assert stats["occupancy_rate"] == 50.0
    assert stats["room_revenue"] == 7000.0
    assert stats["average_daily_rate"] == 3500.0
    assert stats["revpar"] == 1750.0
    assert stats["bookings_by_platform"] == {"direct": 2}

    inverted = reports_client.get(
        "/reports/statistics",
        params={"start_date": params["end_date"], "end_date": params["start_date"]},
        headers=hotel["manager"],
    )
    assert inverted.status_code == 400


def test_restaurant_report(hotel, register_user, restaurant_client, reports_client):
    manager = hotel["manager"]
    waiter = register_user("waiter", RoleEnum.WAITER)
    item = restaurant_client.post(
        "/menu-items",
        json={"name": "Mojito", "category": "Cocktails", "price": 450.0},
        headers=manager,
    ).json()
    for quantity in (1, 3):
        restaurant_client.post(
            "/orders",
            json={"order_type": "takeaway", "items": [{"menu_item_id": item["id"], "quantity": quantity}]},
            headers=waiter,
        )

    report = reports_client.get("/reports/restaurant", headers=manager).json()
    assert report["orders"] == 2
    assert report["subtotal"] == 1800.0
    assert report["tax"] == 216.0
    assert report["revenue"] == 2016.0
    assert report["average_order_value"] == 1008.0
    assert report["by_type"] == {"takeaway": 2}
    assert report["top_items"] == [{"menu_item_id": item["id"], "name": "Mojito", "quantity": 4}]

    assert reports_client.get("/reports/restaurant", headers=waiter).status_code == 403


def test_analytics(hotel, register_user, bookings_client, reports_client):
    _checked_in_guest(hotel, register_user, bookings_client)

    popularity = reports_client.get("/analytics/rooms/popularity", headers=hotel["manager"]).json()
    assert {entry["booking_count"] for entry in popularity} == {1}

    activity = reports_client.get("/analytics/users/activity", params={"limit": 1}, headers=hotel["manager"]).json()
    assert activity == [{"user_id": activity[0]["user_id"], "username": "guest", "booking_count": 2}]
