from datetime import date, datetime, time, timedelta, timezone

import pytest

from hotelops.models import RoleEnum


@pytest.fixture()
def restaurant(register_user, restaurant_client) -> dict:
    manager = register_user("manager", RoleEnum.MANAGER)
    kitchen = restaurant_client.post("/kitchens", json={"name": "Main Kitchen"}, headers=manager).json()
    table = restaurant_client.post(
        "/tables",
        json={"table_number": "T1", "capacity": 4, "location": "indoor", "kitchen_id": kitchen["id"]},
        headers=manager,
    ).json()
    small_table = restaurant_client.post(
        "/tables",
        json={"table_number": "T2", "capacity": 2, "location": "indoor", "kitchen_id": kitchen["id"]},
        headers=manager,
    ).json()
    menu = {}
    for name, price in (("Paneer Tikka", 320.0), ("Dal Makhani", 380.0)):
        item = restaurant_client.post(
            "/menu-items",
            json={"name": name, "category": "Main Course", "price": price, "kitchen_id": kitchen["id"]},
            headers=manager,
        )
        assert item.status_code == 201
        menu[name] = item.json()["id"]
    return {
        "manager": manager,
        "kitchen_id": kitchen["id"],
        "table_id": table["id"],
        "small_table_id": small_table["id"],
        "menu": menu,
    }


def _tomorrow_at(hour: int) -> datetime:
    return datetime.combine(date.today() + timedelta(days=1), time(hour, 0))


def test_dine_in_order_flow(restaurant, register_user, restaurant_client):
    waiter = register_user("waiter", RoleEnum.WAITER)
    chef = register_user("chef", RoleEnum.CHEF)

    order_resp = restaurant_client.post(
        "/orders",
        json={
            "order_type": "dine_in",
            "table_id": restaurant["table_id"],
            "items": [
                {"menu_item_id": restaurant["menu"]["Paneer Tikka"], "quantity": 2},
                {"menu_item_id": restaurant["menu"]["Dal Makhani"], "quantity": 1},
            ],
        },
        headers=waiter,
    )
    assert order_resp.status_code == 201
    order = order_resp.json()
    assert order["status"] == "pending"
    assert order["kitchen_id"] == restaurant["kitchen_id"]
    assert order["subtotal"] == 1020.0
    assert order["tax_amount"] == 122.4
    assert order["total_amount"] == 1142.4
    assert order["waiter_id"] is not None

    first, second = (item["id"] for item in order["items"])
    started = restaurant_client.patch(
        f"/orders/{order['id']}/items/{first}/status", json={"status": "preparing"}, headers=chef
    )
    assert started.json()["status"] == "preparing"

    restaurant_client.patch(f"/orders/{order['id']}/items/{first}/status", json={"status": "ready"}, headers=chef)
    restaurant_client.patch(f"/orders/{order['id']}/items/{second}/status", json={"status": "preparing"}, headers=chef)
    finished = restaurant_client.patch(
        f"/orders/{order['id']}/items/{second}/status", json={"status": "ready"}, headers=chef
    )
    assert finished.json()["status"] == "ready"

    served = restaurant_client.patch(f"/orders/{order['id']}/status", json={"status": "served"}, headers=waiter)
    assert served.status_code == 200
    assert served.json()["status"] == "served"
    assert {item["status"] for item in served.json()["items"]} == {"served"}

    reopened = restaurant_client.patch(f"/orders/{order['id']}/status", json={"status": "preparing"}, headers=waiter)
    assert reopened.status_code == 400


def test_customer_order_rules(restaurant, register_user, restaurant_client):
    guest = register_user("guest")

    dine_in = restaurant_client.post(
        "/orders",
        json={
            "order_type": "dine_in",
            "table_id": restaurant["table_id"],
            "items": [{"menu_item_id": restaurant["menu"]["Dal Makhani"], "quantity": 1}],
        },
        headers=guest,
    )
    assert dine_in.status_code == 403

    takeaway = restaurant_client.post(
        "/orders",
        json={"order_type": "takeaway", "items": [{"menu_item_id": restaurant["menu"]["Dal Makhani"], "quantity": 1}]},
        headers=guest,
    )
    assert takeaway.status_code == 201
    order_id = takeaway.json()["id"]

    more = restaurant_client.post(
        f"/orders/{order_id}/items",
        json={"items": [{"menu_item_id": restaurant["menu"]["Paneer Tikka"], "quantity": 1}]},
        headers=guest,
    )
    assert more.status_code == 200
    assert more.json()["subtotal"] == 700.0

    cannot_advance = restaurant_client.patch(f"/orders/{order_id}/status", json={"status": "preparing"}, headers=guest)
    assert cannot_advance.status_code == 403

    other = register_user("other")
    assert restaurant_client.get(f"/orders/{order_id}", headers=other).status_code == 403
    assert restaurant_client.get("/orders", headers=other).json() == []


def test_unavailable_menu_item_rejected(restaurant, register_user, restaurant_client):
    guest = register_user("guest")
    item_id = restaurant["menu"]["Paneer Tikka"]
    restaurant_client.put(f"/menu-items/{item_id}", json={"is_available": False}, headers=restaurant["manager"])

    assert len(restaurant_client.get("/menu-items").json()) == 1
    response = restaurant_client.post(
        "/orders",
        json={"order_type": "takeaway", "items": [{"menu_item_id": item_id, "quantity": 1}]},
        headers=guest,
    )
    assert response.status_code == 400


def test_room_service_requires_checked_in_booking(restaurant, register_user, restaurant_client):
    guest = register_user("guest")
    response = restaurant_client.post(
        "/orders",
        json={
            "order_type": "room_service",
            "items": [{"menu_item_id": restaurant["menu"]["Dal Makhani"], "quantity": 1}],
        },
        headers=guest,
    )
    assert response.status_code == 400


def test_table_reservation_conflicts(restaurant, register_user, restaurant_client):
    guest = register_user("guest")
    start = _tomorrow_at(19)

    first = restaurant_client.post(
        "/reservations",
        json={"table_id": restaurant["table_id"], "start_time": start.isoformat(), "party_size": 2},
        headers=guest,
    )
    assert first.status_code == 201
    assert first.json()["end_time"] == (start + timedelta(minutes=120)).isoformat()

    overlapping = restaurant_client.post(
        "/reservations",
        json={
            "table_id": restaurant["table_id"],
            "start_time": (start + timedelta(hours=1)).isoformat(),
            "party_size": 2,
        },
        headers=register_user("other"),
    )
    assert overlapping.status_code == 409
    assert overlapping.json()["alternatives"] == [restaurant["small_table_id"]]

    back_to_back = restaurant_client.post(
        "/reservations",
        json={
            "table_id": restaurant["table_id"],
            "start_time": (start + timedelta(hours=2)).isoformat(),
            "party_size": 4,
        },
        headers=guest,
    )
    assert back_to_back.status_code == 201

    too_big = restaurant_client.post(
        "/reservations",
        json={"table_id": restaurant["small_table_id"], "start_time": start.isoformat(), "party_size": 3},
        headers=guest,
    )
    assert too_big.status_code == 400


def test_reservation_accepts_utc_timestamp(restaurant, register_user, restaurant_client):
    guest = register_user("guest")
    local_start = _tomorrow_at(19)
    utc_start = local_start.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    booked = restaurant_client.post(
        "/reservations",
        json={"table_id": restaurant["table_id"], "start_time": utc_start, "party_size": 2},
        headers=guest,
    )
    assert booked.status_code == 201
    assert booked.json()["start_time"] == local_start.isoformat()

    overlapping = restaurant_client.post(
        "/reservations",
        json={
            "table_id": restaurant["table_id"],
            "start_time": (local_start + timedelta(minutes=30)).isoformat(),
            "party_size": 2,
        },
        headers=register_user("other"),
    )
    assert overlapping.status_code == 409


def test_reservation_cancel_and_availability(restaurant, register_user, restaurant_client):
    guest = register_user("guest")
    start = _tomorrow_at(20)
    reservation = restaurant_client.post(
        "/reservations",
        json={"table_id": restaurant["table_id"], "start_time": start.isoformat(), "party_size": 3},
        headers=guest,
    ).json()

    params = {"date": start.date().isoformat(), "time": "20:30:00", "party_size": 3}
    assert restaurant_client.get("/restaurant/availability", params=params).json() == []

    cancelled = restaurant_client.post(f"/reservations/{reservation['id']}/cancel", headers=guest)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    available = restaurant_client.get("/restaurant/availability", params=params).json()
    assert [table["id"] for table in available] == [restaurant["table_id"]]


def test_table_status(restaurant, register_user, restaurant_client):
    waiter = register_user("waiter", RoleEnum.WAITER)
    start = _tomorrow_at(13)
    reservation = restaurant_client.post(
        "/reservations",
        json={"table_id": restaurant["table_id"], "start_time": start.isoformat(), "party_size": 2},
        headers=register_user("guest"),
    ).json()
    url = f"/tables/{restaurant['table_id']}/status"
    on = {"on": start.date().isoformat()}

    reserved = restaurant_client.get(url, params=on, headers=waiter).json()
    assert reserved["booking_status"] == "booked"
    assert reserved["unified_status"] == "reserved"
    assert reserved["reservation"]["id"] == reservation["id"]

    restaurant_client.patch(f"/reservations/{reservation['id']}/status", json={"status": "seated"}, headers=waiter)
    seated = restaurant_client.get(url, params=on, headers=waiter).json()
    assert seated["unified_status"] == "occupied"

    today = restaurant_client.get(url, headers=waiter).json()
    assert today["unified_status"] == "available"
    assert today["reservation"] is None


def test_kitchen_dashboard_access(restaurant, register_user, restaurant_client, users_client):
    chef = register_user("chef", RoleEnum.CHEF)
    waiter = register_user("waiter", RoleEnum.WAITER)
    kitchen_id = restaurant["kitchen_id"]
    url = f"/kitchens/{kitchen_id}/dashboard"

    assert restaurant_client.get(url, headers=chef).status_code == 403
    assert restaurant_client.get(url, headers=waiter).status_code == 403

    chef_id = users_client.get("/users/chef", headers=chef).json()["id"]
    assigned = restaurant_client.post(
        f"/kitchens/{kitchen_id}/staff", json={"user_id": chef_id}, headers=restaurant["manager"]
    )
    assert assigned.status_code == 201
    duplicate = restaurant_client.post(
        f"/kitchens/{kitchen_id}/staff", json={"user_id": chef_id}, headers=restaurant["manager"]
    )
    assert duplicate.status_code == 400

    restaurant_client.post(
        "/orders",
        json={
            "order_type": "dine_in",
            "table_id": restaurant["table_id"],
            "items": [{"menu_item_id": restaurant["menu"]["Dal Makhani"], "quantity": 2}],
        },
        headers=waiter,
    )

    dashboard = restaurant_client.get(url, headers=chef)
    assert dashboard.status_code == 200
    body = dashboard.json()
    assert body["kitchen"]["name"] == "Main Kitchen"
    assert body["stats"]["orders_today"] == 1
    assert body["stats"]["staff_count"] == 1
    assert body["status_counts"]["pending"] == 1
    assert len(body["open_orders"]) == 1
    assert body["recent_activity"][0]["to_status"] == "pending"

    kitchens = restaurant_client.get("/kitchens", headers=chef).json()
    assert [kitchen["id"] for kitchen in kitchens] == [kitchen_id]

    removed = restaurant_client.delete(f"/kitchens/{kitchen_id}/staff/{chef_id}", headers=restaurant["manager"])
    assert removed.status_code == 204
    assert restaurant_client.get(url, headers=chef).status_code == 403
