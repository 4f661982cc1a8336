from conftest import PASSWORD, auth_header

from hotelops.models import RoleEnum

ADMIN_PAYLOAD = {
    "name": "Meera Iyer",
    "username": "meera",
    "email": "gm@mayfair.example",
    "password": PASSWORD,
    "role": RoleEnum.ADMIN.value,
}


def test_user_registration_and_listing(users_client):
    admin_resp = users_client.post("/users/register", json=ADMIN_PAYLOAD)
    assert admin_resp.status_code == 201

    user_resp = users_client.post(
        "/users/register",
        json={
            "name": "Priya Nair",
            "username": "priya",
            "email": "priya@example.com",
            "password": PASSWORD,
        },
    )
    assert user_resp.status_code == 201
    assert user_resp.json()["role"] == "customer"

    headers = auth_header(users_client, "meera")
    list_resp = users_client.get("/users", headers=headers)
    assert list_resp.status_code == 200
    assert len(list_resp.json()) == 2

    customers = users_client.get("/users?role=customer", headers=headers)
    assert [user["username"] for user in customers.json()] == ["priya"]


def test_staff_roles_cannot_be_self_assigned(users_client):
    users_client.post("/users/register", json=ADMIN_PAYLOAD)

    response = users_client.post(
        "/users/register",
        json={
            "name": "Eve",
            "username": "eve",
            "email": "eve@example.com",
            "password": PASSWORD,
            "role": RoleEnum.MANAGER.value,
        },
    )
    assert response.status_code == 403


def test_duplicate_username_rejected(users_client):
    users_client.post("/users/register", json=ADMIN_PAYLOAD)
    response = users_client.post("/users/register", json={**ADMIN_PAYLOAD, "email": "other@example.com"})
    assert response.status_code == 400


def test_login_with_wrong_password(users_client):
    users_client.post("/users/register", json=ADMIN_PAYLOAD)
    response = users_client.post(
        "/users/login",
        data={"username": "meera", "password": "wrong-password"},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert response.status_code == 401


def test_user_update_self(users_client):
    users_client.post("/users/register", json=ADMIN_PAYLOAD)
    headers = auth_header(users_client, "meera")

    update_resp = users_client.put(
        "/users/meera",
        json={"name": "Meera Iyer-Rao"},
        headers=headers,
    )
    assert update_resp.status_code == 200
    assert update_resp.json()["name"] == "Meera Iyer-Rao"


def test_customer_cannot_promote_self(register_user, users_client):
    headers = register_user("guest")

    response = users_client.put("/users/guest", json={"role": "manager"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["role"] == "customer"

    other = users_client.get("/users/admin", headers=headers)
    assert other.status_code == 403


def test_admin_promotes_staff(register_user, users_client):
    register_user("reception", RoleEnum.RECEPTIONIST)
    admin = register_user("admin")

    user = users_client.get("/users/reception", headers=admin)
    assert user.status_code == 200
    assert user.json()["role"] == "receptionist"


def test_deleted_user_is_deactivated(register_user, users_client):
    headers = register_user("guest")

    delete_resp = users_client.delete("/users/guest", headers=headers)
    assert delete_resp.status_code == 204

    login = users_client.post(
        "/users/login",
        data={"username": "guest", "password": PASSWORD},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert login.status_code == 401

    admin = register_user("admin")
    user = users_client.get("/users/guest", headers=admin)
    assert user.json()["is_active"] is False


def test_booking_history_visibility(register_user, users_client):
    guest = register_user("guest")
    register_user("other")
    reception = register_user("reception", RoleEnum.RECEPTIONIST)

    assert users_client.get("/users/guest/bookings", headers=guest).json() == []
    assert users_client.get("/users/other/bookings", headers=guest).status_code == 403
    assert users_client.get("/users/guest/bookings", headers=reception).status_code == 200
