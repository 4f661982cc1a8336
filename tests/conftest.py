import os
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("METRICS_ENABLED", "false")

from hotelops.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from hotelops.database import Base, SessionLocal, engine  # noqa: E402
from hotelops.models import RoleEnum  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.integrations.app import app as integrations_app  # noqa: E402
from services.reports.app import app as reports_app  # noqa: E402
from services.restaurant.app import app as restaurant_app  # noqa: E402
from services.rooms.app import app as rooms_app  # noqa: E402
from services.rooms.app import room_status_cache  # noqa: E402
from services.users.app import app as users_app  # noqa: E402

PASSWORD = "Passw0rd!"


def auth_header(users_client: TestClient, username: str, password: str = PASSWORD) -> dict[str, str]:
    response = users_client.post(
        "/users/login",
        data={"username": username, "password": password},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    room_status_cache.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def users_client() -> Generator[TestClient, None, None]:
    with TestClient(users_app) as client:
        yield client


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client


@pytest.fixture()
def restaurant_client() -> Generator[TestClient, None, None]:
    with TestClient(restaurant_app) as client:
        yield client


@pytest.fixture()
def reports_client() -> Generator[TestClient, None, None]:
    with TestClient(reports_app) as client:
        yield client


@pytest.fixture()
def integrations_client() -> Generator[TestClient, None, None]:
    with TestClient(integrations_app) as client:
        yield client


@pytest.fixture()
def register_user(users_client) -> Callable[..., dict[str, str]]:
    """Register an account and return its auth headers.

    The first call bootstraps the ``admin`` account; staff roles are granted
    by that admin after a plain customer registration.
    """

    admin_headers: dict[str, str] = {}

    def _register(username: str, role: RoleEnum = RoleEnum.CUSTOMER, phone: Optional[str] = None) -> dict[str, str]:
        if not admin_headers:
            response = users_client.post(
                "/users/register",
                json={
                    "name": "Admin",
                    "username": "admin",
                    "email": "admin@example.com",
                    "password": PASSWORD,
                    "role": RoleEnum.ADMIN.value,
                },
            )
            assert response.status_code == 201
            admin_headers.update(auth_header(users_client, "admin"))
        if username == "admin":
            return dict(admin_headers)

        response = users_client.post(
            "/users/register",
            json={
                "name": username.title(),
                "username": username,
                "email": f"{username}@example.com",
                "password": PASSWORD,
                "phone": phone,
            },
        )
        assert response.status_code == 201
        if role != RoleEnum.CUSTOMER:
            promoted = users_client.put(f"/users/{username}", json={"role": role.value}, headers=admin_headers)
            assert promoted.status_code == 200
        return auth_header(users_client, username)

    return _register


@pytest.fixture()
def hotel(register_user, rooms_client) -> dict:
    """A manager, one Deluxe room type with rooms 101 and 102, and their ids."""

    manager = register_user("manager", RoleEnum.MANAGER)
    room_type = rooms_client.post(
        "/room-types",
        json={"name": "Deluxe Room", "base_price": 3500.0, "max_occupancy": 3, "amenities": ["AC", "WiFi"]},
        headers=manager,
    )
    assert room_type.status_code == 201
    room_type_id = room_type.json()["id"]
    room_ids = []
    for number in ("101", "102"):
        room = rooms_client.post(
            "/rooms",
            json={"room_number": number, "floor": 1, "room_type_id": room_type_id},
            headers=manager,
        )
        assert room.status_code == 201
        room_ids.append(room.json()["id"])
    return {"manager": manager, "room_type_id": room_type_id, "room_ids": room_ids}
