"""Shared pytest fixtures for ESU back office tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from helpers import FakeStore, MockCursor, MockTxnContext  # noqa: E402

TEST_JWT_SECRET = "test-secret-for-esu-backoffice-tests"

_REPOSITORY_FUNCTIONS = {
    "esu.infra.repositories.users_repository": (
        "insert_user",
        "find_user",
        "find_user_credentials",
    ),
    "esu.infra.repositories.hotels_repository": (
        "insert_hotel",
        "find_hotel",
        "list_public_hotels",
        "list_hotels",
        "update_hotel",
        "set_hotel_status",
        "soft_delete_hotel",
        "refresh_rating_summary",
    ),
    "esu.infra.repositories.room_types_repository": (
        "insert_room_type",
        "find_room_type",
        "find_room_type_detail",
        "list_room_types",
        "update_room_type",
        "soft_delete_room_type",
        "take_room",
        "release_room",
    ),
    "esu.infra.repositories.promotions_repository": (
        "insert_promotion",
        "find_promotion",
        "find_promotion_detail",
        "list_promotions",
        "list_active_promotions",
        "update_promotion",
        "soft_delete_promotion",
    ),
    "esu.infra.repositories.bookings_repository": (
        "insert_booking",
        "find_booking",
        "find_booking_detail",
        "list_bookings",
        "set_booking_status",
        "soft_delete_booking",
    ),
    "esu.infra.repositories.ratings_repository": (
        "insert_rating",
        "find_rating",
        "find_user_rating",
        "find_rating_detail",
        "list_ratings",
        "update_rating",
        "soft_delete_rating",
    ),
}

_ROUTE_MODULES = (
    "esu.api.routes.users",
    "esu.api.routes.hotels",
    "esu.api.routes.room_types",
    "esu.api.routes.promotions",
    "esu.api.routes.bookings",
    "esu.api.routes.ratings",
)


@pytest.fixture(autouse=True)
def _jwt_secret(monkeypatch):
    """Every test signs and verifies tokens with the same secret."""
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.delenv("JWT_TTL_SECONDS", raising=False)


@pytest.fixture
def store(monkeypatch):
    """In-memory store wired in place of Postgres for every router."""
    fake = FakeStore()
    for module, names in _REPOSITORY_FUNCTIONS.items():
        for name in names:
            monkeypatch.setattr(f"{module}.{name}", getattr(fake, name))
    for module in _ROUTE_MODULES:
        monkeypatch.setattr(f"{module}.txn", lambda *args, **kwargs: MockTxnContext(MockCursor()))
    monkeypatch.setattr("esu.api.routes.hotels.utc_today", lambda: fake.today)
    return fake


@pytest.fixture
def client(store):
    """TestClient over a fresh app backed by the in-memory store."""
    from esu.api.factory import create_app

    return TestClient(create_app())
