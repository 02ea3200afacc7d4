"""
API tests for the FastAPI application.

The datastore is the in-memory fake and notifications are recorded, so
these exercise routing, authentication, error rendering and the JSON shape
of every response.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from api.dependencies import build_services, get_services
from api.main import app
from domain.account import ADMIN_ROLE
from factories import TREK, TREK_DATE, add_account, add_booking, add_slot, add_trek, add_voucher

BOOKING_BODY = {
    "trek_key": TREK,
    "date": TREK_DATE.isoformat(),
    "participants": 4,
    "customer_name": "Asha Rawat",
    "terms_accepted": True,
    "liability_waiver_accepted": True,
    "fitness_consent": True,
}


@pytest.fixture
def client(db, notifier):
    services = build_services(db, notifier)
    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def customer(db, client) -> TestClient:
    client.cookies.set("auth_session", add_account(db, "user-1"))
    return client


@pytest.fixture
def admin(db, client) -> TestClient:
    client.cookies.set("auth_session", add_account(db, "admin-1", email="ops@example.com", role=ADMIN_ROLE))
    return client


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_bookings_require_a_session(client) -> None:
    response = client.get("/api/bookings")

    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated."}


def test_create_booking_and_list_slots(db, customer, notifier) -> None:
    add_trek(db)
    slot_id = add_slot(db, capacity=10)

    response = customer.post("/api/bookings", json=BOOKING_BODY)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending_approval"
    assert body["slot_id"] == slot_id
    assert body["customer_email"] == "asha@example.com"
    assert Decimal(body["total_amount"]) == Decimal("10000")
    assert notifier.events() == ["booking_received"]

    slots = customer.get("/api/slots", params={"trek": TREK}).json()["slots"]
    assert [(s["booked"], s["available"]) for s in slots] == [(4, 6)]

    mine = customer.get("/api/bookings").json()
    assert mine["total_count"] == 1


def test_create_booking_on_full_slot(db, customer) -> None:
    add_trek(db)
    slot_id = add_slot(db, capacity=5, booked=3)
    add_booking(db, slot_id, participants=3)

    response = customer.post("/api/bookings", json=BOOKING_BODY)

    assert response.status_code == 400
    assert response.json() == {"error": "Not enough places left on this date. Requested: 4, Available: 2"}


@pytest.mark.parametrize(
    "changes",
    [
        {"participants": 0},
        {"participants": 21},
        {"participants": "many"},
        {"terms_accepted": False},
        {"date": "not-a-date"},
    ],
)
def test_invalid_booking_requests_are_400(db, customer, changes) -> None:
    add_trek(db)
    add_slot(db)

    response = customer.post("/api/bookings", json={**BOOKING_BODY, **changes})

    assert response.status_code == 400
    assert set(response.json()) == {"error"}
    assert db.rows("bookings") == []


def test_customer_cancels_own_booking(db, customer, notifier) -> None:
    slot_id = add_slot(db, booked=2)
    booking_id = add_booking(db, slot_id, participants=2)

    response = customer.patch(f"/api/bookings/{booking_id}", json={"status": "cancelled"})

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert db.row("trek_slots", slot_id)["booked"] == 0
    assert notifier.events() == ["booking_cancelled"]


def test_customer_cannot_approve(db, customer) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2)

    response = customer.patch(f"/api/bookings/{booking_id}", json={"status": "approved"})

    assert response.status_code == 403


def test_customer_cannot_view_other_bookings(db, customer) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2, user_id="someone-else")

    response = customer.get(f"/api/bookings/{booking_id}")

    assert response.status_code == 403


def test_terminal_transition_is_409(db, admin) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2, status="cancelled")

    response = admin.patch(f"/api/bookings/{booking_id}", json={"status": "approved"})

    assert response.status_code == 409
    assert "cancelled" in response.json()["error"]


def test_admin_routes_reject_customers(customer) -> None:
    response = customer.post("/api/admin/slots/sync", json={"syncAll": True})

    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}


def test_admin_sync_and_audit(db, admin) -> None:
    slot_id = add_slot(db, capacity=10, booked=9)
    add_booking(db, slot_id, participants=4, status="approved")

    audit = admin.get("/api/admin/slots/sync").json()
    assert audit["totalSlots"] == 1
    assert audit["outOfSync"] == 1
    assert audit["slots"][0]["currentBooked"] == 9
    assert audit["slots"][0]["actualBooked"] == 4

    response = admin.post("/api/admin/slots/sync", json={"trekSlug": TREK})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["updatedSlots"] == 1
    assert body["results"][0]["oldBooked"] == 9
    assert body["results"][0]["newBooked"] == 4
    assert admin.get("/api/admin/slots/sync").json()["outOfSync"] == 0


def test_admin_sync_requires_a_scope(admin) -> None:
    response = admin.post("/api/admin/slots/sync", json={})

    assert response.status_code == 400
    assert response.json() == {"error": "Please specify trekSlug, slotId, or set syncAll to true"}


def test_admin_creates_slot(admin) -> None:
    response = admin.post(
        "/api/slots", json={"trek_key": TREK, "date": TREK_DATE.isoformat(), "capacity": 12}
    )

    assert response.status_code == 201
    assert response.json()["booked"] == 0

    duplicate = admin.post(
        "/api/slots", json={"trek_key": TREK, "date": TREK_DATE.isoformat(), "capacity": 8}
    )
    assert duplicate.status_code == 409


def test_validate_voucher(db, client) -> None:
    add_voucher(db, "WINTER20", discount_percent=20, maximum_discount="1500")

    response = client.post("/api/vouchers/validate", json={"code": "winter20", "amount": "10000"})

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert Decimal(body["discount_amount"]) == Decimal("1500")
    assert Decimal(body["final_amount"]) == Decimal("8500")


def test_validate_unknown_voucher(client) -> None:
    response = client.get("/api/vouchers/validate", params={"code": "NOPE"})

    assert response.status_code == 200
    assert response.json()["valid"] is False


def test_admin_sync_unknown_slot_is_404(admin) -> None:
    response = admin.post("/api/admin/slots/sync", json={"slotId": "no-such-slot"})

    assert response.status_code == 404
    assert response.json() == {"error": "Slot not found: no-such-slot"}


def test_admin_sync_datastore_failure_is_500(db, admin) -> None:
    slot_id = add_slot(db, booked=2)
    db.fail("bookings", "select", times=1)

    response = admin.post("/api/admin/slots/sync", json={"slotId": slot_id})

    assert response.status_code == 500
    assert response.json()["success"] is False


def test_update_booking_without_status_is_400(db, admin) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2)

    response = admin.patch(f"/api/bookings/{booking_id}", json={})

    assert response.status_code == 400
    assert response.json() == {"error": "Status is required"}
    assert db.row("bookings", booking_id)["status"] == "pending_approval"


def test_admin_exports_bookings_as_csv(db, admin) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2)
    add_booking(db, add_slot(db, trek="har-ki-dun"), participants=1, trek="har-ki-dun")

    response = admin.get("/api/admin/bookings/export", params={"scope": "trek", "value": TREK})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == "attachment; filename=bookings_trek_kedarkantha.csv"
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Booking ID,Trek,Slot ID")
    assert len(lines) == 2
    assert lines[1].startswith(f"{booking_id},{TREK},{slot_id}")


def test_admin_export_date_range(db, admin) -> None:
    add_booking(db, add_slot(db), participants=2)

    response = admin.get(
        "/api/admin/bookings/export", params={"scope": "date", "from": "2026-12-01", "to": "2026-12-31"}
    )

    assert response.status_code == 200
    assert len(response.text.strip().splitlines()) == 2


@pytest.mark.parametrize(
    "params",
    [
        {"scope": "slot"},
        {"scope": "everything"},
        {"scope": "date", "from": "yesterday"},
    ],
)
def test_admin_export_rejects_bad_queries(admin, params: dict) -> None:
    response = admin.get("/api/admin/bookings/export", params=params)

    assert response.status_code == 400
    assert "error" in response.json()


def test_export_is_admin_only(customer) -> None:
    response = customer.get("/api/admin/bookings/export")

    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}
