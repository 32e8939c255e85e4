from datetime import datetime, timedelta, timezone

import pytest
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

import main
from app.middleware import extractors
from app.middleware.notification import (
    NotificationRoute, attach_notification_stats, cleanup_notifications, trigger_notification
)
from app.models.notification import Notification as NotificationModel
from tests.helpers.asserts import api_call, caller, stored_notifications

BOOKING = {
    "id": "booking-1",
    "user_id": "cust-1",
    "provider_id": "prov-1",
    "scheduled_date": "2025-10-23",
    "scheduled_time": "11:00",
    "service_address": "7 Park Street",
    "total_amount": 999,
}


def _exploding_extractor(request, response, body):
    raise KeyError("booking")


def build_router() -> APIRouter:
    router = APIRouter(route_class=NotificationRoute)

    @router.post("/bookings", status_code=201)
    @trigger_notification("booking_created", extractors.booking_created)
    def create_booking():
        return {"success": True, "booking": BOOKING}

    @router.post("/bookings/rejected")
    @trigger_notification("booking_created", extractors.booking_created)
    def reject_booking():
        return JSONResponse(status_code=409, content={"success": False, "booking": BOOKING})

    @router.put("/bookings/{booking_id}/status")
    @trigger_notification("booking_status_updated", extractors.booking_status_updated)
    async def update_booking_status(booking_id: str, request: Request):
        payload = await request.json()
        return {"success": True, "booking": {**BOOKING, "status": payload["status"]}}

    @router.post("/payments/confirm")
    @trigger_notification("payment_success", extractors.payment_success)
    @trigger_notification("payment_failed", extractors.payment_failed)
    async def confirm_payment(request: Request):
        payload = await request.json()
        return {"success": True, "payment": {"id": "pay-1", "user_id": "cust-1", "amount": 750, **payload}}

    @router.post("/bookings/broken")
    @trigger_notification("booking_created", _exploding_extractor)
    def broken_booking():
        return {"success": True}

    @router.post("/bookings/empty")
    @trigger_notification("booking_created", extractors.booking_created)
    def empty_booking():
        return {"success": True, "message": "nothing booked"}

    @router.get("/me")
    @attach_notification_stats
    def me(request: Request):
        return {"success": True, "id": extractors.caller_id(request)}

    @router.get("/feed")
    @attach_notification_stats
    def feed():
        return [1, 2, 3]

    return router


@pytest.fixture
def app(session_factory):
    app = main.create_app(session_factory=session_factory)
    app.include_router(build_router(), prefix="/test")
    return app


def test_booking_created_fires_after_success(client, drain, admins, session_factory):
    response = api_call(client, "POST", "/test/bookings")
    drain()

    assert response.status_code == 201
    assert response.json()["booking"]["id"] == "booking-1"
    customer_row, = stored_notifications(session_factory, "cust-1")
    assert customer_row.type == "booking_pending"
    assert "2025-10-23" in customer_row.message
    assert len(stored_notifications(session_factory, type="new_booking")) == len(admins)


def test_non_2xx_response_never_triggers(client, drain, session_factory):
    response = client.post("/test/bookings/rejected")
    drain()

    assert response.status_code == 409
    assert stored_notifications(session_factory) == []


def test_extractor_returning_none_suppresses_event(client, drain, session_factory):
    response = api_call(client, "POST", "/test/bookings/empty")
    drain()

    assert response.json()["message"] == "nothing booked"
    assert stored_notifications(session_factory) == []


def test_extractor_error_does_not_reach_client(client, drain, session_factory):
    response = api_call(client, "POST", "/test/bookings/broken")
    drain()

    assert response.json() == {"success": True}
    assert stored_notifications(session_factory) == []


def test_response_is_unchanged_when_dispatcher_is_stopped(client, session_factory):
    client.portal.call(client.app.state.notification_dispatcher.stop)

    response = api_call(client, "POST", "/test/bookings")

    assert response.json()["booking"] == BOOKING
    assert stored_notifications(session_factory) == []


def test_status_update_reads_request_body(client, drain, session_factory):
    api_call(client, "PUT", "/test/bookings/booking-1/status", json={"status": "in_progress"})
    drain()

    customer_row, = stored_notifications(session_factory, "cust-1")
    provider_row, = stored_notifications(session_factory, "prov-1")
    assert customer_row.type == "service_started"
    assert provider_row.type == "service_started_provider"


@pytest.mark.parametrize("payment_status,expected_type", [
    ("succeeded", "payment_success"),
    ("failed", "payment_failed"),
])
def test_payment_route_fires_matching_event(client, drain, session_factory, payment_status, expected_type):
    api_call(client, "POST", "/test/payments/confirm", json={"payment_status": payment_status, "failure_reason": "card_declined"})
    drain()

    row, = stored_notifications(session_factory, "cust-1")
    assert row.type == expected_type
    assert "750" in row.message


def test_notification_stats_are_added_for_identified_caller(client, notification_service):
    notification_service.create_reminder_notification("cust-1", "Reminder", "Tomorrow")
    notification_service.create_promotional_notification("cust-1", "Offer", "Half price")

    body = api_call(client, "GET", "/test/me", headers=caller("cust-1")).json()

    assert body["id"] == "cust-1"
    stats = body["notification_stats"]
    assert stats["total"] == 2
    assert stats["unread"] == 2
    assert stats["by_type"] == {"reminder": 1, "promotion": 1}


def test_notification_stats_skipped_without_caller(client):
    body = api_call(client, "GET", "/test/me").json()

    assert "notification_stats" not in body


def test_notification_stats_skip_non_object_bodies(client):
    response = api_call(client, "GET", "/test/feed", headers=caller("cust-1"))

    assert response.json() == [1, 2, 3]


def _seed_old_notifications(db_session):
    old = datetime.now(timezone.utc) - timedelta(days=40)
    for status in ("read", "unread"):
        db_session.add(NotificationModel(type="reminder", title="Old", message="Old", recipient_id="u1", status=status, created_at=old))
    db_session.commit()


def _cleanup_app(automation, rng) -> FastAPI:
    app = FastAPI(middleware=[cleanup_notifications(days_old=30, status="read", probability=0.5, rng=rng)])
    app.state.notification_automation = automation

    @app.get("/ping")
    def ping():
        return {"pong": True}

    return app


def test_cleanup_middleware_runs_when_sampled(automation, db_session, session_factory):
    _seed_old_notifications(db_session)

    with TestClient(_cleanup_app(automation, rng=lambda: 0.1)) as client:
        assert client.get("/ping").json() == {"pong": True}

    assert [row.status for row in stored_notifications(session_factory)] == ["unread"]


def test_cleanup_middleware_skips_when_not_sampled(automation, db_session, session_factory):
    _seed_old_notifications(db_session)

    with TestClient(_cleanup_app(automation, rng=lambda: 0.9)) as client:
        client.get("/ping")

    assert len(stored_notifications(session_factory)) == 2
