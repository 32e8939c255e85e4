from fastapi.testclient import TestClient

from tests.helpers.asserts import api_call, caller, stored_notifications


def test_maintenance_announcement_reaches_active_users(client: TestClient, drain, user_factory, admins, session_factory):
    customers = [user_factory(), user_factory("provider")]
    user_factory(status="suspended")

    response = api_call(client, "POST", "/system/maintenance", headers=caller(admins[0].id), json={
        "maintenance_date": "2025-12-01",
        "maintenance_duration": "3 hours",
        "affected_services": ["payments"],
    })
    drain()

    assert response.json()["data"]["maintenance_date"] == "2025-12-01"
    rows = stored_notifications(session_factory, type="maintenance_scheduled")
    assert sorted(row.recipient_id for row in rows) == sorted([u.id for u in customers] + [a.id for a in admins])
    assert all(row.metadata["affected_services"] == ["payments"] for row in rows)


def test_system_update_announcement(client: TestClient, drain, admins, session_factory):
    api_call(client, "POST", "/system/updates", headers=caller(admins[0].id), json={
        "update_version": "3.0",
        "update_features": ["Live tracking"],
    })
    drain()

    rows = stored_notifications(session_factory, type="system_update")
    assert len(rows) == len(admins)
    assert all("Live tracking" in row.message for row in rows)


def test_announcements_require_admin(client: TestClient, drain, user_factory, session_factory):
    customer = user_factory()

    response = client.post("/system/maintenance", headers=caller(customer.id), json={
        "maintenance_date": "2025-12-01",
        "maintenance_duration": "3 hours",
    })
    drain()

    assert response.status_code == 403
    assert stored_notifications(session_factory) == []


def test_profile_includes_notification_stats(client: TestClient, notification_service, user_factory):
    customer = user_factory(name="Meera")
    notification_service.create_welcome_notification(customer.id, "Meera")

    body = api_call(client, "GET", "/system/profile", headers=caller(customer.id)).json()

    assert body["data"]["name"] == "Meera"
    assert body["notification_stats"]["total"] == 1
    assert body["notification_stats"]["by_type"] == {"welcome": 1}


def test_profile_for_unknown_caller(client: TestClient):
    assert client.get("/system/profile", headers=caller("ghost")).status_code == 404
    assert client.get("/system/profile").status_code == 401
