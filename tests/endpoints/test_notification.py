from fastapi.testclient import TestClient

from tests.helpers.asserts import api_call, caller, stored_notifications


def _seed(notification_service, recipient_id="cust-1", count=3):
    return [
        notification_service.create_reminder_notification(recipient_id, f"Reminder {i}", "Your service is tomorrow").data
        for i in range(count)
    ]


def test_health(client: TestClient):
    body = api_call(client, "GET", "/health").json()
    assert body["status"] == "ok"


def test_list_notifications_with_filters(client: TestClient, notification_service):
    _seed(notification_service, "cust-1", 3)
    _seed(notification_service, "cust-2", 2)

    body = api_call(client, "GET", "/notifications?recipient_id=cust-1&limit=2").json()

    assert body["success"] is True
    assert len(body["data"]["notifications"]) == 2
    assert body["data"]["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    by_type = api_call(client, "GET", "/notifications?type=welcome").json()
    assert by_type["data"]["pagination"]["total"] == 0


def test_invalid_query_uses_error_envelope(client: TestClient):
    response = client.get("/notifications?page=0")

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["request_id"] == response.headers["X-Request-ID"]


def test_unread_count(client: TestClient, notification_service):
    _seed(notification_service, "cust-1", 2)

    assert api_call(client, "GET", "/notifications/unread-count").json()["data"] == {"unread_count": 2}
    assert api_call(client, "GET", "/notifications/user/cust-1/unread-count").json()["data"] == {"unread_count": 2}
    assert api_call(client, "GET", "/notifications/user/nobody/unread-count").json()["data"] == {"unread_count": 0}


def test_admin_read_stamps_existing_actor(client: TestClient, notification_service, admins):
    first, second = _seed(notification_service, count=2)

    stamped = api_call(client, "PUT", f"/notifications/{first.id}/read", json={"adminUserId": admins[0].id}).json()
    unknown = api_call(client, "PUT", f"/notifications/{second.id}/read", json={"adminUserId": "ghost"}).json()

    assert stamped["data"]["status"] == "read"
    assert stamped["data"]["admin_user_id"] == admins[0].id
    assert unknown["data"]["status"] == "read"
    assert unknown["data"]["admin_user_id"] is None


def test_admin_dismiss_and_mark_all(client: TestClient, notification_service):
    first, _, _ = _seed(notification_service, count=3)

    dismissed = api_call(client, "PUT", f"/notifications/{first.id}/dismiss").json()
    marked = api_call(client, "PUT", "/notifications/mark-all-read").json()

    assert dismissed["data"]["status"] == "dismissed"
    assert marked["data"] == {"updated": 2}


def test_missing_notification_is_404(client: TestClient):
    response = client.put("/notifications/does-not-exist/read")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_recipient_scoped_routes(client: TestClient, notification_service):
    mine = _seed(notification_service, "cust-1", 2)
    theirs = _seed(notification_service, "cust-2", 1)

    listed = api_call(client, "GET", "/notifications/user/cust-1").json()
    assert {n["id"] for n in listed["data"]["notifications"]} == {n.id for n in mine}

    read = api_call(client, "PUT", f"/notifications/user/cust-1/{mine[0].id}/read").json()
    assert read["data"]["status"] == "read"

    foreign = client.put(f"/notifications/user/cust-1/{theirs[0].id}/dismiss")
    assert foreign.status_code == 404

    dismissed = api_call(client, "PUT", f"/notifications/user/cust-1/{mine[1].id}/dismiss").json()
    assert dismissed["data"]["status"] == "dismissed"

    assert api_call(client, "PUT", "/notifications/user/cust-2/mark-all-read").json()["data"] == {"updated": 1}


def test_provider_notifications(client: TestClient, notification_service):
    _seed(notification_service, "prov-1", 1)

    body = api_call(client, "GET", "/notifications/provider/prov-1").json()

    assert body["data"]["pagination"]["total"] == 1
    assert body["data"]["notifications"][0]["recipient_id"] == "prov-1"


def test_manual_trigger(client: TestClient, session_factory):
    response = api_call(client, "POST", "/notifications/trigger", json={
        "eventType": "team_member_added",
        "eventData": {"team_id": "t1", "team_name": "Electricians", "member_id": "m1"},
    })

    assert response.json()["success"] is True
    row, = stored_notifications(session_factory, "m1")
    assert row.type == "team_member_added"


def test_manual_trigger_unknown_event(client: TestClient):
    response = client.post("/notifications/trigger", json={"event_type": "nope", "event_data": {}})

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "No handler for event: nope"


def test_stats_endpoints(client: TestClient, notification_service, user_factory, admins):
    customer = user_factory()
    _seed(notification_service, customer.id, 2)
    _seed(notification_service, "someone-else", 1)

    mine = api_call(client, "GET", "/notifications/stats", headers=caller(customer.id)).json()["data"]
    everything = api_call(client, "GET", "/notifications/stats", headers=caller(admins[0].id)).json()["data"]
    theirs = api_call(client, "GET", "/notifications/stats/someone-else").json()["data"]

    assert mine["total"] == 2
    assert len(mine["recent"]) == 2
    assert everything["total"] == 3
    assert theirs["total"] == 1
    assert client.get("/notifications/stats").status_code == 401


def test_cleanup_endpoint(client: TestClient):
    body = api_call(client, "POST", "/notifications/cleanup", json={"days_old": 30, "status": "read"}).json()

    assert body["data"] == {"deleted": 0}


def test_system_notification_requires_admin(client: TestClient, user_factory, admins, session_factory):
    customer = user_factory()
    payload = {"type": "system", "title": "Downtime", "message": "Back soon", "priority": "high"}

    forbidden = client.post("/notifications/system", json=payload, headers=caller(customer.id))
    assert forbidden.status_code == 403
    assert stored_notifications(session_factory) == []

    sent = api_call(client, "POST", "/notifications/system", json=payload, headers=caller(admins[0].id)).json()
    assert sent["data"] == {"notified": 3}
    rows = stored_notifications(session_factory, type="system")
    assert len(rows) == 3
    assert all(row.sender_id == admins[0].id and row.priority == "high" for row in rows)
