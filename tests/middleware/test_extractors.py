from typing import Any, Dict, Optional

import pytest
from fastapi import Request
from fastapi.responses import JSONResponse

from app.middleware import extractors
from tests.helpers.asserts import stored_notifications

BOOKING = {
    "id": "booking-1",
    "user_id": "cust-1",
    "provider_id": "prov-1",
    "scheduled_date": "2025-10-23",
    "scheduled_time": "11:00",
    "service_address": "7 Park Street",
    "total_amount": 999,
}


def _request(payload: Optional[Dict[str, Any]] = None, path_params: Optional[Dict[str, str]] = None, user_id: Optional[str] = None) -> Request:
    headers = [(b"x-user-id", user_id.encode())] if user_id else []
    request = Request({
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": headers,
        "path_params": path_params or {},
    })
    request.state.json_body = payload or {}
    return request


# (event type, extractor, request kwargs, response body, expected payload, recipients reached)
CASES = [
    (
        "user_registered", extractors.user_registered,
        {},
        {"success": True, "data": {"user": {"id": "cust-9", "email": "asha@example.com", "name": "Asha"}}},
        {"user_id": "cust-9", "user_email": "asha@example.com", "user_name": "Asha"},
        ["cust-9"],
    ),
    (
        "profile_completed", extractors.profile_completed,
        {"payload": {"profile_type": "provider"}, "user_id": "prov-1"},
        {"success": True},
        {"user_id": "prov-1", "profile_type": "provider", "provider_id": "prov-1"},
        ["prov-1"],
    ),
    (
        "provider_verified", extractors.provider_verified,
        {"payload": {"status": "verified", "notes": "Documents checked"}, "path_params": {"user_id": "prov-1"}, "user_id": "admin-1"},
        {"success": True},
        {"provider_id": "prov-1", "verified_by": "admin-1", "verification_notes": "Documents checked"},
        ["prov-1"],
    ),
    (
        "service_created", extractors.service_created,
        {"user_id": "admin-1"},
        {"success": True, "service": {"id": "svc-1", "name": "Deep Clean", "category_name": "Cleaning"}},
        {"service_id": "svc-1", "service_data": {"name": "Deep Clean", "category_name": "Cleaning"}, "created_by": "admin-1"},
        [],
    ),
    (
        "service_updated", extractors.service_updated,
        {"payload": {"price": 499, "name": "Deep Clean Plus"}, "user_id": "admin-1"},
        {"success": True, "data": {"service": {"id": "svc-1", "name": "Deep Clean Plus"}}},
        {"service_id": "svc-1", "service_data": {"name": "Deep Clean Plus"}, "updated_by": "admin-1", "changes": ["price", "name"]},
        [],
    ),
    (
        "team_created", extractors.team_created,
        {"user_id": "prov-1"},
        {"success": True, "team": {"id": "team-1", "name": "Electricians"}},
        {"team_id": "team-1", "team_name": "Electricians", "created_by": "prov-1"},
        ["prov-1"],
    ),
    (
        "team_member_added", extractors.team_member_added,
        {"payload": {"member_id": "prov-2", "team_name": "Electricians"}, "path_params": {"team_id": "team-1"}, "user_id": "prov-1"},
        {"success": True},
        {"team_id": "team-1", "team_name": "Electricians", "member_id": "prov-2", "added_by": "prov-1"},
        ["prov-2"],
    ),
    (
        "team_member_removed", extractors.team_member_removed,
        {"payload": {"team_name": "Electricians"}, "path_params": {"team_id": "team-1", "member_id": "prov-2"}, "user_id": "prov-1"},
        {"success": True},
        {"team_id": "team-1", "team_name": "Electricians", "member_id": "prov-2", "removed_by": "prov-1"},
        ["prov-2"],
    ),
    (
        "booking_assigned", extractors.booking_assigned,
        {},
        {"success": True, "booking": BOOKING},
        {
            "user_id": "cust-1",
            "provider_id": "prov-1",
            "booking_id": "booking-1",
            "booking_data": {
                "scheduled_date": "2025-10-23",
                "scheduled_time": "11:00",
                "service_address": "7 Park Street",
                "total_amount": 999,
            },
        },
        ["cust-1", "prov-1"],
    ),
]


@pytest.mark.parametrize("event_type,extractor,request_kwargs,body,expected,recipients", CASES, ids=[case[0] for case in CASES])
def test_extractor_builds_event_payload(automation, admins, session_factory, event_type, extractor, request_kwargs, body, expected, recipients):
    data = extractor(_request(**request_kwargs), JSONResponse(body), body)

    assert data == expected

    result = automation.trigger_notification(event_type, data)
    assert result.success, result.error
    admin_ids = {admin.id for admin in admins}
    reached = {row.recipient_id for row in stored_notifications(session_factory)} - admin_ids
    assert reached == set(recipients)


@pytest.mark.parametrize("extractor,request_kwargs,body", [
    (extractors.user_registered, {}, {"success": True, "user": {"email": "asha@example.com"}}),
    (extractors.profile_completed, {"payload": {"profile_type": "user"}}, {"success": True}),
    (extractors.provider_verified, {"payload": {"status": "verified"}}, {"success": True}),
    (extractors.provider_verified, {"payload": {"status": "rejected"}, "path_params": {"user_id": "prov-1"}}, {"success": True}),
    (extractors.service_created, {}, {"success": True, "service": {"name": "Deep Clean"}}),
    (extractors.service_updated, {}, {"success": True}),
    (extractors.team_created, {}, {"success": True, "team": {"name": "Electricians"}}),
    (extractors.team_member_added, {"path_params": {"team_id": "team-1"}}, {"success": True}),
    (extractors.team_member_removed, {"path_params": {"team_id": "team-1"}}, {"success": True}),
    (extractors.team_member_added, {"payload": {"member_id": "prov-2"}}, {"success": False}),
    (extractors.booking_assigned, {}, {"success": True, "booking": {**BOOKING, "id": None}}),
    (extractors.booking_assigned, {}, [BOOKING]),
])
def test_extractor_skips_incomplete_responses(extractor, request_kwargs, body):
    assert extractor(_request(**request_kwargs), JSONResponse(body), body) is None
