"""Route extractors for :func:`app.middleware.notification.trigger_notification`.

Each extractor receives the request, the response and its decoded JSON body,
and returns the event payload for the automation engine, or ``None`` when
the response does not describe the event.
"""
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.responses import Response

from app.core.config import settings

Payload = Optional[Dict[str, Any]]


def request_payload(request: Request) -> Dict[str, Any]:
    """The JSON request body, as captured by ``NotificationRoute``."""
    payload = getattr(request.state, "json_body", None)
    return payload if isinstance(payload, dict) else {}


def caller_id(request: Request) -> Optional[str]:
    return request.headers.get(settings.USER_ID_HEADER) or None


def _entity(body: Any, key: str) -> Optional[Dict[str, Any]]:
    if not isinstance(body, dict):
        return None
    value = body.get(key)
    if value is None and isinstance(body.get("data"), dict):
        value = body["data"].get(key)
    return value if isinstance(value, dict) and value.get("id") else None


def _succeeded(body: Any) -> bool:
    return isinstance(body, dict) and bool(body.get("success"))


def _booking_payload(booking: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "user_id": booking.get("user_id"),
        "provider_id": booking.get("provider_id"),
        "booking_id": booking.get("id"),
        "booking_data": {
            "scheduled_date": booking.get("scheduled_date"),
            "scheduled_time": booking.get("scheduled_time"),
            "service_address": booking.get("service_address"),
            "total_amount": booking.get("total_amount"),
        },
    }


# ==================== BOOKINGS ====================

def booking_created(request: Request, response: Response, body: Any) -> Payload:
    booking = _entity(body, "booking")
    if booking is None:
        return None
    payload = _booking_payload(booking)
    payload.pop("provider_id")
    return payload


def booking_status_updated(request: Request, response: Response, body: Any) -> Payload:
    booking = _entity(body, "booking")
    if booking is None:
        return None
    return {
        **_booking_payload(booking),
        "new_status": request_payload(request).get("status") or booking.get("status"),
        "cancellation_reason": request_payload(request).get("cancellation_reason"),
    }


def booking_assigned(request: Request, response: Response, body: Any) -> Payload:
    booking = _entity(body, "booking")
    return _booking_payload(booking) if booking is not None else None


# ==================== PAYMENTS ====================

def _payment_payload(payment: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "user_id": payment.get("user_id"),
        "payment_id": payment.get("id"),
        "payment_data": {
            "amount": payment.get("amount"),
            "booking_id": payment.get("booking_id"),
            "payment_method": payment.get("payment_method"),
        },
    }


def payment_success(request: Request, response: Response, body: Any) -> Payload:
    payment = _entity(body, "payment")
    if payment is None or payment.get("payment_status") == "failed":
        return None
    return _payment_payload(payment)


def payment_failed(request: Request, response: Response, body: Any) -> Payload:
    payment = _entity(body, "payment")
    if payment is None or payment.get("payment_status") != "failed":
        return None
    return {
        **_payment_payload(payment),
        "failure_reason": payment.get("failure_reason") or body.get("error") or "Payment processing failed",
    }


# ==================== USERS & PROVIDERS ====================

def user_registered(request: Request, response: Response, body: Any) -> Payload:
    user = _entity(body, "user")
    if user is None:
        return None
    return {
        "user_id": user.get("id"),
        "user_email": user.get("email"),
        "user_name": user.get("name") or user.get("first_name"),
    }


def profile_completed(request: Request, response: Response, body: Any) -> Payload:
    if not _succeeded(body):
        return None
    payload = request_payload(request)
    user_id = caller_id(request) or payload.get("user_id")
    if not user_id:
        return None
    profile_type = payload.get("profile_type") or "user"
    return {
        "user_id": user_id,
        "profile_type": profile_type,
        "provider_id": user_id if profile_type == "provider" else None,
    }


def provider_verified(request: Request, response: Response, body: Any) -> Payload:
    payload = request_payload(request)
    if not _succeeded(body) or payload.get("status") != "verified":
        return None
    provider_id = request.path_params.get("user_id") or payload.get("provider_id")
    if not provider_id:
        return None
    return {
        "provider_id": provider_id,
        "verified_by": caller_id(request),
        "verification_notes": payload.get("notes"),
    }


# ==================== SERVICE CATALOG ====================

def service_created(request: Request, response: Response, body: Any) -> Payload:
    service = _entity(body, "service")
    if service is None:
        return None
    return {
        "service_id": service.get("id"),
        "service_data": {"name": service.get("name"), "category_name": service.get("category_name")},
        "created_by": caller_id(request),
    }


def service_updated(request: Request, response: Response, body: Any) -> Payload:
    service = _entity(body, "service")
    if service is None:
        return None
    return {
        "service_id": service.get("id"),
        "service_data": {"name": service.get("name")},
        "updated_by": caller_id(request),
        "changes": list(request_payload(request)),
    }


# ==================== TEAMS ====================

def team_created(request: Request, response: Response, body: Any) -> Payload:
    team = _entity(body, "team")
    if team is None:
        return None
    return {"team_id": team.get("id"), "team_name": team.get("name"), "created_by": caller_id(request)}


def team_member_added(request: Request, response: Response, body: Any) -> Payload:
    if not _succeeded(body):
        return None
    payload = request_payload(request)
    if not payload.get("member_id"):
        return None
    return {
        "team_id": request.path_params.get("team_id"),
        "team_name": payload.get("team_name"),
        "member_id": payload.get("member_id"),
        "added_by": caller_id(request),
    }


def team_member_removed(request: Request, response: Response, body: Any) -> Payload:
    if not _succeeded(body) or not request.path_params.get("member_id"):
        return None
    return {
        "team_id": request.path_params.get("team_id"),
        "team_name": request_payload(request).get("team_name"),
        "member_id": request.path_params.get("member_id"),
        "removed_by": caller_id(request),
    }


# ==================== SYSTEM ====================

def maintenance_scheduled(request: Request, response: Response, body: Any) -> Payload:
    if not _succeeded(body):
        return None
    payload = request_payload(request)
    return {
        "maintenance_date": payload.get("maintenance_date"),
        "maintenance_duration": payload.get("maintenance_duration"),
        "affected_services": payload.get("affected_services") or [],
    }


def system_update(request: Request, response: Response, body: Any) -> Payload:
    if not _succeeded(body):
        return None
    payload = request_payload(request)
    return {
        "update_version": payload.get("update_version"),
        "update_features": payload.get("update_features") or [],
        "update_date": payload.get("update_date"),
    }
