import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.constants import NotificationStatusEnum
from app.middleware.notification import NotificationRoute
from app.schemas.notification import (
    Notification, NotificationCleanupRequest, NotificationPage, NotificationStateUpdate,
    NotificationStats, NotificationTriggerRequest, SystemNotificationRequest, UnreadCount
)
from app.schemas.response import APIResponse
from app.services.notification import NotificationService
from app.services.notification_automation import NotificationAutomation
from app.services.user import UserService
from app.utils import deps

logger = logging.getLogger(__name__)

router = APIRouter(route_class=NotificationRoute)


def _actor(body: Optional[NotificationStateUpdate], user_service: UserService) -> Optional[str]:
    """The ``adminUserId`` of the request, if it names an existing user."""
    if body is None or not body.admin_user_id:
        return None
    if not user_service.user_exists(body.admin_user_id):
        logger.warning(f"Ignoring unknown admin user id {body.admin_user_id}")
        return None
    return body.admin_user_id


def _list_page(
    service: NotificationService,
    page: int,
    limit: int,
    recipient_id: Optional[str] = None,
    type: Optional[str] = None,
    status: Optional[NotificationStatusEnum] = None,
) -> NotificationPage:
    return deps.unwrap_result(service.list_notifications(
        page,
        limit,
        recipient_id=recipient_id,
        type=type,
        status=status.value if status else None,
    ))


# ==================== ADMIN DASHBOARD ====================

@router.get("", response_model=APIResponse[NotificationPage])
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.NOTIFICATION_PAGE_SIZE, ge=1, le=100),
    type: Optional[str] = None,
    status: Optional[NotificationStatusEnum] = None,
    recipient_id: Optional[str] = None,
    service: NotificationService = Depends(deps.get_notification_service)
):
    data = _list_page(service, page, limit, recipient_id=recipient_id, type=type, status=status)
    return APIResponse(message="Notifications fetched successfully", data=data)

@router.get("/unread-count", response_model=APIResponse[UnreadCount])
def get_unread_count(
    recipient_id: Optional[str] = None,
    service: NotificationService = Depends(deps.get_notification_service)
):
    count = deps.unwrap_result(service.get_unread_count(recipient_id))
    return APIResponse(data=UnreadCount(unread_count=count))

@router.put("/mark-all-read", response_model=APIResponse[Any])
def mark_all_as_read(
    body: Optional[NotificationStateUpdate] = None,
    service: NotificationService = Depends(deps.get_notification_service),
    user_service: UserService = Depends(deps.get_user_service)
):
    data = deps.unwrap_result(service.mark_all_as_read(actor_id=_actor(body, user_service)))
    return APIResponse(message="All notifications marked as read", data=data)

@router.put("/{notification_id}/read", response_model=APIResponse[Notification])
def mark_as_read(
    notification_id: str,
    body: Optional[NotificationStateUpdate] = None,
    service: NotificationService = Depends(deps.get_notification_service),
    user_service: UserService = Depends(deps.get_user_service)
):
    data = deps.unwrap_result(service.mark_as_read(notification_id, actor_id=_actor(body, user_service)))
    return APIResponse(message="Notification marked as read", data=data)

@router.put("/{notification_id}/dismiss", response_model=APIResponse[Notification])
def dismiss_notification(
    notification_id: str,
    body: Optional[NotificationStateUpdate] = None,
    service: NotificationService = Depends(deps.get_notification_service),
    user_service: UserService = Depends(deps.get_user_service)
):
    data = deps.unwrap_result(service.dismiss_notification(notification_id, actor_id=_actor(body, user_service)))
    return APIResponse(message="Notification dismissed", data=data)


# ==================== RECIPIENT SCOPED ====================

@router.get("/provider/{provider_id}", response_model=APIResponse[NotificationPage])
def list_provider_notifications(
    provider_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.NOTIFICATION_PAGE_SIZE, ge=1, le=100),
    status: Optional[NotificationStatusEnum] = None,
    service: NotificationService = Depends(deps.get_notification_service)
):
    data = _list_page(service, page, limit, recipient_id=provider_id, status=status)
    return APIResponse(message="Provider notifications fetched successfully", data=data)

@router.get("/user/{user_id}", response_model=APIResponse[NotificationPage])
def list_user_notifications(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.NOTIFICATION_PAGE_SIZE, ge=1, le=100),
    status: Optional[NotificationStatusEnum] = None,
    service: NotificationService = Depends(deps.get_notification_service)
):
    data = _list_page(service, page, limit, recipient_id=user_id, status=status)
    return APIResponse(message="User notifications fetched successfully", data=data)

@router.get("/user/{user_id}/unread-count", response_model=APIResponse[UnreadCount])
def get_user_unread_count(
    user_id: str,
    service: NotificationService = Depends(deps.get_notification_service)
):
    count = deps.unwrap_result(service.get_unread_count(user_id))
    return APIResponse(data=UnreadCount(unread_count=count))

@router.put("/user/{user_id}/mark-all-read", response_model=APIResponse[Any])
def mark_all_user_notifications_as_read(
    user_id: str,
    service: NotificationService = Depends(deps.get_notification_service)
):
    data = deps.unwrap_result(service.mark_all_as_read(user_id))
    return APIResponse(message="All notifications marked as read", data=data)

@router.put("/user/{user_id}/{notification_id}/read", response_model=APIResponse[Notification])
def mark_user_notification_as_read(
    user_id: str,
    notification_id: str,
    service: NotificationService = Depends(deps.get_notification_service)
):
    data = deps.unwrap_result(service.mark_as_read(notification_id, user_id))
    return APIResponse(message="Notification marked as read", data=data)

@router.put("/user/{user_id}/{notification_id}/dismiss", response_model=APIResponse[Notification])
def dismiss_user_notification(
    user_id: str,
    notification_id: str,
    service: NotificationService = Depends(deps.get_notification_service)
):
    data = deps.unwrap_result(service.dismiss_notification(notification_id, user_id))
    return APIResponse(message="Notification dismissed", data=data)


# ==================== AUTOMATION ====================

@router.post("/trigger", response_model=APIResponse[Any])
async def trigger_notification(
    body: NotificationTriggerRequest,
    automation: NotificationAutomation = Depends(deps.get_automation)
):
    """Run an automation event synchronously and report its outcome."""
    result = await run_in_threadpool(automation.trigger_notification, body.event_type, body.event_data, body.options)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return APIResponse(message=f"Notification triggered for {body.event_type}", data=result.data)

@router.get("/stats", response_model=APIResponse[NotificationStats])
def get_my_stats(
    user_id: str = Depends(deps.require_current_user_id),
    service: NotificationService = Depends(deps.get_notification_service),
    user_service: UserService = Depends(deps.get_user_service)
):
    recipient_id = None if user_service.is_active_admin(user_id) else user_id
    data = deps.unwrap_result(service.get_notification_stats(recipient_id))
    return APIResponse(data=data)

@router.get("/stats/{user_id}", response_model=APIResponse[NotificationStats])
def get_user_stats(
    user_id: str,
    service: NotificationService = Depends(deps.get_notification_service)
):
    data = deps.unwrap_result(service.get_notification_stats(user_id))
    return APIResponse(data=data)

@router.post("/cleanup", response_model=APIResponse[Any])
def cleanup_notifications(
    body: Optional[NotificationCleanupRequest] = None,
    automation: NotificationAutomation = Depends(deps.get_automation)
):
    body = body or NotificationCleanupRequest()
    status_filter = body.status.value if body.status else None
    data = deps.unwrap_result(automation.cleanup_old_notifications(body.days_old, status_filter))
    return APIResponse(message=f"Cleaned up notifications older than {body.days_old} days", data=data)

@router.post("/system", response_model=APIResponse[Any])
def send_system_notification(
    body: SystemNotificationRequest,
    admin_id: str = Depends(deps.require_admin),
    automation: NotificationAutomation = Depends(deps.get_automation)
):
    template = {**body.model_dump(mode="json"), "sender_id": admin_id}
    data = deps.unwrap_result(automation.broadcast_to_active_users(template))
    return APIResponse(message="System notification sent", data=data)
