from fastapi import APIRouter, Depends, HTTPException, status

from app.core.constants import NotificationEventEnum
from app.middleware import extractors
from app.middleware.notification import NotificationRoute, attach_notification_stats, trigger_notification
from app.schemas.notification import MaintenanceAnnouncement, SystemUpdateAnnouncement
from app.schemas.response import APIResponse
from app.schemas.user import User
from app.services.user import UserService
from app.utils import deps

router = APIRouter(route_class=NotificationRoute)

@router.post("/maintenance", response_model=APIResponse[MaintenanceAnnouncement])
@trigger_notification(NotificationEventEnum.MAINTENANCE_SCHEDULED, extractors.maintenance_scheduled)
def schedule_maintenance(
    body: MaintenanceAnnouncement,
    admin_id: str = Depends(deps.require_admin)
):
    """Announce a maintenance window to every active user."""
    return APIResponse(message="Maintenance scheduled", data=body)

@router.post("/updates", response_model=APIResponse[SystemUpdateAnnouncement])
@trigger_notification(NotificationEventEnum.SYSTEM_UPDATE, extractors.system_update)
def announce_system_update(
    body: SystemUpdateAnnouncement,
    admin_id: str = Depends(deps.require_admin)
):
    return APIResponse(message="System update announced", data=body)

@router.get("/profile", response_model=APIResponse[User])
@attach_notification_stats
def get_profile(
    user_id: str = Depends(deps.require_current_user_id),
    user_service: UserService = Depends(deps.get_user_service)
):
    user = user_service.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return APIResponse(message="Profile fetched successfully", data=user)
