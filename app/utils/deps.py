from typing import Optional
from fastapi import Depends, HTTPException, Request, status

from app.middleware.extractors import caller_id
from app.schemas.response import ServiceResult
from app.services.notification import NotificationService
from app.services.notification_automation import NotificationAutomation
from app.services.user import UserService


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service

def get_automation(request: Request) -> NotificationAutomation:
    return request.app.state.notification_automation

def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service

def get_current_user_id(request: Request) -> Optional[str]:
    """Caller identity forwarded by the upstream auth layer, if any."""
    return caller_id(request)

def require_current_user_id(user_id: Optional[str] = Depends(get_current_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing caller identity")
    return user_id

def require_admin(
    user_id: str = Depends(require_current_user_id),
    user_service: UserService = Depends(get_user_service)
) -> str:
    if not user_service.is_active_admin(user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user_id

ERROR_STATUS = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "unknown_event": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "persistence_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

def unwrap_result(result: ServiceResult):
    """Return ``result.data`` or raise the HTTP error matching its ``error_code``."""
    if not result.success:
        raise HTTPException(
            status_code=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
            detail=result.error or "Notification operation failed"
        )
    return result.data
