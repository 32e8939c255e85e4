from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.constants import NotificationStatusEnum, NotificationPriorityEnum

class NotificationBase(BaseModel):
    """Base schema for a notification."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    type: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    priority: NotificationPriorityEnum = NotificationPriorityEnum.MEDIUM
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata_", "metadata"),
    )
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None

class NotificationCreate(NotificationBase):
    """Schema for creating a notification."""
    recipient_id: str = Field(..., min_length=1)
    sender_id: Optional[str] = None
    status: NotificationStatusEnum = NotificationStatusEnum.UNREAD

class Notification(NotificationBase):
    """Schema for reading a notification as stored."""
    id: str
    recipient_id: str
    sender_id: Optional[str] = None
    status: NotificationStatusEnum
    admin_user_id: Optional[str] = None
    created_at: datetime
    read_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class NotificationPage(BaseModel):
    notifications: List[Notification]
    pagination: Pagination

class UnreadCount(BaseModel):
    unread_count: int

class NotificationStats(BaseModel):
    total: int
    unread: int
    by_type: Dict[str, int]
    by_status: Dict[str, int]
    by_priority: Dict[str, int]
    recent: Optional[List[Notification]] = None

class NotificationStateUpdate(BaseModel):
    """Optional body of the read / dismiss / mark-all-read endpoints."""
    admin_user_id: Optional[str] = Field(None, validation_alias=AliasChoices("adminUserId", "admin_user_id"))

class NotificationTriggerRequest(BaseModel):
    event_type: str = Field(..., validation_alias=AliasChoices("event_type", "eventType"))
    event_data: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("event_data", "eventData"))
    options: Dict[str, Any] = Field(default_factory=dict)

class NotificationCleanupRequest(BaseModel):
    days_old: int = Field(30, ge=0, validation_alias=AliasChoices("days_old", "daysOld"))
    status: Optional[NotificationStatusEnum] = NotificationStatusEnum.READ

class SystemNotificationRequest(BaseModel):
    type: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    priority: NotificationPriorityEnum = NotificationPriorityEnum.MEDIUM
    metadata: Dict[str, Any] = Field(default_factory=dict)

class MaintenanceAnnouncement(BaseModel):
    maintenance_date: str
    maintenance_duration: str
    affected_services: List[str] = Field(default_factory=list)

class SystemUpdateAnnouncement(BaseModel):
    update_version: str
    update_features: List[str] = Field(default_factory=list)
    update_date: Optional[str] = None
