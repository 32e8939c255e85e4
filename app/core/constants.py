from enum import Enum


class RoleEnum(str, Enum):
    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"

class UserStatusEnum(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"

class NotificationStatusEnum(str, Enum):
    UNREAD = "unread"
    READ = "read"
    DISMISSED = "dismissed"

class NotificationPriorityEnum(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class NotificationEventEnum(str, Enum):
    USER_REGISTERED = "user_registered"
    PROFILE_COMPLETED = "profile_completed"
    PROFILE_UPDATED = "profile_updated"

    BOOKING_CREATED = "booking_created"
    BOOKING_ASSIGNED = "booking_assigned"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_STARTED = "booking_started"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_STATUS_UPDATED = "booking_status_updated"

    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "payment_refunded"

    PROVIDER_VERIFIED = "provider_verified"
    PROVIDER_SUSPENDED = "provider_suspended"
    PROVIDER_REACTIVATED = "provider_reactivated"

    SERVICE_CREATED = "service_created"
    SERVICE_UPDATED = "service_updated"

    TEAM_CREATED = "team_created"
    TEAM_MEMBER_ADDED = "team_member_added"
    TEAM_MEMBER_REMOVED = "team_member_removed"

    MAINTENANCE_SCHEDULED = "maintenance_scheduled"
    SYSTEM_UPDATE = "system_update"

class BookingStatusEnum(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

# Booking status -> automation event
BOOKING_STATUS_EVENTS = {
    BookingStatusEnum.ASSIGNED.value: NotificationEventEnum.BOOKING_ASSIGNED.value,
    BookingStatusEnum.CONFIRMED.value: NotificationEventEnum.BOOKING_CONFIRMED.value,
    BookingStatusEnum.IN_PROGRESS.value: NotificationEventEnum.BOOKING_STARTED.value,
    BookingStatusEnum.COMPLETED.value: NotificationEventEnum.BOOKING_COMPLETED.value,
    BookingStatusEnum.CANCELLED.value: NotificationEventEnum.BOOKING_CANCELLED.value,
}

# Metadata keys checked, in order, for the related entity of an admin copy
ADMIN_RELATED_ENTITY_KEYS = ("booking_id", "user_id", "service_id", "payment_id")


def booking_event_for_status(status):
    return BOOKING_STATUS_EVENTS.get(status, NotificationEventEnum.BOOKING_STATUS_UPDATED.value)
