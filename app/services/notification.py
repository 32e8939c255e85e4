import logging
import math
from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.constants import NotificationPriorityEnum, NotificationStatusEnum
from app.core.exceptions import NotFoundError, NotificationError, PersistenceError, UnknownEventError, ValidationError
from app.crud.notification import notification as crud_notification
from app.models.notification import Notification as NotificationModel
from app.schemas.notification import (
    Notification, NotificationCreate, NotificationPage, NotificationStats, Pagination
)
from app.schemas.response import ServiceResult

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("type", "title", "message", "recipient_id")

BOOKING_TEMPLATES: Dict[str, Dict[str, str]] = {
    "pending": {
        "type": "booking_pending",
        "title": "Booking Received",
        "message": "Your booking for {scheduled_date} at {scheduled_time} has been received and is awaiting confirmation.",
        "priority": NotificationPriorityEnum.MEDIUM.value,
    },
    "assigned": {
        "type": "booking_assigned",
        "title": "Service Provider Assigned",
        "message": "A service provider has been assigned to your booking scheduled for {scheduled_date} at {scheduled_time}.",
        "priority": NotificationPriorityEnum.MEDIUM.value,
    },
    "confirmed": {
        "type": "booking_confirmed",
        "title": "Booking Confirmed",
        "message": "Your booking scheduled for {scheduled_date} at {scheduled_time} has been confirmed by the service provider.",
        "priority": NotificationPriorityEnum.MEDIUM.value,
    },
    "started": {
        "type": "service_started",
        "title": "Service Started",
        "message": "Your service scheduled for {scheduled_date} has started. The provider is on their way to {service_address}.",
        "priority": NotificationPriorityEnum.MEDIUM.value,
    },
    "completed": {
        "type": "service_completed",
        "title": "Service Completed",
        "message": "Your service on {scheduled_date} has been completed successfully. Please rate your experience.",
        "priority": NotificationPriorityEnum.MEDIUM.value,
    },
    "cancelled": {
        "type": "booking_cancelled",
        "title": "Booking Cancelled",
        "message": "Your booking scheduled for {scheduled_date} has been cancelled.",
        "priority": NotificationPriorityEnum.HIGH.value,
    },
}

PAYMENT_TEMPLATES: Dict[str, Dict[str, str]] = {
    "success": {
        "type": "payment_success",
        "title": "Payment Successful",
        "message": "Your payment of {currency}{amount} has been processed successfully.",
        "priority": NotificationPriorityEnum.MEDIUM.value,
    },
    "failed": {
        "type": "payment_failed",
        "title": "Payment Failed",
        "message": "Your payment of {currency}{amount} could not be processed. Please try again.",
        "priority": NotificationPriorityEnum.HIGH.value,
    },
    "refunded": {
        "type": "payment_refunded",
        "title": "Payment Refunded",
        "message": "Your payment of {currency}{amount} has been refunded to your account.",
        "priority": NotificationPriorityEnum.MEDIUM.value,
    },
}

PROFILE_COMPLETION_MESSAGES = {
    "user": "Your profile has been completed successfully!",
    "provider": "Your service provider profile has been completed and is under review. You will be notified once verified.",
}

VERIFICATION_MESSAGES = {
    "verified": "Congratulations! Your profile has been verified and approved.",
    "rejected": "Your profile verification was not approved. Please review and resubmit.",
    "pending": "Your profile is under review. We will notify you once verification is complete.",
}


class _TemplateValues(dict):
    def __missing__(self, key):
        return "N/A"


def render(template: str, values: Mapping[str, Any]) -> str:
    """Substitute ``{field}`` placeholders; absent or null fields render as ``N/A``."""
    return template.format_map(_TemplateValues({k: v for k, v in values.items() if v is not None}))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_notification(fields: Mapping[str, Any]) -> NotificationCreate:
    missing = [name for name in REQUIRED_FIELDS if fields.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required notification fields: {', '.join(missing)}")
    try:
        return NotificationCreate.model_validate({k: v for k, v in fields.items() if v is not None})
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ValidationError(f"Invalid notification field '{location}': {first['msg']}") from exc


def summarize_notifications(rows: Sequence[NotificationModel], recent_limit: int = 0) -> NotificationStats:
    """Aggregate counts by type, status and priority; ``rows`` must be newest first."""
    by_status = Counter(row.status for row in rows)
    return NotificationStats(
        total=len(rows),
        unread=by_status.get(NotificationStatusEnum.UNREAD.value, 0),
        by_type=dict(Counter(row.type for row in rows)),
        by_status=dict(by_status),
        by_priority=dict(Counter(row.priority for row in rows)),
        recent=[Notification.model_validate(row) for row in rows[:recent_limit]] if recent_limit else None,
    )


class NotificationService:
    """The only write path for notification rows.

    Every public method returns a :class:`ServiceResult` and never raises;
    validation and persistence problems come back as failed results.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        recent_limit: int = 5,
        currency_symbol: str = "₹",
        platform_name: str = "S9 Mini2",
    ):
        self._session_factory = session_factory
        self.recent_limit = recent_limit
        self.currency_symbol = currency_symbol
        self.platform_name = platform_name

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def _execute(self, description: str, operation: Callable[[Session], Any]) -> ServiceResult:
        try:
            with self._session() as db:
                return ServiceResult.ok(operation(db))
        except NotificationError as exc:
            logger.warning(f"Notification {description} rejected: {exc}")
            return ServiceResult.from_error(exc)
        except SQLAlchemyError as exc:
            error = PersistenceError(f"Error {description}: {exc}")
            logger.error(str(error))
            return ServiceResult.from_error(error)
        except Exception as exc:
            logger.exception(f"Unexpected error during notification {description}: {exc}")
            return ServiceResult.fail(f"Unexpected error during notification {description}", NotificationError.code)

    def _rejected(self, error: NotificationError) -> ServiceResult:
        logger.warning(str(error))
        return ServiceResult.from_error(error)

    # ==================== CREATION ====================

    def create_notification(self, fields: Mapping[str, Any]) -> ServiceResult:
        def operation(db: Session) -> Notification:
            notification_in = validate_notification(fields)
            created = Notification.model_validate(crud_notification.create(db, obj_in=notification_in))
            logger.info(f"Notification created successfully: {created.type} for user {created.recipient_id}")
            return created

        return self._execute(
            f"creation ({fields.get('type')} for {fields.get('recipient_id')})", operation
        )

    def create_many(self, rows: Iterable[Mapping[str, Any]]) -> ServiceResult:
        """Validate every row, then insert them all in one transaction."""
        def operation(db: Session) -> Dict[str, int]:
            notifications_in = [validate_notification(row) for row in rows]
            if notifications_in:
                crud_notification.create_many(db, objs_in=notifications_in)
            return {"created": len(notifications_in)}

        return self._execute("batch creation", operation)

    def create_booking_notification(
        self,
        user_id: str,
        booking_id: str,
        event_type: str,
        booking_data: Optional[Mapping[str, Any]] = None,
        *,
        sender_id: Optional[str] = None,
    ) -> ServiceResult:
        template = BOOKING_TEMPLATES.get(event_type)
        if template is None:
            return self._rejected(UnknownEventError(f"Invalid booking event type: {event_type}"))
        if booking_data is not None and not isinstance(booking_data, Mapping):
            return self._rejected(ValidationError(f"booking_data must be a mapping, got {type(booking_data).__name__}"))

        booking_data = booking_data or {}
        return self.create_notification({
            **template,
            "message": render(template["message"], booking_data),
            "recipient_id": user_id,
            "sender_id": sender_id,
            "related_entity_type": "booking",
            "related_entity_id": booking_id,
            "metadata": {
                "booking_id": booking_id,
                "event_type": event_type,
                "scheduled_date": booking_data.get("scheduled_date"),
                "scheduled_time": booking_data.get("scheduled_time"),
                "service_address": booking_data.get("service_address"),
                "total_amount": booking_data.get("total_amount"),
            },
        })

    def create_payment_notification(
        self,
        user_id: str,
        payment_id: str,
        event_type: str,
        payment_data: Optional[Mapping[str, Any]] = None,
        *,
        sender_id: Optional[str] = None,
    ) -> ServiceResult:
        template = PAYMENT_TEMPLATES.get(event_type)
        if template is None:
            return self._rejected(UnknownEventError(f"Invalid payment event type: {event_type}"))
        if payment_data is not None and not isinstance(payment_data, Mapping):
            return self._rejected(ValidationError(f"payment_data must be a mapping, got {type(payment_data).__name__}"))

        payment_data = payment_data or {}
        return self.create_notification({
            **template,
            "message": render(template["message"], {**payment_data, "currency": self.currency_symbol}),
            "recipient_id": user_id,
            "sender_id": sender_id,
            "related_entity_type": "payment",
            "related_entity_id": payment_id,
            "metadata": {
                "payment_id": payment_id,
                "event_type": event_type,
                "amount": payment_data.get("amount"),
                "booking_id": payment_data.get("booking_id"),
                "payment_method": payment_data.get("payment_method"),
            },
        })

    def create_promotional_notification(self, user_id: str, title: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> ServiceResult:
        return self.create_notification({
            "type": "promotion",
            "title": title,
            "message": message,
            "recipient_id": user_id,
            "priority": NotificationPriorityEnum.LOW.value,
            "metadata": metadata or {},
        })

    def create_reminder_notification(self, user_id: str, title: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> ServiceResult:
        return self.create_notification({
            "type": "reminder",
            "title": title,
            "message": message,
            "recipient_id": user_id,
            "priority": NotificationPriorityEnum.MEDIUM.value,
            "metadata": metadata or {},
        })

    def create_system_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        priority: str = NotificationPriorityEnum.MEDIUM.value,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        return self.create_notification({
            "type": "system",
            "title": title,
            "message": message,
            "recipient_id": user_id,
            "priority": priority,
            "metadata": metadata or {},
        })

    def create_welcome_notification(self, user_id: str, user_name: Optional[str] = None) -> ServiceResult:
        user_name = user_name or "there"
        return self.create_notification({
            "type": "welcome",
            "title": f"Welcome to {self.platform_name}!",
            "message": f"Welcome {user_name}! We're excited to have you on board. Complete your profile to get started with our services.",
            "recipient_id": user_id,
            "priority": NotificationPriorityEnum.MEDIUM.value,
            "metadata": {
                "welcome_date": _utcnow().isoformat(),
                "user_name": user_name,
            },
        })

    def create_profile_completion_notification(self, user_id: str, profile_type: str = "user") -> ServiceResult:
        return self.create_notification({
            "type": "profile_completed",
            "title": "Profile Completed",
            "message": PROFILE_COMPLETION_MESSAGES.get(profile_type, PROFILE_COMPLETION_MESSAGES["user"]),
            "recipient_id": user_id,
            "priority": NotificationPriorityEnum.MEDIUM.value,
            "metadata": {
                "profile_type": profile_type,
                "completion_date": _utcnow().isoformat(),
            },
        })

    def create_verification_notification(self, user_id: str, status: str, notes: str = "") -> ServiceResult:
        return self.create_notification({
            "type": "verification_status",
            "title": "Verification Status Update",
            "message": VERIFICATION_MESSAGES.get(status, "Your verification status has been updated."),
            "recipient_id": user_id,
            "priority": NotificationPriorityEnum.HIGH.value if status == "verified" else NotificationPriorityEnum.MEDIUM.value,
            "metadata": {
                "verification_status": status,
                "verification_notes": notes,
                "updated_at": _utcnow().isoformat(),
            },
        })

    # ==================== STATE TRANSITIONS ====================

    def _transition(
        self,
        notification_id: str,
        recipient_id: Optional[str],
        *,
        to_status: NotificationStatusEnum,
        from_statuses: Sequence[NotificationStatusEnum],
        timestamp_field: str,
        actor_id: Optional[str],
    ) -> ServiceResult:
        def operation(db: Session) -> Notification:
            values: Dict[str, Any] = {"status": to_status.value, timestamp_field: _utcnow()}
            if actor_id:
                values["admin_user_id"] = actor_id
            crud_notification.update_status(
                db,
                values=values,
                from_statuses=[status.value for status in from_statuses],
                notification_id=notification_id,
                recipient_id=recipient_id,
            )
            # A row already past ``from_statuses`` is left untouched: the call is a no-op success.
            db_obj = crud_notification.get_for_recipient(db, notification_id=notification_id, recipient_id=recipient_id)
            if db_obj is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            return Notification.model_validate(db_obj)

        return self._execute(f"transition to {to_status.value} ({notification_id})", operation)

    def mark_as_read(self, notification_id: str, recipient_id: Optional[str] = None, *, actor_id: Optional[str] = None) -> ServiceResult:
        return self._transition(
            notification_id,
            recipient_id,
            to_status=NotificationStatusEnum.READ,
            from_statuses=(NotificationStatusEnum.UNREAD,),
            timestamp_field="read_at",
            actor_id=actor_id,
        )

    def dismiss_notification(self, notification_id: str, recipient_id: Optional[str] = None, *, actor_id: Optional[str] = None) -> ServiceResult:
        return self._transition(
            notification_id,
            recipient_id,
            to_status=NotificationStatusEnum.DISMISSED,
            from_statuses=(NotificationStatusEnum.UNREAD, NotificationStatusEnum.READ),
            timestamp_field="dismissed_at",
            actor_id=actor_id,
        )

    def mark_all_as_read(self, recipient_id: Optional[str] = None, *, actor_id: Optional[str] = None) -> ServiceResult:
        def operation(db: Session) -> Dict[str, int]:
            values: Dict[str, Any] = {"status": NotificationStatusEnum.READ.value, "read_at": _utcnow()}
            if actor_id:
                values["admin_user_id"] = actor_id
            updated = crud_notification.update_status(
                db,
                values=values,
                from_statuses=[NotificationStatusEnum.UNREAD.value],
                recipient_id=recipient_id,
            )
            return {"updated": updated}

        return self._execute("marking all as read", operation)

    # ==================== QUERIES ====================

    def get_notification_stats(self, recipient_id: Optional[str] = None, *, include_recent: bool = True) -> ServiceResult:
        def operation(db: Session) -> NotificationStats:
            rows = crud_notification.get_all(db, recipient_id=recipient_id)
            return summarize_notifications(rows, recent_limit=self.recent_limit if include_recent else 0)

        return self._execute("stats lookup", operation)

    def list_notifications(
        self,
        page: int = 1,
        limit: int = 20,
        *,
        recipient_id: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> ServiceResult:
        def operation(db: Session) -> NotificationPage:
            filters = {"recipient_id": recipient_id, "type": type, "status": status}
            rows = crud_notification.get_page(db, skip=(page - 1) * limit, limit=limit, **filters)
            total = crud_notification.count(db, **filters)
            return NotificationPage(
                notifications=[Notification.model_validate(row) for row in rows],
                pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if limit else 0),
            )

        return self._execute("listing", operation)

    def get_unread_count(self, recipient_id: Optional[str] = None) -> ServiceResult:
        def operation(db: Session) -> int:
            return crud_notification.count(db, recipient_id=recipient_id, status=NotificationStatusEnum.UNREAD.value)

        return self._execute("unread count", operation)

    # ==================== RETENTION ====================

    def purge_older_than(self, cutoff: datetime, *, status: Optional[str] = None) -> ServiceResult:
        def operation(db: Session) -> Dict[str, int]:
            return {"deleted": crud_notification.delete_older_than(db, cutoff=cutoff, status=status)}

        return self._execute("cleanup", operation)
