import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.constants import NotificationEventEnum, NotificationPriorityEnum, booking_event_for_status
from app.core.exceptions import NotificationError, PersistenceError, UnknownEventError
from app.schemas.response import ServiceResult
from app.services.admin_notifier import AdminNotifier
from app.services.notification import NotificationService
from app.services.user import UserService

logger = logging.getLogger(__name__)

EventData = Dict[str, Any]
Handler = Callable[[EventData, Dict[str, Any]], ServiceResult]

LOW = NotificationPriorityEnum.LOW.value
MEDIUM = NotificationPriorityEnum.MEDIUM.value
HIGH = NotificationPriorityEnum.HIGH.value
URGENT = NotificationPriorityEnum.URGENT.value


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _combine(*results: ServiceResult) -> ServiceResult:
    """A handler succeeds only when every write it attempted succeeded."""
    failures = [result for result in results if not result.success]
    if failures:
        return ServiceResult.fail(
            "; ".join(result.error or "unknown error" for result in failures),
            failures[0].error_code,
        )
    return ServiceResult.ok({"notifications": len(results)})


class NotificationAutomation:
    """Maps business events to notification rows.

    Handlers are looked up by event name in a table built once at
    construction time. ``trigger_notification`` never raises: an unknown event
    or a failing handler comes back as a failed :class:`ServiceResult`.
    """

    def __init__(self, service: NotificationService, admin_notifier: AdminNotifier, user_service: UserService):
        self.service = service
        self.admin_notifier = admin_notifier
        self.user_service = user_service
        self._handlers: Dict[str, Handler] = {}
        self._register_handlers()

    def _register_handlers(self) -> None:
        events = NotificationEventEnum
        # User registration & profile
        self.register(events.USER_REGISTERED, self.handle_user_registration)
        self.register(events.PROFILE_COMPLETED, self.handle_profile_completion)
        self.register(events.PROFILE_UPDATED, self.handle_profile_update)
        # Bookings
        self.register(events.BOOKING_CREATED, self.handle_booking_created)
        self.register(events.BOOKING_ASSIGNED, self.handle_booking_assigned)
        self.register(events.BOOKING_CONFIRMED, self.handle_booking_confirmed)
        self.register(events.BOOKING_STARTED, self.handle_booking_started)
        self.register(events.BOOKING_COMPLETED, self.handle_booking_completed)
        self.register(events.BOOKING_CANCELLED, self.handle_booking_cancelled)
        self.register(events.BOOKING_STATUS_UPDATED, self.handle_booking_status_updated)
        # Payments
        self.register(events.PAYMENT_SUCCESS, self.handle_payment_success)
        self.register(events.PAYMENT_FAILED, self.handle_payment_failed)
        self.register(events.PAYMENT_REFUNDED, self.handle_payment_refunded)
        # Providers
        self.register(events.PROVIDER_VERIFIED, self.handle_provider_verified)
        self.register(events.PROVIDER_SUSPENDED, self.handle_provider_suspended)
        self.register(events.PROVIDER_REACTIVATED, self.handle_provider_reactivated)
        # Service catalog
        self.register(events.SERVICE_CREATED, self.handle_service_created)
        self.register(events.SERVICE_UPDATED, self.handle_service_updated)
        # Teams
        self.register(events.TEAM_CREATED, self.handle_team_created)
        self.register(events.TEAM_MEMBER_ADDED, self.handle_team_member_added)
        self.register(events.TEAM_MEMBER_REMOVED, self.handle_team_member_removed)
        # System-wide
        self.register(events.MAINTENANCE_SCHEDULED, self.handle_maintenance_scheduled)
        self.register(events.SYSTEM_UPDATE, self.handle_system_update)

    def register(self, event_type: str, handler: Handler) -> None:
        self._handlers[getattr(event_type, "value", event_type)] = handler

    @property
    def event_types(self) -> List[str]:
        return sorted(self._handlers)

    def trigger_notification(
        self,
        event_type: str,
        event_data: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ServiceResult:
        event_type = getattr(event_type, "value", event_type)
        logger.info(f"Triggering notification for event: {event_type}")

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.warning(f"No handler found for event type: {event_type}")
            return ServiceResult.fail(f"No handler for event: {event_type}", UnknownEventError.code)

        try:
            result = handler(dict(event_data or {}), dict(options or {}))
        except Exception as e:
            logger.exception(f"Error triggering notification for {event_type}: {e}")
            return ServiceResult.fail(str(e), NotificationError.code)

        if result.success:
            logger.info(f"Notification triggered successfully for: {event_type}")
        else:
            logger.warning(f"Notification for {event_type} failed: {result.error}")
        return result

    def _notify(self, fields: Mapping[str, Any], options: Mapping[str, Any]) -> ServiceResult:
        return self.service.create_notification({**fields, "sender_id": options.get("sender_id")})

    # ==================== USER EVENTS ====================

    def handle_user_registration(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        user_id = data.get("user_id")
        user_email = data.get("user_email")

        welcome = self._notify({
            "type": "welcome",
            "title": f"Welcome to {self.service.platform_name}!",
            "message": f"Welcome {data.get('user_name') or 'to our platform'}! Your account has been created successfully. Complete your profile to get started.",
            "recipient_id": user_id,
            "priority": MEDIUM,
            "metadata": {
                "event_type": "user_registration",
                "user_email": user_email,
                "registration_date": _now_iso(),
            },
        }, options)

        admins = self.notify_admins({
            "type": "new_user_registration",
            "title": "New User Registration",
            "message": f"A new user has registered: {user_email or user_id}",
            "priority": LOW,
            "metadata": {
                "user_id": user_id,
                "user_email": user_email,
                "registration_date": _now_iso(),
            },
        })
        return _combine(welcome, admins)

    def handle_profile_completion(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        if data.get("profile_type") == "provider":
            return self._notify({
                "type": "profile_completed",
                "title": "Profile Completed Successfully",
                "message": "Your service provider profile has been completed and is under review. You will be notified once verified.",
                "recipient_id": data.get("provider_id") or data.get("user_id"),
                "priority": MEDIUM,
                "metadata": {
                    "event_type": "profile_completion",
                    "profile_type": "provider",
                    "completion_date": _now_iso(),
                },
            }, options)

        return self._notify({
            "type": "profile_completed",
            "title": "Profile Updated",
            "message": "Your profile has been updated successfully.",
            "recipient_id": data.get("user_id"),
            "priority": LOW,
            "metadata": {
                "event_type": "profile_completion",
                "profile_type": "user",
                "completion_date": _now_iso(),
            },
        }, options)

    def handle_profile_update(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        update_type = data.get("update_type") or "profile details"
        return self._notify({
            "type": "profile_updated",
            "title": "Profile Updated",
            "message": f"Your profile has been updated: {update_type}",
            "recipient_id": data.get("user_id"),
            "priority": LOW,
            "metadata": {
                "event_type": "profile_update",
                "update_type": update_type,
                "changes": data.get("changes"),
                "updated_at": _now_iso(),
            },
        }, options)

    # ==================== BOOKING EVENTS ====================

    def _customer_booking(self, data: EventData, event_type: str, options: Dict[str, Any]) -> ServiceResult:
        return self.service.create_booking_notification(
            data.get("user_id"),
            data.get("booking_id"),
            event_type,
            data.get("booking_data") or {},
            sender_id=options.get("sender_id"),
        )

    def _provider_booking(self, data: EventData, options: Dict[str, Any], **fields: Any) -> ServiceResult:
        metadata = {
            "booking_id": data.get("booking_id"),
            "user_id": data.get("user_id"),
            **fields.pop("metadata", {}),
        }
        return self._notify({
            **fields,
            "recipient_id": data.get("provider_id"),
            "related_entity_type": "booking",
            "related_entity_id": data.get("booking_id"),
            "metadata": metadata,
        }, options)

    def handle_booking_created(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        booking = data.get("booking_data") or {}
        customer = self._customer_booking(data, "pending", options)
        admins = self.notify_admins({
            "type": "new_booking",
            "title": "New Booking Request",
            "message": f"A new booking has been created for {booking.get('scheduled_date') or 'N/A'} at {booking.get('scheduled_time') or 'N/A'}",
            "priority": LOW,
            "metadata": {
                "booking_id": data.get("booking_id"),
                "user_id": data.get("user_id"),
                "scheduled_date": booking.get("scheduled_date"),
                "scheduled_time": booking.get("scheduled_time"),
                "total_amount": booking.get("total_amount"),
            },
        })
        return _combine(customer, admins)

    def handle_booking_assigned(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        booking = data.get("booking_data") or {}
        customer = self._customer_booking(data, "assigned", options)
        provider = self._provider_booking(
            data,
            options,
            type="booking_assigned_provider",
            title="New Booking Assignment",
            message=f"You have been assigned a new booking for {booking.get('scheduled_date') or 'N/A'} at {booking.get('scheduled_time') or 'N/A'}",
            priority=HIGH,
            metadata={
                "scheduled_date": booking.get("scheduled_date"),
                "scheduled_time": booking.get("scheduled_time"),
                "service_address": booking.get("service_address"),
                "total_amount": booking.get("total_amount"),
            },
        )
        return _combine(customer, provider)

    def handle_booking_confirmed(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        booking = data.get("booking_data") or {}
        customer = self._customer_booking(data, "confirmed", options)
        provider = self._provider_booking(
            data,
            options,
            type="booking_confirmed_provider",
            title="Booking Confirmed",
            message=f"Your booking for {booking.get('scheduled_date') or 'N/A'} has been confirmed.",
            priority=MEDIUM,
            metadata={
                "scheduled_date": booking.get("scheduled_date"),
                "scheduled_time": booking.get("scheduled_time"),
            },
        )
        return _combine(customer, provider)

    def handle_booking_started(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        booking = data.get("booking_data") or {}
        results = [self._customer_booking(data, "started", options)]
        if data.get("provider_id"):
            results.append(self._provider_booking(
                data,
                options,
                type="service_started_provider",
                title="Service Started",
                message=f"Service has started for booking on {booking.get('scheduled_date') or 'N/A'}",
                priority=MEDIUM,
                metadata={"started_at": _now_iso()},
            ))
        return _combine(*results)

    def handle_booking_completed(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        booking = data.get("booking_data") or {}
        results = [self._customer_booking(data, "completed", options)]
        if data.get("provider_id"):
            results.append(self._provider_booking(
                data,
                options,
                type="service_completed_provider",
                title="Service Completed",
                message=f"Service completed successfully for booking on {booking.get('scheduled_date') or 'N/A'}. Payment will be processed shortly.",
                priority=MEDIUM,
                metadata={"completed_at": _now_iso(), "total_amount": booking.get("total_amount")},
            ))
        return _combine(*results)

    def handle_booking_cancelled(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        booking = data.get("booking_data") or {}
        reason = data.get("cancellation_reason")
        results = [self._customer_booking(data, "cancelled", options)]
        if data.get("provider_id"):
            results.append(self._provider_booking(
                data,
                options,
                type="booking_cancelled_provider",
                title="Booking Cancelled",
                message=f"Booking for {booking.get('scheduled_date') or 'N/A'} has been cancelled. Reason: {reason or 'Not specified'}",
                priority=MEDIUM,
                metadata={"cancellation_reason": reason, "cancelled_at": _now_iso()},
            ))
        return _combine(*results)

    def handle_booking_status_updated(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        new_status = data.get("new_status")
        event_type = booking_event_for_status(new_status)
        if event_type != NotificationEventEnum.BOOKING_STATUS_UPDATED.value:
            return self._handlers[event_type](data, options)

        booking = data.get("booking_data") or {}
        return self._notify({
            "type": "booking_status_updated",
            "title": "Booking Status Updated",
            "message": f"Your booking for {booking.get('scheduled_date') or 'N/A'} is now {new_status or 'updated'}.",
            "recipient_id": data.get("user_id"),
            "priority": LOW,
            "related_entity_type": "booking",
            "related_entity_id": data.get("booking_id"),
            "metadata": {
                "booking_id": data.get("booking_id"),
                "new_status": new_status,
                "scheduled_date": booking.get("scheduled_date"),
            },
        }, options)

    # ==================== PAYMENT EVENTS ====================

    def _customer_payment(self, data: EventData, event_type: str, options: Dict[str, Any]) -> ServiceResult:
        return self.service.create_payment_notification(
            data.get("user_id"),
            data.get("payment_id"),
            event_type,
            data.get("payment_data") or {},
            sender_id=options.get("sender_id"),
        )

    def _amount(self, payment: Mapping[str, Any]) -> str:
        amount = payment.get("amount")
        return f"{self.service.currency_symbol}{'N/A' if amount is None else amount}"

    def handle_payment_success(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        payment = data.get("payment_data") or {}
        customer = self._customer_payment(data, "success", options)
        admins = self.notify_admins({
            "type": "payment_success",
            "title": "Payment Processed Successfully",
            "message": f"Payment of {self._amount(payment)} processed successfully",
            "priority": LOW,
            "metadata": {
                "payment_id": data.get("payment_id"),
                "user_id": data.get("user_id"),
                "amount": payment.get("amount"),
                "booking_id": payment.get("booking_id"),
                "payment_method": payment.get("payment_method"),
            },
        })
        return _combine(customer, admins)

    def handle_payment_failed(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        payment = data.get("payment_data") or {}
        reason = data.get("failure_reason")
        customer = self._customer_payment(data, "failed", options)
        admins = self.notify_admins({
            "type": "payment_failed",
            "title": "Payment Failed",
            "message": f"Payment of {self._amount(payment)} failed. Reason: {reason or 'Unknown'}",
            "priority": MEDIUM,
            "metadata": {
                "payment_id": data.get("payment_id"),
                "user_id": data.get("user_id"),
                "amount": payment.get("amount"),
                "failure_reason": reason,
                "booking_id": payment.get("booking_id"),
            },
        })
        return _combine(customer, admins)

    def handle_payment_refunded(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        return self._customer_payment(data, "refunded", options)

    # ==================== PROVIDER EVENTS ====================

    def handle_provider_verified(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        return self._notify({
            "type": "provider_verified",
            "title": "Profile Verified",
            "message": "Congratulations! Your service provider profile has been verified and approved. You can now start accepting bookings.",
            "recipient_id": data.get("provider_id"),
            "priority": HIGH,
            "metadata": {
                "event_type": "provider_verification",
                "verified_by": data.get("verified_by"),
                "verification_notes": data.get("verification_notes"),
                "verified_at": _now_iso(),
            },
        }, options)

    def handle_provider_suspended(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        reason = data.get("suspension_reason")
        return self._notify({
            "type": "provider_suspended",
            "title": "Account Suspended",
            "message": f"Your account has been suspended. Reason: {reason or 'Policy violation'}. Contact support for more information.",
            "recipient_id": data.get("provider_id"),
            "priority": URGENT,
            "metadata": {
                "event_type": "provider_suspension",
                "suspended_by": data.get("suspended_by"),
                "suspension_reason": reason,
                "suspended_at": _now_iso(),
            },
        }, options)

    def handle_provider_reactivated(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        return self._notify({
            "type": "provider_reactivated",
            "title": "Account Reactivated",
            "message": "Your account has been reactivated. You can now resume accepting bookings.",
            "recipient_id": data.get("provider_id"),
            "priority": HIGH,
            "metadata": {
                "event_type": "provider_reactivation",
                "reactivated_by": data.get("reactivated_by"),
                "reactivated_at": _now_iso(),
            },
        }, options)

    # ==================== SERVICE EVENTS ====================

    def handle_service_created(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        service = data.get("service_data") or {}
        return self.notify_admins({
            "type": "new_service",
            "title": "New Service Created",
            "message": f'A new service "{service.get("name") or "N/A"}" has been created in category "{service.get("category_name") or "N/A"}"',
            "priority": LOW,
            "metadata": {
                "service_id": data.get("service_id"),
                "service_name": service.get("name"),
                "category_name": service.get("category_name"),
                "created_by": data.get("created_by"),
                "created_at": _now_iso(),
            },
        })

    def handle_service_updated(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        service = data.get("service_data") or {}
        return self.notify_admins({
            "type": "service_updated",
            "title": "Service Updated",
            "message": f'Service "{service.get("name") or "N/A"}" has been updated',
            "priority": LOW,
            "metadata": {
                "service_id": data.get("service_id"),
                "service_name": service.get("name"),
                "updated_by": data.get("updated_by"),
                "changes": data.get("changes"),
                "updated_at": _now_iso(),
            },
        })

    # ==================== TEAM EVENTS ====================

    def handle_team_created(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        return self._notify({
            "type": "team_created",
            "title": "Team Created",
            "message": f'Team "{data.get("team_name") or "N/A"}" has been created successfully.',
            "recipient_id": data.get("created_by"),
            "priority": MEDIUM,
            "metadata": {
                "team_id": data.get("team_id"),
                "team_name": data.get("team_name"),
                "created_at": _now_iso(),
            },
        }, options)

    def handle_team_member_added(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        return self._notify({
            "type": "team_member_added",
            "title": "Added to Team",
            "message": f'You have been added to team "{data.get("team_name") or "N/A"}"',
            "recipient_id": data.get("member_id"),
            "priority": MEDIUM,
            "metadata": {
                "team_id": data.get("team_id"),
                "team_name": data.get("team_name"),
                "added_by": data.get("added_by"),
                "added_at": _now_iso(),
            },
        }, options)

    def handle_team_member_removed(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        return self._notify({
            "type": "team_member_removed",
            "title": "Removed from Team",
            "message": f'You have been removed from team "{data.get("team_name") or "N/A"}"',
            "recipient_id": data.get("member_id"),
            "priority": MEDIUM,
            "metadata": {
                "team_id": data.get("team_id"),
                "team_name": data.get("team_name"),
                "removed_by": data.get("removed_by"),
                "removed_at": _now_iso(),
            },
        }, options)

    # ==================== SYSTEM EVENTS ====================

    def handle_maintenance_scheduled(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        date = data.get("maintenance_date") or "N/A"
        duration = data.get("maintenance_duration") or "N/A"
        return self.broadcast_to_active_users({
            "type": "maintenance_scheduled",
            "title": "Scheduled Maintenance",
            "message": f"System maintenance is scheduled for {date} for {duration}. Some services may be temporarily unavailable.",
            "priority": MEDIUM,
            "metadata": {
                "maintenance_date": data.get("maintenance_date"),
                "maintenance_duration": data.get("maintenance_duration"),
                "affected_services": data.get("affected_services") or [],
                "scheduled_at": _now_iso(),
            },
        })

    def handle_system_update(self, data: EventData, options: Dict[str, Any]) -> ServiceResult:
        features = data.get("update_features") or []
        if isinstance(features, str):
            features = [features]
        return self.broadcast_to_active_users({
            "type": "system_update",
            "title": "System Update Available",
            "message": f"Version {data.get('update_version') or 'N/A'} is now available with new features: {', '.join(str(f) for f in features) or 'N/A'}",
            "priority": LOW,
            "metadata": {
                "update_version": data.get("update_version"),
                "update_features": features,
                "update_date": data.get("update_date"),
                "notified_at": _now_iso(),
            },
        })

    # ==================== UTILITY METHODS ====================

    def notify_admins(self, template: Mapping[str, Any]) -> ServiceResult:
        return self.admin_notifier.notify_admins(template)

    def broadcast_to_active_users(self, template: Mapping[str, Any]) -> ServiceResult:
        """Write one copy of ``template`` per active user in a single insert."""
        try:
            user_ids = self.user_service.get_active_user_ids()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching users for {template.get('type')} notification: {e}")
            return ServiceResult.from_error(PersistenceError(f"Error fetching active users: {e}"))

        result = self.service.create_many([{**template, "recipient_id": user_id} for user_id in user_ids])
        if not result.success:
            logger.error(f"Error inserting {template.get('type')} notifications: {result.error}")
            return result

        logger.info(f"Broadcast {template.get('type')} to {len(user_ids)} active user(s)")
        return ServiceResult.ok({"notified": len(user_ids)})

    def get_notification_stats(self, recipient_id: Optional[str] = None) -> ServiceResult:
        return self.service.get_notification_stats(recipient_id, include_recent=False)

    def cleanup_old_notifications(self, days_old: int = 30, status: Optional[str] = None) -> ServiceResult:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)
        result = self.service.purge_older_than(cutoff, status=getattr(status, "value", status))
        if result.success:
            logger.info(f"Cleaned up {result.data['deleted']} notification(s) older than {days_old} days")
        return result
