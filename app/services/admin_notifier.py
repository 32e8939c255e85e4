import logging
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.constants import ADMIN_RELATED_ENTITY_KEYS
from app.core.exceptions import PersistenceError
from app.schemas.response import ServiceResult
from app.services.notification import NotificationService
from app.services.user import UserService

logger = logging.getLogger(__name__)


def related_entity_id(metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
    for key in ADMIN_RELATED_ENTITY_KEYS:
        value = (metadata or {}).get(key)
        if value:
            return str(value)
    return None


class AdminNotifier:
    """Copies one notification template to every active admin."""

    def __init__(self, user_service: UserService, notification_service: NotificationService):
        self.user_service = user_service
        self.notification_service = notification_service

    def build_admin_rows(self, template: Mapping[str, Any], admin_ids) -> list:
        entity_id = related_entity_id(template.get("metadata"))
        return [
            {
                **template,
                "recipient_id": admin_id,
                "sender_id": None,
                "related_entity_type": template.get("type"),
                "related_entity_id": entity_id,
            }
            for admin_id in admin_ids
        ]

    def notify_admins(self, template: Mapping[str, Any]) -> ServiceResult:
        try:
            admin_ids = self.user_service.get_active_admin_ids()
        except SQLAlchemyError as e:
            logger.error(f"Error fetching admins for {template.get('type')}: {e}")
            return ServiceResult.from_error(PersistenceError(f"Error fetching admins: {e}"))

        if not admin_ids:
            logger.info(f"No admin users found to notify about: {template.get('type')}")
            return ServiceResult.ok({"notified": 0})

        result = self.notification_service.create_many(self.build_admin_rows(template, admin_ids))
        if not result.success:
            logger.error(f"Error notifying admins about {template.get('type')}: {result.error}")
            return result

        logger.info(f"Notified {len(admin_ids)} admin(s) about: {template.get('type')}")
        data: Dict[str, int] = {"notified": len(admin_ids)}
        return ServiceResult.ok(data)
