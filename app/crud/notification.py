from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union
from sqlalchemy.orm import Session, Query

from app.crud.base import CRUDBase
from app.models.notification import Notification
from app.schemas.notification import NotificationCreate, NotificationStateUpdate

class CRUDNotification(CRUDBase[Notification, NotificationCreate, NotificationStateUpdate]):
    """CRUD operations for Notifications."""

    def _to_model_kwargs(self, obj_in: Union[NotificationCreate, Dict[str, Any]]) -> Dict[str, Any]:
        data = super()._to_model_kwargs(obj_in)
        if "metadata" in data:
            data["metadata_"] = data.pop("metadata") or {}
        return data

    def _filtered(
        self,
        db: Session,
        *,
        recipient_id: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Query:
        query = db.query(self.model)
        if recipient_id is not None:
            query = query.filter(self.model.recipient_id == recipient_id)
        if type is not None:
            query = query.filter(self.model.type == type)
        if status is not None:
            query = query.filter(self.model.status == status)
        return query

    def get_page(
        self,
        db: Session,
        *,
        skip: int = 0,
        limit: int = 20,
        recipient_id: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Notification]:
        return (
            self._filtered(db, recipient_id=recipient_id, type=type, status=status)
            .order_by(self.model.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count(
        self,
        db: Session,
        *,
        recipient_id: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> int:
        return self._filtered(db, recipient_id=recipient_id, type=type, status=status).count()

    def get_for_recipient(self, db: Session, *, notification_id: str, recipient_id: Optional[str] = None) -> Optional[Notification]:
        return self._filtered(db, recipient_id=recipient_id).filter(self.model.id == notification_id).first()

    def get_all(self, db: Session, *, recipient_id: Optional[str] = None) -> List[Notification]:
        return self._filtered(db, recipient_id=recipient_id).order_by(self.model.created_at.desc()).all()

    def update_status(
        self,
        db: Session,
        *,
        values: Dict[str, Any],
        from_statuses: Iterable[str],
        notification_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> int:
        """Move matching rows out of ``from_statuses``; returns the number of rows changed."""
        query = self._filtered(db, recipient_id=recipient_id).filter(self.model.status.in_(list(from_statuses)))
        if notification_id is not None:
            query = query.filter(self.model.id == notification_id)
        updated = query.update(values, synchronize_session=False)
        db.commit()
        return updated

    def delete_older_than(self, db: Session, *, cutoff: datetime, status: Optional[str] = None) -> int:
        query = self._filtered(db, status=status).filter(self.model.created_at < cutoff)
        deleted = query.delete(synchronize_session=False)
        db.commit()
        return deleted

notification = CRUDNotification(Notification)
