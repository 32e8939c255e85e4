from contextlib import contextmanager
from typing import Iterator, List, Optional
from sqlalchemy.orm import Session, sessionmaker

from app.core.constants import RoleEnum, UserStatusEnum
from app.crud.user import user as crud_user
from app.schemas.user import User as UserSchema


class UserService:
    """Read-only view of the users table used by the notification core."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def get_user(self, user_id: str) -> Optional[UserSchema]:
        with self._session() as db:
            db_user = crud_user.get(db, id=user_id)
            return UserSchema.model_validate(db_user) if db_user else None

    def user_exists(self, user_id: str) -> bool:
        return self.get_user(user_id) is not None

    def is_active_admin(self, user_id: str) -> bool:
        user = self.get_user(user_id)
        return bool(user and user.role == RoleEnum.ADMIN.value and user.status == UserStatusEnum.ACTIVE.value)

    def get_active_user_ids(self, role: Optional[str] = None) -> List[str]:
        with self._session() as db:
            return crud_user.get_ids(db, status=UserStatusEnum.ACTIVE.value, role=role)

    def get_active_admin_ids(self) -> List[str]:
        return self.get_active_user_ids(role=RoleEnum.ADMIN.value)
