import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime
from app.core.database import Base
from app.core.constants import RoleEnum, UserStatusEnum


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(String(32), nullable=False, default=RoleEnum.CUSTOMER.value, index=True)
    status = Column(String(32), nullable=False, default=UserStatusEnum.ACTIVE.value, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
