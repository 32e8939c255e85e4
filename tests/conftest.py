import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault("TESTING", "true")

import uuid
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

import main
from app.core.constants import RoleEnum, UserStatusEnum
from app.core.database import Base
from app.crud.user import user as crud_user
from app.services.admin_notifier import AdminNotifier
from app.services.notification import NotificationService
from app.services.notification_automation import NotificationAutomation
from app.services.user import UserService


@pytest.fixture(scope="function")
def database_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()

@pytest.fixture(scope="function")
def session_factory(database_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=database_engine)

@pytest.fixture(scope="function")
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.rollback()
        db.close()

@pytest.fixture
def user_service(session_factory) -> UserService:
    return UserService(session_factory)

@pytest.fixture
def notification_service(session_factory) -> NotificationService:
    return NotificationService(session_factory, recent_limit=5, currency_symbol="₹", platform_name="S9 Mini2")

@pytest.fixture
def admin_notifier(user_service, notification_service) -> AdminNotifier:
    return AdminNotifier(user_service, notification_service)

@pytest.fixture
def automation(notification_service, admin_notifier, user_service) -> NotificationAutomation:
    return NotificationAutomation(notification_service, admin_notifier, user_service)

@pytest.fixture
def user_factory(db_session):
    def _user_factory(role: str = RoleEnum.CUSTOMER.value, status: str = UserStatusEnum.ACTIVE.value, name: str = None):
        user_data = {
            "email": f"{role}-{uuid.uuid4()}@test.com",
            "name": name or f"Test {role}",
            "role": role,
            "status": status,
        }
        return crud_user.create(db_session, obj_in=user_data)
    return _user_factory

@pytest.fixture
def admins(user_factory):
    return [user_factory(RoleEnum.ADMIN.value) for _ in range(2)]

@pytest.fixture(scope="function")
def app(session_factory):
    return main.create_app(session_factory=session_factory)

@pytest.fixture(scope="function")
def client(app):
    with TestClient(app) as test_client:
        yield test_client

@pytest.fixture
def drain(client):
    """Block until the notification dispatcher has handled every queued event."""
    def _drain():
        client.portal.call(client.app.state.notification_dispatcher.join)
    return _drain
