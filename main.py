import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.database import Base, SessionLocal
from app.core.logging import configure_logging
from app.core.scheduler import start_scheduler, stop_scheduler
from app.endpoints import notification, system
from app.middleware.exceptions import (
    global_exception_handler, http_exception_handler, validation_exception_handler
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.notification import NotificationCleanupMiddleware
from app.services.admin_notifier import AdminNotifier
from app.services.notification import NotificationService
from app.services.notification_automation import NotificationAutomation
from app.services.user import UserService
from app.utils.events import NotificationDispatcher

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, session_factory: sessionmaker):
    user_service = UserService(session_factory)
    notification_service = NotificationService(
        session_factory,
        recent_limit=settings.NOTIFICATION_RECENT_LIMIT,
        currency_symbol=settings.CURRENCY_SYMBOL,
        platform_name=settings.PLATFORM_NAME,
    )
    automation = NotificationAutomation(
        notification_service,
        AdminNotifier(user_service, notification_service),
        user_service,
    )
    app.state.session_factory = session_factory
    app.state.user_service = user_service
    app.state.notification_service = notification_service
    app.state.notification_automation = automation
    app.state.notification_dispatcher = NotificationDispatcher(
        automation,
        max_queue_size=settings.NOTIFICATION_QUEUE_SIZE,
        workers=settings.NOTIFICATION_DISPATCH_WORKERS,
    )


def create_app(session_factory: Optional[sessionmaker] = None) -> FastAPI:
    session_factory = session_factory or SessionLocal

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        Base.metadata.create_all(bind=session_factory.kw["bind"])
        build_services(app, session_factory)
        app.state.notification_dispatcher.start()
        start_scheduler(app.state.notification_automation)
        logger.info(f"{settings.PROJECT_NAME} {settings.VERSION} started")
        yield
        stop_scheduler()
        await app.state.notification_dispatcher.stop()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        lifespan=lifespan
    )

    # Registered innermost first: CORS wraps request logging, which wraps cleanup.
    app.add_middleware(
        NotificationCleanupMiddleware,
        days_old=settings.NOTIFICATION_RETENTION_DAYS,
        status=settings.NOTIFICATION_CLEANUP_STATUS,
        probability=settings.NOTIFICATION_CLEANUP_PROBABILITY,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(notification.router, prefix="/notifications", tags=["Notifications"])
    app.include_router(system.router, prefix="/system", tags=["System"])

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "service": settings.PROJECT_NAME, "version": settings.VERSION}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
