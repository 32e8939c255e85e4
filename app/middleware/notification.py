import json
import logging
import random
from typing import Any, Callable, Coroutine, Dict, List, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.background import BackgroundTasks
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.middleware.extractors import caller_id

logger = logging.getLogger(__name__)

DataExtractor = Callable[[Request, Response, Any], Optional[Dict[str, Any]]]

TRIGGERS_ATTR = "__notification_triggers__"
STATS_ATTR = "__notification_stats__"


class NotificationTrigger:
    def __init__(self, event_type: str, data_extractor: DataExtractor, options: Optional[Dict[str, Any]] = None):
        self.event_type = getattr(event_type, "value", event_type)
        self.data_extractor = data_extractor
        self.options = dict(options or {})

    async def fire(self, request: Request, response: Response, body: Any):
        try:
            event_data = self.data_extractor(request, response, body)
        except Exception as e:
            logger.error(f"Error extracting data for notification {self.event_type}: {e}")
            return
        if event_data is None:
            return

        dispatcher = getattr(request.app.state, "notification_dispatcher", None)
        if dispatcher is None:
            logger.warning(f"No notification dispatcher configured, dropping {self.event_type}")
            return
        dispatcher.publish(self.event_type, event_data, self.options)


def trigger_notification(event_type: str, data_extractor: DataExtractor, options: Optional[Dict[str, Any]] = None):
    """Fire ``event_type`` after the decorated endpoint returns a 2xx response.

    Only takes effect on routers built with ``route_class=NotificationRoute``.
    The decorator must sit below the router decorator.
    """
    def decorator(endpoint: Callable) -> Callable:
        triggers = list(getattr(endpoint, TRIGGERS_ATTR, []))
        triggers.append(NotificationTrigger(event_type, data_extractor, options))
        setattr(endpoint, TRIGGERS_ATTR, triggers)
        return endpoint

    return decorator


def attach_notification_stats(endpoint: Callable) -> Callable:
    """Add the caller's ``notification_stats`` to the endpoint's JSON object response."""
    setattr(endpoint, STATS_ATTR, True)
    return endpoint


def _decode_json(raw: Optional[bytes]) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


async def _capture_request_json(request: Request):
    request.state.json_body = _decode_json(await request.body())


def _attach_triggers(request: Request, response: Response, triggers: List[NotificationTrigger]):
    body = _decode_json(getattr(response, "body", None))
    tasks = BackgroundTasks()
    if response.background is not None:
        tasks.add_task(response.background)
    for trigger in triggers:
        tasks.add_task(trigger.fire, request, response, body)
    response.background = tasks


async def _with_notification_stats(request: Request, response: Response) -> Response:
    user_id = caller_id(request)
    body = _decode_json(getattr(response, "body", None))
    if not user_id or not isinstance(body, dict):
        return response

    automation = request.app.state.notification_automation
    try:
        result = await run_in_threadpool(automation.get_notification_stats, user_id)
    except Exception as e:
        logger.error(f"Error adding notification stats: {e}")
        return response
    if not result.success:
        logger.warning(f"Notification stats unavailable for {user_id}: {result.error}")
        return response

    enriched = JSONResponse(
        content={**body, "notification_stats": jsonable_encoder(result.data)},
        status_code=response.status_code,
        background=response.background,
    )
    content_length = [header for header in enriched.raw_headers if header[0] == b"content-length"]
    enriched.raw_headers = [header for header in response.raw_headers if header[0] != b"content-length"] + content_length
    return enriched


class NotificationRoute(APIRoute):
    """Route class honouring ``trigger_notification`` and ``attach_notification_stats``."""

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        original_route_handler = super().get_route_handler()
        triggers = getattr(self.endpoint, TRIGGERS_ATTR, [])
        with_stats = getattr(self.endpoint, STATS_ATTR, False)
        if not triggers and not with_stats:
            return original_route_handler

        async def notification_route_handler(request: Request) -> Response:
            if triggers:
                await _capture_request_json(request)
            response = await original_route_handler(request)
            if with_stats:
                response = await _with_notification_stats(request, response)
            if triggers and 200 <= response.status_code < 300:
                _attach_triggers(request, response, triggers)
            return response

        return notification_route_handler


class NotificationCleanupMiddleware(BaseHTTPMiddleware):
    """Purges old notifications on a random sample of requests."""

    def __init__(
        self,
        app,
        days_old: int = 30,
        status: Optional[str] = "read",
        probability: float = 0.01,
        rng: Callable[[], float] = random.random,
    ):
        super().__init__(app)
        self.days_old = days_old
        self.status = status
        self.probability = probability
        self.rng = rng

    async def dispatch(self, request: Request, call_next):
        if self.rng() < self.probability:
            automation = getattr(request.app.state, "notification_automation", None)
            if automation is not None:
                try:
                    result = await run_in_threadpool(automation.cleanup_old_notifications, self.days_old, self.status)
                    if not result.success:
                        logger.warning(f"Notification cleanup failed: {result.error}")
                except Exception as e:
                    logger.error(f"Error cleaning up notifications: {e}")
        return await call_next(request)


def cleanup_notifications(
    days_old: int = 30,
    status: Optional[str] = "read",
    probability: float = 0.01,
    rng: Callable[[], float] = random.random,
) -> Middleware:
    return Middleware(
        NotificationCleanupMiddleware,
        days_old=days_old,
        status=status,
        probability=probability,
        rng=rng,
    )
