from typing import Optional, Dict, Any, List
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.crud.notification import notification as crud_notification
from app.schemas.notification import Notification

def api_call(client: TestClient, method: str, path: str, headers: Optional[Dict[str, str]] = None, json: Optional[Dict[str, Any]] = None, expected_min: int = 200, expected_max: int = 300):
    response = client.request(method, path, headers=headers, json=json)
    ok = expected_min <= response.status_code < expected_max
    try:
        body = response.json()
    except Exception:
        body = response.text
    assert ok, f"{method} {path} => {response.status_code}, body={body}, json={json}"
    return response

def stored_notifications(session_factory: sessionmaker, recipient_id: Optional[str] = None, **filters) -> List[Notification]:
    """Read notification rows through a fresh session, newest first."""
    db = session_factory()
    try:
        rows = crud_notification.get_page(db, limit=10_000, recipient_id=recipient_id, **filters)
        return [Notification.model_validate(row) for row in rows]
    finally:
        db.close()

def caller(user_id: str) -> Dict[str, str]:
    return {"X-User-Id": user_id}
