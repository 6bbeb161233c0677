"""Notifications service API built with FastAPI.

The shop API posts ``{recipient, template, data}`` here after orders,
coupons and replacements change. The service renders the template into a
title and a message and stores it in the recipient's in-app inbox.
Persistence is delegated to the SQLAlchemy-backed ``repo.NotificationsRepo``.
"""

import logging
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from repo import NotificationsRepo, engine, init_db

app = FastAPI(title="Notifications Service")

logger = logging.getLogger("notifications")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)

# template -> (kind, default title, default message)
TEMPLATES: Dict[str, tuple[str, str, str]] = {
    "order_delivered": ("order", "Order Delivered", "Your order #{orderNumber} has been delivered."),
    "order_cancelled": ("order", "Order Cancelled", "Your order #{orderNumber} has been cancelled."),
    "order_status_changed": ("order", "Order Update", "Your order #{orderNumber} is now {status}."),
    "replacement_requested": ("order", "Replacement Request Submitted", "Your replacement request has been submitted."),
    "replacement_status": ("order", "Replacement Update", "Your replacement request has been updated."),
    "coupon_available": ("promotion", "New Coupon Available!", "Use code {code} on your next order!"),
}


class _Defaults(dict):
    def __missing__(self, key):
        return ""


def render(template: str, data: Dict[str, Any]) -> tuple[str, str, str]:
    """Return ``(kind, title, message)``; explicit ``title``/``message`` in data win."""
    kind, title, message = TEMPLATES.get(template, ("order", template.replace("_", " ").title(), ""))
    values = _Defaults(data)
    return (
        kind,
        str(data.get("title") or title.format_map(values)),
        str(data.get("message") or message.format_map(values)),
    )


@app.on_event("startup")
def _startup_db():
    # wait briefly until the database accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class NotificationIn(BaseModel):
    recipient: str = Field(min_length=1, max_length=64)
    template: str = Field(min_length=1, max_length=64)
    data: Dict[str, Any] = Field(default_factory=dict)


class NotificationOut(BaseModel):
    id: uuid.UUID
    recipient: str
    template: str
    kind: str
    title: str
    message: str
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/notifications", response_model=NotificationOut, status_code=201)
def create_notification(req: NotificationIn, request: Request):
    kind, title, message = render(req.template, req.data)
    row = NotificationsRepo().add(req.recipient, req.template, kind, title, message, req.data)
    logger.info("notification stored", extra={
        "request_id": getattr(request.state, "request_id", "-"),
        "recipient": req.recipient,
        "template": req.template,
    })
    return row


@app.get("/notifications/{recipient}", response_model=List[NotificationOut])
def list_notifications(recipient: str, limit: int = 50):
    return NotificationsRepo().list_for(recipient, limit=min(max(limit, 1), 200))


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
