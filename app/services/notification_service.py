"""
Notification dispatch collaborator.

`send` is fire-and-forget from the caller's point of view: the message is
queued in notification_logs, delivery is attempted immediately, and any
failure is logged and left for the worker to retry. It never raises.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import Session
import requests

from app.core.config import settings
from app.models.notification_log import NotificationLog

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5


def send(db: Session, message: dict) -> bool:
    """Queue and attempt immediate delivery. Returns True if delivered now."""
    nid = str(uuid.uuid4())
    try:
        db.add(
            NotificationLog(
                id=nid,
                kind=str(message.get("type", "")),
                user_id=str(message.get("userId", "") or ""),
                payload_json=json.dumps(message, ensure_ascii=False, default=str),
                status="queued",
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Could not queue %s notification", message.get("type"))
        return False

    log = db.get(NotificationLog, nid)
    try:
        deliver(message)
    except Exception as e:
        logger.warning("Notification %s (%s) failed, will retry: %s", nid, log.kind, e)
        log.status = "failed"
        log.attempts = (log.attempts or 0) + 1
        db.commit()
        return False

    log.status = "sent"
    log.attempts = (log.attempts or 0) + 1
    log.sent_at = datetime.now(timezone.utc)
    db.commit()
    return True


def deliver(message: dict) -> None:
    """POST the message to the configured webhook; without one, only log it."""
    if not settings.NOTIFY_WEBHOOK_URL:
        logger.info("Notification %s for user %s (no transport configured)",
                    message.get("type"), message.get("userId"))
        return

    headers = {}
    if settings.NOTIFY_WEBHOOK_TOKEN:
        headers["Authorization"] = f"Bearer {settings.NOTIFY_WEBHOOK_TOKEN}"
    r = requests.post(
        settings.NOTIFY_WEBHOOK_URL,
        data=json.dumps(message, default=str),
        headers={"Content-Type": "application/json", **headers},
        timeout=settings.NOTIFY_TIMEOUT_SECONDS,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"Notification webhook error {r.status_code}: {r.text}")


def process_pending_notifications(db: Session, limit: int = 50) -> dict:
    """Retry up to `limit` queued or failed notifications. Returns counts."""
    pending = (
        db.query(NotificationLog)
        .filter(NotificationLog.status.in_(["queued", "failed"]), NotificationLog.attempts < MAX_ATTEMPTS)
        .order_by(NotificationLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent, failed = 0, 0
    for log in pending:
        log.attempts = (log.attempts or 0) + 1
        try:
            deliver(json.loads(log.payload_json))
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            sent += 1
        except Exception as e:
            logger.warning("Retry of notification %s failed: %s", log.id, e)
            log.status = "failed"
            failed += 1
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": failed}
