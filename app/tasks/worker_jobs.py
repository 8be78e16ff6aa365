"""
Scheduled work. Each job opens its own session, returns a small summary dict
for the Celery result backend, and skips quietly while the schema is missing.
"""
import logging
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from app.db.session import SessionLocal
from app.core.timeutil import utcnow
from app.services import booking_service, hold_service, notification_service, waitlist_service

logger = logging.getLogger(__name__)


def expire_holds(now: datetime | None = None) -> dict:
    db: Session = SessionLocal()
    try:
        try:
            return hold_service.expire_stale_holds(db, now=now)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def expire_waitlist_claims(now: datetime | None = None) -> dict:
    db: Session = SessionLocal()
    try:
        try:
            return waitlist_service.expire_lapsed_claims(db, now=now)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def process_notification_queue(limit: int = 50) -> dict:
    """Retry queued/failed notifications. Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return notification_service.process_pending_notifications(db, limit=limit)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def send_booking_reminders(now: datetime | None = None) -> dict:
    """One booking_reminder notification per confirmed booking on tomorrow's slots."""
    now = now or utcnow()
    tomorrow = (now + timedelta(days=1)).date().isoformat()
    db: Session = SessionLocal()
    try:
        try:
            rows = booking_service.confirmed_bookings_on(db, tomorrow)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        sent = 0
        for booking, slot in rows:
            ok = notification_service.send(db, {
                "type": "booking_reminder",
                "userId": booking.user_id,
                "bookingId": booking.id,
                "availabilityId": slot.id,
                "slotDate": slot.slot_date,
                "slotTime": slot.slot_time,
            })
            sent += 1 if ok else 0
        logger.info("Booking reminders for %s: %d bookings, %d delivered now", tomorrow, len(rows), sent)
        return {"date": tomorrow, "bookings": len(rows), "sent": sent}
    finally:
        db.close()
