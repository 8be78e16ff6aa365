"""
Waitlist coordinator: a FIFO queue per full slot.

Joins only append (max position + 1); promotion only reads the minimum
waiting position. A notified entry holds a claim deadline (expired_at) that is
checked lazily through the predicates below and swept by
`expire_lapsed_claims`, which chains into the next promotion.
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.timeutil import as_utc, utcnow
from app.models.status import WaitlistStatus, ensure_transition
from app.models.waitlist_entry import WaitlistEntry
from app.services import catalog_service, notification_service, slot_service

logger = logging.getLogger(__name__)

JOIN_RETRIES = 3
PROMOTE_RETRIES = 3


def can_notify(entry: WaitlistEntry) -> bool:
    return entry.status == WaitlistStatus.WAITING.value


def can_convert(entry: WaitlistEntry, now: datetime | None = None) -> bool:
    if entry.status != WaitlistStatus.NOTIFIED.value or entry.expired_at is None:
        return False
    return (now or utcnow()) < as_utc(entry.expired_at)


def is_expired(entry: WaitlistEntry, now: datetime | None = None) -> bool:
    if entry.status == WaitlistStatus.EXPIRED.value:
        return True
    if entry.status == WaitlistStatus.NOTIFIED.value and entry.expired_at is not None:
        return (now or utcnow()) >= as_utc(entry.expired_at)
    return False


def _check_not_queued(db: Session, availability_id: str, user_id: str, now: datetime) -> None:
    """
    Raise if the user already has a live entry on the slot. A notified entry
    whose claim lapsed but was not swept yet is expired here, in the caller's
    transaction, so the new entry does not collide with it.
    """
    mine = (
        db.query(WaitlistEntry)
        .filter(WaitlistEntry.availability_id == availability_id,
                WaitlistEntry.user_id == user_id,
                WaitlistEntry.status.in_([WaitlistStatus.WAITING.value, WaitlistStatus.NOTIFIED.value]))
        .populate_existing()
        .all()
    )
    for e in mine:
        if not is_expired(e, now):
            raise ConflictError("You are already on the waitlist for this slot")
        db.execute(
            update(WaitlistEntry)
            .where(WaitlistEntry.id == e.id, WaitlistEntry.status == WaitlistStatus.NOTIFIED.value)
            .values(status=WaitlistStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )


def join(db: Session, availability_id: str, user_id: str, now: datetime | None = None) -> WaitlistEntry:
    now = now or utcnow()
    slot = slot_service.get_slot(db, availability_id)
    if not slot or not slot.is_active:
        raise NotFoundError("Availability slot", availability_id)
    if not catalog_service.waitlist_enabled(db, slot.product_id):
        raise ValidationError("Waitlist is not enabled for this experience")
    if slot_service.remaining_capacity(slot) > 0:
        raise ValidationError("Slot still has availability; book directly instead of joining the waitlist")

    # Two joins can read the same max; the unique (slot, position) key rejects one.
    # A concurrent join by the same user is rejected by the live-entry index and
    # caught by the check on the retry.
    for attempt in range(JOIN_RETRIES):
        _check_not_queued(db, availability_id, user_id, now)
        last = db.execute(
            select(func.max(WaitlistEntry.position)).where(WaitlistEntry.availability_id == availability_id)
        ).scalar()
        entry = WaitlistEntry(
            id=str(uuid.uuid4()),
            availability_id=availability_id,
            user_id=user_id,
            position=(last or 0) + 1,
            status=WaitlistStatus.WAITING.value,
            created_at=now,
        )
        db.add(entry)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("Waitlist insert clash on slot %s, retry %d", availability_id, attempt + 1)
            continue
        db.refresh(entry)
        logger.info("User %s joined waitlist of slot %s at position %d", user_id, availability_id, entry.position)
        return entry
    _check_not_queued(db, availability_id, user_id, now)
    db.rollback()
    raise ConflictError("Could not assign a waitlist position, please retry")


def promote_next(db: Session, availability_id: str, now: datetime | None = None) -> str | None:
    """
    Notify the earliest waiting entry. Returns its user id, or None when the
    queue is empty. The promotion is committed before the notification goes
    out, so a failing notification never undoes it.
    """
    now = now or utcnow()
    for _ in range(PROMOTE_RETRIES):
        entry = db.execute(
            select(WaitlistEntry)
            .where(WaitlistEntry.availability_id == availability_id,
                   WaitlistEntry.status == WaitlistStatus.WAITING.value)
            .order_by(WaitlistEntry.position.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        ).scalar_one_or_none()
        if not entry:
            return None

        ensure_transition(entry.status, WaitlistStatus.NOTIFIED, "waitlist entry")
        deadline = now + timedelta(minutes=settings.WAITLIST_CLAIM_WINDOW_MINUTES)
        result = db.execute(
            update(WaitlistEntry)
            .where(WaitlistEntry.id == entry.id, WaitlistEntry.status == WaitlistStatus.WAITING.value)
            .values(status=WaitlistStatus.NOTIFIED.value, notified_at=now, expired_at=deadline)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # promoted by someone else in the meantime; look again
            db.rollback()
            continue
        db.commit()
        user_id = entry.user_id
        logger.info("Waitlist entry %s (user %s, position %d) notified for slot %s, claim by %s",
                    entry.id, user_id, entry.position, availability_id, deadline.isoformat())

        notification_service.send(db, {
            "type": "waitlist_spot_available",
            "userId": user_id,
            "availabilityId": availability_id,
            "claimDeadline": deadline.isoformat(),
        })
        return user_id
    logger.warning("Gave up promoting waitlist of slot %s after %d attempts", availability_id, PROMOTE_RETRIES)
    return None


def mark_converted(db: Session, availability_id: str, user_id: str, now: datetime | None = None) -> bool:
    """
    Flag the user's live notified entry as converted. Does not commit; runs
    inside the caller's confirmation transaction.
    """
    now = now or utcnow()
    entry = (
        db.query(WaitlistEntry)
        .filter(WaitlistEntry.availability_id == availability_id,
                WaitlistEntry.user_id == user_id,
                WaitlistEntry.status == WaitlistStatus.NOTIFIED.value)
        .order_by(WaitlistEntry.position.asc())
        .first()
    )
    if not entry or not can_convert(entry, now):
        return False
    result = db.execute(
        update(WaitlistEntry)
        .where(WaitlistEntry.id == entry.id, WaitlistEntry.status == WaitlistStatus.NOTIFIED.value)
        .values(status=WaitlistStatus.CONVERTED.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        logger.info("Waitlist entry %s converted by user %s", entry.id, user_id)
        return True
    return False


def expire_lapsed_claims(db: Session, now: datetime | None = None) -> dict:
    """
    Expire notified entries whose claim deadline has passed, then offer the
    still-free capacity of each affected slot to the next waiting entries.
    Safe to re-run.
    """
    now = now or utcnow()
    lapsed = (
        db.query(WaitlistEntry)
        .filter(WaitlistEntry.status == WaitlistStatus.NOTIFIED.value,
                WaitlistEntry.expired_at != None,
                WaitlistEntry.expired_at <= now)
        .all()
    )
    per_slot: dict[str, int] = defaultdict(int)
    for entry in lapsed:
        result = db.execute(
            update(WaitlistEntry)
            .where(WaitlistEntry.id == entry.id, WaitlistEntry.status == WaitlistStatus.NOTIFIED.value)
            .values(status=WaitlistStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            per_slot[entry.availability_id] += 1
    db.commit()
    db.expire_all()

    promoted = []
    for slot_id, count in per_slot.items():
        slot = slot_service.get_slot(db, slot_id)
        if not slot:
            continue
        live = (
            db.query(func.count(WaitlistEntry.id))
            .filter(WaitlistEntry.availability_id == slot_id,
                    WaitlistEntry.status == WaitlistStatus.NOTIFIED.value,
                    WaitlistEntry.expired_at > now)
            .scalar() or 0
        )
        # one new offer per lapsed claim, never more offers than free seats
        offers = min(count, slot_service.remaining_capacity(slot) - live)
        for _ in range(max(offers, 0)):
            user_id = promote_next(db, slot_id, now=now)
            if not user_id:
                break
            promoted.append(user_id)

    expired = sum(per_slot.values())
    if expired:
        logger.info("Expired %d waitlist claims, promoted %d", expired, len(promoted))
    return {"expired": expired, "promoted": promoted}


def list_waitlist(db: Session, availability_id: str) -> list[WaitlistEntry]:
    slot_service.find_by_id(db, availability_id)
    return (
        db.query(WaitlistEntry)
        .filter(WaitlistEntry.availability_id == availability_id)
        .order_by(WaitlistEntry.position.asc())
        .all()
    )


def serialize_entry(entry: WaitlistEntry) -> dict:
    return {
        "id": entry.id,
        "availabilityId": entry.availability_id,
        "userId": entry.user_id,
        "position": entry.position,
        "status": entry.status,
        "notifiedAt": as_utc(entry.notified_at).isoformat() if entry.notified_at else None,
        "claimDeadline": as_utc(entry.expired_at).isoformat() if entry.expired_at else None,
        "createdAt": as_utc(entry.created_at).isoformat() if entry.created_at else None,
    }
