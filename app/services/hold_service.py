"""
Reservation ledger: holds (booking requests) that claim slot capacity while
the customer pays, plus their release by cancellation or expiry.
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.money import money_str, to_money
from app.core.timeutil import as_utc, slot_start_of, utcnow
from app.models.booking_request import BookingRequest
from app.models.status import ACTIVE_HOLD_STATUSES, HoldStatus, SlotStatus, can_transition
from app.services import slot_service

logger = logging.getLogger(__name__)


def _not_enough_capacity(requested: int, remaining: int) -> ConflictError:
    return ConflictError(f"Not enough capacity. Requested: {requested}, available: {remaining}")


def _total_quantity(person_type_quantities: dict) -> int:
    total = 0
    for person_type, qty in (person_type_quantities or {}).items():
        if not isinstance(qty, int) or isinstance(qty, bool) or qty < 0:
            raise ValidationError(f"Quantity for {person_type} must be a non-negative integer")
        total += qty
    return total


def place_hold(db: Session, availability_id: str, user_id: str, person_type_quantities: dict,
               now: datetime | None = None) -> BookingRequest:
    now = now or utcnow()

    slot = slot_service.get_slot(db, availability_id)
    if not slot or not slot.is_active:
        raise NotFoundError("Availability slot", availability_id)

    stored = slot.status or SlotStatus.AVAILABLE.value
    if stored != SlotStatus.AVAILABLE.value:
        raise ConflictError(f"Slot is not available (status: {stored})")
    if slot_start_of(slot.slot_date, slot.slot_time) <= now:
        raise ConflictError("Cannot book a slot that has already started")

    quantity = _total_quantity(person_type_quantities)
    if quantity <= 0:
        raise ValidationError("Total quantity must be at least 1")

    # Advisory only; the conditional increment below is the real guard.
    remaining = slot_service.remaining_capacity(slot)
    if quantity > remaining:
        raise _not_enough_capacity(quantity, remaining)

    prices = slot_service.price_map(db, slot.id)
    for person_type, qty in person_type_quantities.items():
        if qty > 0 and person_type not in prices:
            raise ValidationError(f"Price not available for person type: {person_type}")

    total_price = Decimal("0.00")
    for person_type, qty in person_type_quantities.items():
        if qty <= 0:
            continue
        total_price += to_money(prices[person_type]) * qty

    req = BookingRequest(
        id=str(uuid.uuid4()),
        availability_id=slot.id,
        user_id=user_id,
        quantity=quantity,
        person_type_quantities={k: v for k, v in person_type_quantities.items() if v > 0},
        total_price=to_money(total_price),
        status=HoldStatus.PENDING_PAYMENT.value,
        expires_at=now + timedelta(minutes=settings.HOLD_TTL_MINUTES),
        created_at=now,
    )
    db.add(req)

    if not slot_service.increment_reserved(db, slot.id, quantity):
        # A concurrent hold took the capacity between the check and the update.
        db.rollback()
        slot = slot_service.get_slot(db, availability_id)
        raise _not_enough_capacity(quantity, slot_service.remaining_capacity(slot) if slot else 0)

    db.commit()
    db.refresh(req)
    logger.info("Hold %s placed on slot %s by user %s for %d (expires %s)",
                req.id, slot.id, user_id, quantity, req.expires_at.isoformat())
    return req


def get_hold(db: Session, request_id: str, user_id: str | None = None) -> BookingRequest:
    req = db.get(BookingRequest, request_id, populate_existing=True)
    if not req or (user_id is not None and req.user_id != user_id):
        raise NotFoundError("Booking request", request_id)
    return req


def cancel_hold(db: Session, request_id: str, user_id: str) -> BookingRequest:
    """Cancel a hold before confirmation and release its quantity exactly once."""
    req = get_hold(db, request_id, user_id)
    if not can_transition(req.status, HoldStatus.CANCELLED):
        raise ConflictError(f'Cannot cancel booking request with status "{req.status}"')
    release = req.quantity if HoldStatus(req.status) in ACTIVE_HOLD_STATUSES else 0

    result = db.execute(
        update(BookingRequest)
        .where(BookingRequest.id == req.id, BookingRequest.status == req.status)
        .values(status=HoldStatus.CANCELLED.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise ConflictError("Booking request changed status while cancelling; retry")
    if release:
        slot_service.decrement_reserved(db, req.availability_id, release)
    db.commit()
    logger.info("Hold %s cancelled by user %s, released %d on slot %s",
                req.id, user_id, release, req.availability_id)
    return get_hold(db, request_id)


def expire_stale_holds(db: Session, now: datetime | None = None) -> dict:
    """
    Expire pending_payment holds past expires_at and release their capacity.

    Each row is moved with an UPDATE guarded on its current status, so a hold
    confirmed or expired concurrently is never released twice and re-running
    after a partial failure only touches rows still pending.
    """
    now = now or utcnow()
    stale = (
        db.query(BookingRequest)
        .filter(
            BookingRequest.status == HoldStatus.PENDING_PAYMENT.value,
            BookingRequest.expires_at != None,
            BookingRequest.expires_at < now,
        )
        .all()
    )
    if not stale:
        return {"expired": 0, "released": {}}

    released: dict[str, int] = defaultdict(int)
    expired = 0
    for req in stale:
        result = db.execute(
            update(BookingRequest)
            .where(BookingRequest.id == req.id, BookingRequest.status == HoldStatus.PENDING_PAYMENT.value)
            .values(status=HoldStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            expired += 1
            released[req.availability_id] += req.quantity

    for slot_id, qty in released.items():
        slot_service.decrement_reserved(db, slot_id, qty)
    db.commit()
    db.expire_all()

    if expired:
        logger.info("Expired %d stale holds, released %s", expired, dict(released))
    return {"expired": expired, "released": dict(released)}


def serialize_hold(req: BookingRequest, slot=None) -> dict:
    out = {
        "id": req.id,
        "userId": req.user_id,
        "availabilityId": req.availability_id,
        "status": req.status,
        "quantity": req.quantity,
        "personTypeQuantities": dict(req.person_type_quantities or {}),
        "totalPrice": money_str(req.total_price),
        "createdAt": as_utc(req.created_at).isoformat() if req.created_at else None,
        "expiresAt": as_utc(req.expires_at).isoformat() if req.expires_at else None,
    }
    if slot is not None:
        out["availability"] = {"slotDate": slot.slot_date, "slotTime": slot.slot_time, "productId": slot.product_id}
    return out
