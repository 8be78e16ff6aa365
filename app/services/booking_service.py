import uuid
import logging
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy import update, func
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.money import money_str, to_money
from app.core.timeutil import as_utc, slot_start_of, utcnow
from app.models.booking import Booking
from app.models.booking_item import BookingItem
from app.models.booking_request import BookingRequest
from app.models.product import Product
from app.models.slot import AvailabilitySlot
from app.models.status import BookingStatus, HoldStatus, PersonType, ensure_transition
from app.services import slot_service, waitlist_service

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _set_booking_status(db: Session, booking: Booking, new: BookingStatus, now: datetime) -> None:
    """Guarded UPDATE: only moves the row if nobody changed its status meanwhile."""
    ensure_transition(booking.status, new, "booking")
    result = db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == booking.status)
        .values(status=new.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise ConflictError(f"Booking {booking.id} changed status concurrently; retry")


def _load(db: Session, booking_id: str, user_id: str | None = None) -> Booking:
    b = db.get(Booking, booking_id, populate_existing=True)
    # Someone else's booking looks exactly like a missing one
    if not b or (user_id is not None and b.user_id != user_id):
        raise NotFoundError("Booking", booking_id)
    return b


def _items(db: Session, booking_id: str) -> list[BookingItem]:
    return (
        db.query(BookingItem)
        .filter(BookingItem.booking_id == booking_id)
        .order_by(BookingItem.position.asc())
        .all()
    )


def confirm(db: Session, request_id: str, order_item_id: str | None, user_id: str,
            person_type_quantities: dict | None = None, now: datetime | None = None) -> dict:
    """
    Promote a pending_payment hold into a confirmed booking. Called by the
    payment side once the order is paid. Capacity was already claimed by the
    hold and stays attributed to the booking.
    """
    now = now or utcnow()
    req = db.get(BookingRequest, request_id, populate_existing=True)
    if not req or req.user_id != user_id:
        raise NotFoundError("Booking request", request_id)
    if req.status != HoldStatus.PENDING_PAYMENT.value:
        raise ConflictError(f"Booking request is not pending payment (status: {req.status})")

    quantities = {k: v for k, v in (person_type_quantities or req.person_type_quantities or {}).items() if v}
    for person_type in quantities:
        try:
            PersonType(person_type)
        except ValueError:
            raise ValidationError(f"Unknown person type: {person_type}")
    if any(not isinstance(v, int) or v < 0 for v in quantities.values()):
        raise ValidationError("Quantities must be non-negative integers")
    if sum(quantities.values()) != req.quantity:
        raise ValidationError(
            f"Quantities ({sum(quantities.values())}) do not match the held quantity ({req.quantity})"
        )

    ensure_transition(req.status, HoldStatus.CONFIRMED, "booking request")
    result = db.execute(
        update(BookingRequest)
        .where(BookingRequest.id == req.id, BookingRequest.status == HoldStatus.PENDING_PAYMENT.value)
        .values(status=HoldStatus.CONFIRMED.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # lost to the expiry sweep or a concurrent confirm
        db.rollback()
        current = db.get(BookingRequest, request_id, populate_existing=True)
        raise ConflictError(f"Booking request is not pending payment (status: {current.status if current else 'unknown'})")

    prices = slot_service.price_map(db, req.availability_id)
    booking = Booking(
        id=str(uuid.uuid4()),
        booking_request_id=req.id,
        order_item_id=order_item_id,
        user_id=req.user_id,
        availability_id=req.availability_id,
        status=BookingStatus.CONFIRMED.value,
        created_at=now,
        updated_at=now,
    )
    db.add(booking)
    for pos, (person_type, qty) in enumerate(quantities.items()):
        # price was validated at hold time; a price removed since then bills 0
        unit = to_money(prices.get(person_type, Decimal("0")))
        db.add(BookingItem(
            id=str(uuid.uuid4()),
            booking_id=booking.id,
            position=pos,
            person_type=person_type,
            quantity=qty,
            unit_price=unit,
            total_price=to_money(unit * qty),
        ))

    waitlist_service.mark_converted(db, req.availability_id, req.user_id, now=now)
    db.commit()
    logger.info("Booking %s confirmed from request %s (order item %s)", booking.id, req.id, order_item_id)
    return enrich_booking(db, _load(db, booking.id))


def check_in(db: Session, booking_id: str, now: datetime | None = None) -> dict:
    now = now or utcnow()
    b = _load(db, booking_id)
    if b.status != BookingStatus.CONFIRMED.value:
        raise ConflictError(f'Cannot check in: booking status is "{b.status}". Only confirmed bookings can be checked in.')
    slot = slot_service.find_by_id(db, b.availability_id)
    if slot.slot_date != as_utc(now).date().isoformat():
        raise ConflictError(f"Check-in is only allowed on the day of the booking ({slot.slot_date})")
    _set_booking_status(db, b, BookingStatus.CHECKED_IN, now)
    db.commit()
    logger.info("Booking %s checked in", booking_id)
    return enrich_booking(db, _load(db, booking_id))


def cancel(db: Session, booking_id: str, user_id: str, now: datetime | None = None) -> dict:
    """
    Cancel, release the booked quantity, then offer it to the waitlist.
    The release is committed first: promotion and the refund hook are side
    effects and cannot undo the cancellation.
    """
    now = now or utcnow()
    b = _load(db, booking_id, user_id)
    if b.status != BookingStatus.CONFIRMED.value:
        raise ConflictError(
            f'Cannot cancel booking with status "{b.status}". Only confirmed bookings can be cancelled.'
        )
    qty = (
        db.query(func.coalesce(func.sum(BookingItem.quantity), 0))
        .filter(BookingItem.booking_id == b.id)
        .scalar()
    )
    _set_booking_status(db, b, BookingStatus.CANCELLED, now)
    slot_service.decrement_reserved(db, b.availability_id, int(qty))
    db.commit()
    logger.info("Booking %s cancelled by user %s, released %d on slot %s", booking_id, user_id, qty, b.availability_id)

    try:
        waitlist_service.promote_next(db, b.availability_id, now=now)
    except Exception:
        db.rollback()
        logger.exception("Waitlist promotion after cancelling booking %s failed", booking_id)
    request_refund(b)
    return enrich_booking(db, _load(db, booking_id))


def request_refund(booking: Booking) -> None:
    """Refunds belong to the payment side; this is the hand-off point."""
    logger.info("Refund requested for booking %s (order item %s)", booking.id, booking.order_item_id)


def mark_no_show(db: Session, booking_id: str, now: datetime | None = None) -> dict:
    # Capacity is not released and nobody is promoted: the slot has started.
    now = now or utcnow()
    b = _load(db, booking_id)
    if b.status != BookingStatus.CONFIRMED.value:
        raise ConflictError(
            f'Cannot mark as no-show: booking status is "{b.status}". Only confirmed bookings can be marked as no-show.'
        )
    slot = slot_service.find_by_id(db, b.availability_id)
    if slot_start_of(slot.slot_date, slot.slot_time) > now:
        raise ConflictError("Cannot mark as no-show before the event time")
    _set_booking_status(db, b, BookingStatus.NO_SHOW, now)
    db.commit()
    logger.info("Booking %s marked no-show", booking_id)
    return enrich_booking(db, _load(db, booking_id))


def enrich_booking(db: Session, b: Booking) -> dict:
    slot = slot_service.get_slot(db, b.availability_id)
    product = db.get(Product, slot.product_id) if slot else None
    items = _items(db, b.id)
    total = sum((to_money(i.total_price) for i in items), Decimal("0.00"))
    return {
        "id": b.id,
        "bookingRequestId": b.booking_request_id,
        "orderItemId": b.order_item_id,
        "userId": b.user_id,
        "availabilityId": b.availability_id,
        "status": b.status,
        "slotDate": slot.slot_date if slot else None,
        "slotTime": slot.slot_time if slot else None,
        "productId": slot.product_id if slot else None,
        "productName": product.name if product else None,
        "personTypeQuantities": {i.person_type: i.quantity for i in items},
        "items": [
            {
                "personType": i.person_type,
                "quantity": i.quantity,
                "unitPrice": money_str(i.unit_price),
                "totalPrice": money_str(i.total_price),
            }
            for i in items
        ],
        "totalPrice": money_str(total),
        "createdAt": as_utc(b.created_at).isoformat() if b.created_at else None,
        "updatedAt": as_utc(b.updated_at).isoformat() if b.updated_at else None,
    }


def get_booking(db: Session, booking_id: str, user_id: str | None = None) -> dict:
    return enrich_booking(db, _load(db, booking_id, user_id))


def list_user_bookings(db: Session, user_id: str, page: int = 1, limit: int = 20) -> dict:
    page = max(page or 1, 1)
    limit = min(max(limit or 20, 1), MAX_PAGE_SIZE)
    q = db.query(Booking).filter(Booking.user_id == user_id)
    total = q.count()
    rows = q.order_by(Booking.created_at.desc(), Booking.id.asc()).limit(limit).offset((page - 1) * limit).all()
    return {
        "bookings": [enrich_booking(db, b) for b in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def confirmed_bookings_on(db: Session, slot_date: str) -> list[tuple[Booking, object]]:
    """Confirmed bookings whose slot is on `slot_date`, paired with the slot."""
    return (
        db.query(Booking, AvailabilitySlot)
        .join(AvailabilitySlot, AvailabilitySlot.id == Booking.availability_id)
        .filter(AvailabilitySlot.slot_date == slot_date,
                AvailabilitySlot.is_active == True,
                Booking.status == BookingStatus.CONFIRMED.value)
        .order_by(AvailabilitySlot.slot_start.asc())
        .all()
    )
