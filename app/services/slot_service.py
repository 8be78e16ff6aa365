"""
Slot store: availability slots, their per-person-type prices, and the
reserved-capacity counter.

reserved_count is only changed here, and only through single conditional
UPDATE statements, so concurrent holds cannot push it past total_capacity or
below zero. Callers own the transaction (commit / rollback).
"""
import logging
import uuid
from datetime import date, datetime, timedelta
from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.money import money_str, to_money
from app.core.timeutil import slot_start_of, utcnow
from app.models.slot import AvailabilitySlot
from app.models.slot_price import SlotPrice
from app.models.status import PersonType, SlotStatus
from app.services import catalog_service
from app.services.availability_status import effective_status

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
# Stored statuses an admin may set; full / in_progress are always derived.
SETTABLE_STATUSES = {SlotStatus.AVAILABLE, SlotStatus.CLOSED, SlotStatus.CANCELED, SlotStatus.COMPLETED}


def _validate_prices(prices: list[dict]) -> list[tuple[str, object]]:
    if not prices:
        raise ValidationError("At least one price entry is required")
    out, seen = [], set()
    for p in prices:
        person_type = p.get("personType")
        try:
            person_type = PersonType(person_type).value
        except ValueError:
            raise ValidationError(f"Unknown person type: {person_type}")
        if person_type in seen:
            raise ValidationError(f"Duplicate price for person type: {person_type}")
        amount = to_money(p.get("price"))
        if amount < 0:
            raise ValidationError(f"Price for {person_type} must be >= 0")
        seen.add(person_type)
        out.append((person_type, amount))
    return out


def _default_capacity(db: Session, product_id: str) -> int:
    s = catalog_service.get_booking_settings(db, product_id)
    return s.capacity_per_slot if s else 0


def _require_bookable_product(db: Session, product_id: str):
    product = catalog_service.find_product(db, product_id)
    if not product:
        raise NotFoundError("Product", product_id)
    if product.type != catalog_service.BOOKABLE:
        raise ValidationError(f'Product "{product.name}" is type "{product.type}", expected "bookable"')
    return product


def _add_slot(db: Session, product_id: str, slot_date: str, slot_time: str, capacity: int,
              prices: list[tuple[str, object]], now: datetime) -> AvailabilitySlot:
    # no capacity given: the product's capacity_per_slot
    if capacity is None:
        capacity = _default_capacity(db, product_id)
    if int(capacity) < 0:
        raise ValidationError("totalCapacity must be >= 0")
    start = slot_start_of(slot_date, slot_time)
    if start <= now:
        raise ValidationError("Cannot create availability slots in the past")

    slot = AvailabilitySlot(
        id=str(uuid.uuid4()),
        product_id=product_id,
        slot_date=slot_date,
        slot_time=slot_time,
        slot_start=start,
        total_capacity=int(capacity),
        reserved_count=0,
        status=SlotStatus.AVAILABLE.value,
        is_active=True,
    )
    db.add(slot)
    for person_type, amount in prices:
        db.add(SlotPrice(id=str(uuid.uuid4()), slot_id=slot.id, person_type=person_type, unit_price=amount))
    return slot


def create_slot(db: Session, product_id: str, slot_date: str, slot_time: str, capacity: int | None,
                prices: list[dict], now: datetime | None = None) -> AvailabilitySlot:
    now = now or utcnow()
    _require_bookable_product(db, product_id)
    checked = _validate_prices(prices)
    slot = _add_slot(db, product_id, slot_date, slot_time, capacity, checked, now)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"A slot already exists for this product at {slot_date} {slot_time}")
    db.refresh(slot)
    logger.info("Created slot %s for product %s at %s %s (capacity %s)",
                slot.id, product_id, slot_date, slot_time, slot.total_capacity)
    return slot


def bulk_create_slots(db: Session, product_id: str, slots: list[dict], prices: list[dict],
                      now: datetime | None = None) -> list[AvailabilitySlot]:
    """Create several slots sharing one price list. All-or-nothing."""
    now = now or utcnow()
    _require_bookable_product(db, product_id)
    checked = _validate_prices(prices)
    if not slots:
        raise ValidationError("At least one slot is required")
    created = []
    try:
        for s in slots:
            created.append(_add_slot(db, product_id, s.get("slotDate"), s.get("slotTime"),
                                     s.get("totalCapacity"), checked, now))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("One or more slots already exist for this product at the requested date and time")
    except Exception:
        db.rollback()
        raise
    for slot in created:
        db.refresh(slot)
    logger.info("Bulk created %d slots for product %s", len(created), product_id)
    return created


def generate_recurring_slots(db: Session, product_id: str, date_from: str, date_to: str,
                             weekdays: list[int], times: list[str], capacity: int, prices: list[dict],
                             now: datetime | None = None) -> dict:
    """
    Expand weekdays x start times over [date_from, date_to] and bulk-create the
    slots. 0=Mon..6=Sun (date.weekday()). Past and already existing slots are skipped.
    """
    now = now or utcnow()
    try:
        start_d = date.fromisoformat(date_from)
        end_d = date.fromisoformat(date_to)
    except (TypeError, ValueError):
        raise ValidationError("dateFrom and dateTo must be YYYY-MM-DD")
    if start_d > end_d or (end_d - start_d).days > 366:
        raise ValidationError("Invalid date range")
    days = set(weekdays or range(7))

    existing = {
        (d, t) for d, t in db.query(AvailabilitySlot.slot_date, AvailabilitySlot.slot_time)
        .filter(AvailabilitySlot.product_id == product_id,
                AvailabilitySlot.slot_date >= date_from,
                AvailabilitySlot.slot_date <= date_to)
        .all()
    }
    wanted, skipped = [], 0
    current = start_d
    while current <= end_d:
        if current.weekday() in days:
            date_str = current.isoformat()
            for t in times:
                if (date_str, t) in existing or slot_start_of(date_str, t) <= now:
                    skipped += 1
                    continue
                wanted.append({"slotDate": date_str, "slotTime": t, "totalCapacity": capacity})
        current += timedelta(days=1)

    if not wanted:
        return {"created": 0, "skipped": skipped, "slots": []}
    created = bulk_create_slots(db, product_id, wanted, prices, now=now)
    return {"created": len(created), "skipped": skipped, "slots": created}


def increment_reserved(db: Session, slot_id: str, amount: int) -> bool:
    """
    Atomically add `amount` to reserved_count if it still fits the capacity.
    Returns False (and changes nothing) when it would overflow.
    """
    result = db.execute(
        update(AvailabilitySlot)
        .where(
            AvailabilitySlot.id == slot_id,
            AvailabilitySlot.reserved_count + amount <= AvailabilitySlot.total_capacity,
        )
        .values(reserved_count=AvailabilitySlot.reserved_count + amount)
        .execution_options(synchronize_session=False)
    )
    ok = result.rowcount == 1
    if ok:
        logger.debug("Reserved %s on slot %s", amount, slot_id)
    else:
        logger.info("Reserve of %s on slot %s rejected: capacity exhausted", amount, slot_id)
    return ok


def decrement_reserved(db: Session, slot_id: str, amount: int) -> None:
    """Atomically release `amount`; clamps at zero instead of underflowing."""
    remaining = AvailabilitySlot.reserved_count - amount
    db.execute(
        update(AvailabilitySlot)
        .where(AvailabilitySlot.id == slot_id)
        .values(reserved_count=case((remaining < 0, 0), else_=remaining))
        .execution_options(synchronize_session=False)
    )
    logger.debug("Released %s on slot %s", amount, slot_id)


def get_slot(db: Session, slot_id: str) -> AvailabilitySlot | None:
    return db.get(AvailabilitySlot, slot_id, populate_existing=True)


def find_by_id(db: Session, slot_id: str) -> AvailabilitySlot:
    slot = get_slot(db, slot_id)
    if not slot:
        raise NotFoundError("Availability slot", slot_id)
    return slot


def remaining_capacity(slot: AvailabilitySlot) -> int:
    return max(0, slot.total_capacity - (slot.reserved_count or 0))


def prices_for(db: Session, slot_ids: list[str]) -> dict[str, list[SlotPrice]]:
    out: dict[str, list[SlotPrice]] = {sid: [] for sid in slot_ids}
    if not slot_ids:
        return out
    for p in db.query(SlotPrice).filter(SlotPrice.slot_id.in_(slot_ids)).order_by(SlotPrice.person_type).all():
        out.setdefault(p.slot_id, []).append(p)
    return out


def price_map(db: Session, slot_id: str) -> dict[str, object]:
    return {p.person_type: p.unit_price for p in prices_for(db, [slot_id])[slot_id]}


def list_by_product(db: Session, product_id: str, date_from: str | None = None, date_to: str | None = None,
                    status: str | None = None, page: int = 1, limit: int = 20,
                    now: datetime | None = None) -> dict:
    """
    Paginated, read-only listing ordered by slot start. `status` filters on the
    effective status, so that filter is applied after the derivation.
    """
    now = now or utcnow()
    page = max(page or 1, 1)
    limit = min(max(limit or 20, 1), MAX_PAGE_SIZE)
    q = db.query(AvailabilitySlot).filter(
        AvailabilitySlot.product_id == product_id,
        AvailabilitySlot.is_active == True,
    )
    if date_from:
        q = q.filter(AvailabilitySlot.slot_date >= date_from)
    if date_to:
        q = q.filter(AvailabilitySlot.slot_date <= date_to)
    q = q.order_by(AvailabilitySlot.slot_start.asc(), AvailabilitySlot.id.asc())

    if status:
        try:
            wanted = SlotStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown slot status: {status}")
        matching = [s for s in q.all() if effective_status(s, now) == wanted]
        total = len(matching)
        rows = matching[(page - 1) * limit:page * limit]
    else:
        total = q.with_entities(func.count(AvailabilitySlot.id)).scalar() or 0
        rows = q.limit(limit).offset((page - 1) * limit).all()

    prices = prices_for(db, [s.id for s in rows])
    return {
        "slots": [serialize_slot(s, prices.get(s.id, []), now) for s in rows],
        "total": int(total),
        "page": page,
        "limit": limit,
    }


def set_slot_status(db: Session, slot_id: str, status: str | None) -> AvailabilitySlot:
    slot = find_by_id(db, slot_id)
    if status is not None:
        try:
            new = SlotStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown slot status: {status}")
        if new not in SETTABLE_STATUSES:
            raise ValidationError(f"Status {new.value} is derived and cannot be set directly")
        status = new.value
    slot.status = status
    db.commit()
    db.refresh(slot)
    logger.info("Slot %s stored status set to %s", slot_id, status)
    return slot


def serialize_slot(slot: AvailabilitySlot, prices: list[SlotPrice], now: datetime | None = None) -> dict:
    now = now or utcnow()
    return {
        "id": slot.id,
        "productId": slot.product_id,
        "slotDate": slot.slot_date,
        "slotTime": slot.slot_time,
        "totalCapacity": slot.total_capacity,
        "reservedCount": slot.reserved_count or 0,
        "remainingCapacity": remaining_capacity(slot),
        "status": effective_status(slot, now).value,
        "isActive": slot.is_active,
        "prices": [{"personType": p.person_type, "price": money_str(p.unit_price)} for p in prices],
    }
