from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import CurrentUser, require_roles
from app.schemas.slot import SlotIn, BulkSlotsIn, RecurringSlotsIn, SlotStatusIn, SlotOut
from app.schemas.product import ProductIn, ProductOut
from app.schemas.booking import BookingOut
from app.schemas.waitlist import WaitlistEntryOut, PromoteOut
from app.services import booking_service, catalog_service, slot_service, waitlist_service
from app.services.audit_service import log_audit

router = APIRouter(tags=["admin"])

admin_only = require_roles("admin")


def _slots_out(db: Session, slots: list) -> list[dict]:
    prices = slot_service.prices_for(db, [s.id for s in slots])
    return [slot_service.serialize_slot(s, prices.get(s.id, [])) for s in slots]


@router.post("/admin/products", response_model=ProductOut, status_code=201)
def register_product(body: ProductIn, db: Session = Depends(get_db), me: CurrentUser = Depends(admin_only)):
    p = catalog_service.register_product(db, body.name, product_type=body.type, enable_waitlist=body.enableWaitlist,
                                         capacity_per_slot=body.capacityPerSlot, product_id=body.id)
    log_audit(db, actor_user_id=me.id, action="product_registered", entity_type="product", entity_id=p.id,
              details={"type": p.type, "enableWaitlist": body.enableWaitlist})
    return {"id": p.id, "name": p.name, "type": p.type,
            "enableWaitlist": body.enableWaitlist, "capacityPerSlot": body.capacityPerSlot}


@router.post("/admin/availability", response_model=SlotOut, status_code=201)
def create_slot(body: SlotIn, db: Session = Depends(get_db), me: CurrentUser = Depends(admin_only)):
    slot = slot_service.create_slot(db, body.productId, body.slotDate, body.slotTime, body.totalCapacity,
                                    [p.model_dump() for p in body.prices])
    log_audit(db, actor_user_id=me.id, action="slot_created", entity_type="availability_slot", entity_id=slot.id,
              details={"slotDate": body.slotDate, "slotTime": body.slotTime, "totalCapacity": body.totalCapacity})
    return _slots_out(db, [slot])[0]


@router.post("/admin/availability/bulk", status_code=201)
def bulk_create_slots(body: BulkSlotsIn, db: Session = Depends(get_db), me: CurrentUser = Depends(admin_only)):
    slots = slot_service.bulk_create_slots(db, body.productId, [s.model_dump() for s in body.slots],
                                           [p.model_dump() for p in body.prices])
    log_audit(db, actor_user_id=me.id, action="slots_bulk_created", entity_type="product", entity_id=body.productId,
              details={"count": len(slots)})
    return {"created": len(slots), "slots": _slots_out(db, slots)}


@router.post("/admin/availability/recurring", status_code=201)
def recurring_slots(body: RecurringSlotsIn, db: Session = Depends(get_db), me: CurrentUser = Depends(admin_only)):
    result = slot_service.generate_recurring_slots(db, body.productId, body.dateFrom, body.dateTo, body.weekdays,
                                                   body.times, body.totalCapacity, [p.model_dump() for p in body.prices])
    log_audit(db, actor_user_id=me.id, action="slots_recurring_created", entity_type="product",
              entity_id=body.productId, details={"created": result["created"], "skipped": result["skipped"]})
    return {"created": result["created"], "skipped": result["skipped"], "slots": _slots_out(db, result["slots"])}


@router.patch("/admin/availability/{availability_id}/status", response_model=SlotOut)
def set_slot_status(availability_id: str, body: SlotStatusIn, db: Session = Depends(get_db),
                    me: CurrentUser = Depends(admin_only)):
    slot = slot_service.set_slot_status(db, availability_id, body.status)
    log_audit(db, actor_user_id=me.id, action="slot_status_set", entity_type="availability_slot",
              entity_id=availability_id, details={"status": body.status})
    return _slots_out(db, [slot])[0]


@router.post("/admin/bookings/{booking_id}/check-in", response_model=BookingOut)
def check_in(booking_id: str, db: Session = Depends(get_db), me: CurrentUser = Depends(admin_only)):
    out = booking_service.check_in(db, booking_id)
    log_audit(db, actor_user_id=me.id, action="booking_checked_in", entity_type="booking", entity_id=booking_id)
    return out


@router.post("/admin/bookings/{booking_id}/no-show", response_model=BookingOut)
def no_show(booking_id: str, db: Session = Depends(get_db), me: CurrentUser = Depends(admin_only)):
    out = booking_service.mark_no_show(db, booking_id)
    log_audit(db, actor_user_id=me.id, action="booking_no_show", entity_type="booking", entity_id=booking_id)
    return out


@router.get("/admin/availability/{availability_id}/waitlist", response_model=list[WaitlistEntryOut])
def list_waitlist(availability_id: str, db: Session = Depends(get_db), me: CurrentUser = Depends(admin_only)):
    return [waitlist_service.serialize_entry(e) for e in waitlist_service.list_waitlist(db, availability_id)]


@router.post("/admin/availability/{availability_id}/waitlist/promote", response_model=PromoteOut)
def promote_waitlist(availability_id: str, db: Session = Depends(get_db), me: CurrentUser = Depends(admin_only)):
    slot_service.find_by_id(db, availability_id)
    user_id = waitlist_service.promote_next(db, availability_id)
    log_audit(db, actor_user_id=me.id, action="waitlist_promoted", entity_type="availability_slot",
              entity_id=availability_id, details={"notifiedUserId": user_id})
    return {"notifiedUserId": user_id}
