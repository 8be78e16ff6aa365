from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import CurrentUser, get_current_user, require_roles
from app.schemas.booking import HoldIn, HoldOut, ConfirmIn, BookingOut, BookingPage
from app.services import booking_service, hold_service, slot_service

router = APIRouter(tags=["bookings"])

# Only the payment side confirms, once the order is paid.
CONFIRM_ROLES = ("admin", "payments")


@router.post("/bookings/request", response_model=HoldOut, status_code=201)
def place_hold(body: HoldIn, db: Session = Depends(get_db), me: CurrentUser = Depends(get_current_user)):
    req = hold_service.place_hold(db, body.availabilityId, me.id, body.personTypeQuantities)
    return hold_service.serialize_hold(req, slot_service.get_slot(db, req.availability_id))


@router.post("/bookings/request/{request_id}/cancel", response_model=HoldOut)
def cancel_hold(request_id: str, db: Session = Depends(get_db), me: CurrentUser = Depends(get_current_user)):
    req = hold_service.cancel_hold(db, request_id, me.id)
    return hold_service.serialize_hold(req, slot_service.get_slot(db, req.availability_id))


@router.post("/bookings/confirm", response_model=BookingOut, status_code=201)
def confirm_booking(body: ConfirmIn, db: Session = Depends(get_db),
                    _: CurrentUser = Depends(require_roles(*CONFIRM_ROLES))):
    return booking_service.confirm(db, body.bookingRequestId, body.orderItemId, body.userId, body.personTypeQuantities)


@router.get("/bookings", response_model=BookingPage)
def my_bookings(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=booking_service.MAX_PAGE_SIZE),
                db: Session = Depends(get_db), me: CurrentUser = Depends(get_current_user)):
    return booking_service.list_user_bookings(db, me.id, page=page, limit=limit)


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), me: CurrentUser = Depends(get_current_user)):
    return booking_service.get_booking(db, booking_id, me.id)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(booking_id: str, db: Session = Depends(get_db), me: CurrentUser = Depends(get_current_user)):
    return booking_service.cancel(db, booking_id, me.id)
