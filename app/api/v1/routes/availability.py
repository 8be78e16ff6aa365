from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.slot import SlotOut, SlotPage
from app.services import slot_service

router = APIRouter(tags=["availability"])


@router.get("/availability", response_model=SlotPage)
def list_availability(productId: str,
                      dateFrom: str | None = None,
                      dateTo: str | None = None,
                      status: str | None = None,
                      page: int = Query(1, ge=1),
                      limit: int = Query(20, ge=1, le=slot_service.MAX_PAGE_SIZE),
                      db: Session = Depends(get_db)):
    return slot_service.list_by_product(db, productId, date_from=dateFrom, date_to=dateTo,
                                        status=status, page=page, limit=limit)


@router.get("/availability/{availability_id}", response_model=SlotOut)
def get_availability(availability_id: str, db: Session = Depends(get_db)):
    slot = slot_service.find_by_id(db, availability_id)
    prices = slot_service.prices_for(db, [slot.id])[slot.id]
    return slot_service.serialize_slot(slot, prices)
