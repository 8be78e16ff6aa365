from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import CurrentUser, get_current_user
from app.schemas.waitlist import WaitlistEntryOut
from app.services import waitlist_service

router = APIRouter(tags=["waitlist"])


@router.post("/availability/{availability_id}/waitlist", response_model=WaitlistEntryOut, status_code=201)
def join_waitlist(availability_id: str, db: Session = Depends(get_db), me: CurrentUser = Depends(get_current_user)):
    entry = waitlist_service.join(db, availability_id, me.id)
    return waitlist_service.serialize_entry(entry)
