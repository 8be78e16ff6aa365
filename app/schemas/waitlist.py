from pydantic import BaseModel
from typing import Optional


class WaitlistEntryOut(BaseModel):
    id: str
    availabilityId: str
    userId: str
    position: int
    status: str
    notifiedAt: Optional[str] = None
    claimDeadline: Optional[str] = None
    createdAt: Optional[str] = None


class PromoteOut(BaseModel):
    notifiedUserId: Optional[str] = None
