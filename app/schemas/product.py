from pydantic import BaseModel
from typing import Optional


class ProductIn(BaseModel):
    id: Optional[str] = None
    name: str
    type: str = "bookable"
    enableWaitlist: bool = False
    capacityPerSlot: int = 10


class ProductOut(BaseModel):
    id: str
    name: str
    type: str
    enableWaitlist: bool
    capacityPerSlot: int
