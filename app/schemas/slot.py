from pydantic import BaseModel, Field
from typing import Optional, List


class PriceIn(BaseModel):
    personType: str
    price: str | float | int


class SlotIn(BaseModel):
    productId: str
    slotDate: str  # YYYY-MM-DD
    slotTime: str  # HH:MM, UTC
    totalCapacity: Optional[int] = None  # defaults to the product capacity_per_slot
    prices: List[PriceIn]


class BulkSlotEntry(BaseModel):
    slotDate: str
    slotTime: str
    totalCapacity: Optional[int] = None


class BulkSlotsIn(BaseModel):
    productId: str
    slots: List[BulkSlotEntry]
    prices: List[PriceIn]


class RecurringSlotsIn(BaseModel):
    productId: str
    dateFrom: str
    dateTo: str
    weekdays: List[int] = Field(default_factory=list)  # 0=Mon..6=Sun, empty = every day
    times: List[str]
    totalCapacity: Optional[int] = None
    prices: List[PriceIn]


class SlotStatusIn(BaseModel):
    status: Optional[str] = None  # null clears the override


class PriceOut(BaseModel):
    personType: str
    price: str


class SlotOut(BaseModel):
    id: str
    productId: str
    slotDate: str
    slotTime: str
    totalCapacity: int
    reservedCount: int
    remainingCapacity: int
    status: str
    isActive: bool
    prices: List[PriceOut] = []


class SlotPage(BaseModel):
    slots: List[SlotOut]
    total: int
    page: int
    limit: int
