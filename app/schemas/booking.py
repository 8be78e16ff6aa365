from pydantic import BaseModel, Field
from typing import Optional, List, Dict


class HoldIn(BaseModel):
    availabilityId: str
    personTypeQuantities: Dict[str, int]


class HoldSlotOut(BaseModel):
    slotDate: str
    slotTime: str
    productId: str


class HoldOut(BaseModel):
    id: str
    userId: str
    availabilityId: str
    status: str
    quantity: int
    personTypeQuantities: Dict[str, int]
    totalPrice: str
    createdAt: Optional[str] = None
    expiresAt: Optional[str] = None
    availability: Optional[HoldSlotOut] = None


class ConfirmIn(BaseModel):
    bookingRequestId: str
    orderItemId: Optional[str] = None
    userId: str  # the holder the payment was taken from
    personTypeQuantities: Dict[str, int] = Field(default_factory=dict)


class BookingItemOut(BaseModel):
    personType: str
    quantity: int
    unitPrice: str
    totalPrice: str


class BookingOut(BaseModel):
    id: str
    bookingRequestId: str
    orderItemId: Optional[str] = None
    userId: str
    availabilityId: str
    status: str
    slotDate: Optional[str] = None
    slotTime: Optional[str] = None
    productId: Optional[str] = None
    productName: Optional[str] = None
    personTypeQuantities: Dict[str, int] = {}
    items: List[BookingItemOut] = []
    totalPrice: str
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class BookingPage(BaseModel):
    bookings: List[BookingOut]
    total: int
    page: int
    limit: int
