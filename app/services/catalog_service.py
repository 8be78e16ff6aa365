import uuid
from dataclasses import dataclass
from sqlalchemy.orm import Session
from app.models.product import Product
from app.models.booking_settings import BookingSettings

BOOKABLE = "bookable"


@dataclass(frozen=True)
class ProductInfo:
    id: str
    type: str
    name: str


def find_product(db: Session, product_id: str) -> ProductInfo | None:
    p = db.get(Product, product_id)
    if not p:
        return None
    return ProductInfo(id=p.id, type=p.type, name=p.name or "")


def get_booking_settings(db: Session, product_id: str) -> BookingSettings | None:
    return db.query(BookingSettings).filter(BookingSettings.product_id == product_id).first()


def waitlist_enabled(db: Session, product_id: str) -> bool:
    s = get_booking_settings(db, product_id)
    return bool(s and s.enable_waitlist)


def register_product(db: Session, name: str, product_type: str = BOOKABLE, enable_waitlist: bool = False,
                     capacity_per_slot: int = 10, product_id: str | None = None) -> Product:
    """Create or update the local product record and its booking settings."""
    pid = product_id or str(uuid.uuid4())
    p = db.get(Product, pid)
    if not p:
        p = Product(id=pid, name=name, type=product_type)
        db.add(p)
    else:
        p.name = name
        p.type = product_type
    s = get_booking_settings(db, pid)
    if not s:
        db.add(BookingSettings(id=str(uuid.uuid4()), product_id=pid,
                               enable_waitlist=enable_waitlist, capacity_per_slot=capacity_per_slot))
    else:
        s.enable_waitlist = enable_waitlist
        s.capacity_per_slot = capacity_per_slot
    db.commit()
    db.refresh(p)
    return p
