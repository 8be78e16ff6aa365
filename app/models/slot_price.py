from decimal import Decimal
from sqlalchemy import String, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.db.session import Base

class SlotPrice(Base):
    __tablename__ = "slot_prices"
    __table_args__ = (
        UniqueConstraint("slot_id", "person_type", name="uq_slot_price_person_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    slot_id: Mapped[str] = mapped_column(String(36), index=True)
    person_type: Mapped[str] = mapped_column(String(10))  # adult, child, pet
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
