from sqlalchemy import String, Integer, Boolean, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class AvailabilitySlot(Base):
    __tablename__ = "availability_slots"
    __table_args__ = (
        UniqueConstraint("product_id", "slot_date", "slot_time", name="uq_slot_product_date_time"),
        CheckConstraint("reserved_count >= 0 AND reserved_count <= total_capacity", name="ck_slot_reserved_within_capacity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(36), index=True)

    slot_date: Mapped[str] = mapped_column(String(10), index=True)  # YYYY-MM-DD
    slot_time: Mapped[str] = mapped_column(String(5))  # HH:MM (UTC)
    slot_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    total_capacity: Mapped[int] = mapped_column(Integer)
    # Only ever changed by the conditional UPDATEs in slot_service.
    reserved_count: Mapped[int] = mapped_column(Integer, default=0)

    # Admin override; null means "derive from capacity and clock".
    status: Mapped[str | None] = mapped_column(String(20), nullable=True, default="available")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
