from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_request_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    order_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)  # external order line

    user_id: Mapped[str] = mapped_column(String(36), index=True)
    availability_id: Mapped[str] = mapped_column(String(36), index=True)

    status: Mapped[str] = mapped_column(String(20), default="confirmed")  # confirmed, checked_in, cancelled, no_show

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
