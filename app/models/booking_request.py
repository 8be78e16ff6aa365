from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Numeric, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class BookingRequest(Base):
    """A hold: a TTL-bound claim on slot capacity during checkout."""
    __tablename__ = "booking_requests"
    __table_args__ = (
        Index("ix_booking_requests_status_expires_at", "status", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    availability_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)

    quantity: Mapped[int] = mapped_column(Integer)
    person_type_quantities: Mapped[dict] = mapped_column(JSON, default=dict)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))

    status: Mapped[str] = mapped_column(String(20), default="pending_payment")  # cart, pending_payment, confirmed, expired, cancelled
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
