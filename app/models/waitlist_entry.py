from sqlalchemy import String, Integer, DateTime, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

# At most one live entry per user and slot.
LIVE_ENTRY = text("status IN ('waiting', 'notified')")

class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"
    __table_args__ = (
        UniqueConstraint("availability_id", "position", name="uq_waitlist_slot_position"),
        Index("uq_waitlist_live_user", "availability_id", "user_id", unique=True,
              postgresql_where=LIVE_ENTRY, sqlite_where=LIVE_ENTRY),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    availability_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)

    position: Mapped[int] = mapped_column(Integer)  # FIFO, per slot
    status: Mapped[str] = mapped_column(String(20), default="waiting")  # waiting, notified, expired, converted

    notified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    expired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)  # claim deadline

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
