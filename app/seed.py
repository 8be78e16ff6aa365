"""Demo data: one bookable product with waitlisting on and a week of slots."""
import logging
from datetime import timedelta

from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError, OperationalError

from app.db.session import SessionLocal
from app.core.timeutil import utcnow
from app.models.product import Product
from app.services import catalog_service, slot_service

logger = logging.getLogger(__name__)

DEMO_PRODUCT_ID = "00000000-0000-4000-8000-000000000001"
DEMO_TIMES = ["09:00", "11:00", "14:00"]
DEMO_PRICES = [
    {"personType": "adult", "price": "45.00"},
    {"personType": "child", "price": "25.00"},
    {"personType": "pet", "price": "5.00"},
]


def run(db: Session | None = None):
    own = db is None
    if own:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            exists = db.get(Product, DEMO_PRODUCT_ID)
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("products table not found yet. Skipping seeding (run alembic upgrade head).")
            return
        if exists:
            return

        catalog_service.register_product(db, "Sunset Harbour Tour", enable_waitlist=True,
                                         capacity_per_slot=12, product_id=DEMO_PRODUCT_ID)
        today = utcnow().date()
        result = slot_service.generate_recurring_slots(
            db, DEMO_PRODUCT_ID,
            (today + timedelta(days=1)).isoformat(), (today + timedelta(days=7)).isoformat(),
            [], DEMO_TIMES, 12, DEMO_PRICES,
        )
        logger.info("Seeded demo product %s with %d slots", DEMO_PRODUCT_ID, result["created"])
    finally:
        if own:
            db.close()


if __name__ == "__main__":
    from app.core.logging import configure_logging

    configure_logging()
    run()
