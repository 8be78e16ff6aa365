from datetime import timedelta

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.notification_log import NotificationLog
from app.models.waitlist_entry import WaitlistEntry
from app.services import booking_service, catalog_service, hold_service, notification_service, slot_service, waitlist_service
from conftest import NOW, PRICES, SLOT_DATE, SLOT_TIME, TestingSessionLocal


@pytest.fixture
def full_slot(db, make_slot):
    """Capacity-1 slot fully booked by `owner`; returns (slot, booking)."""
    slot = make_slot(capacity=1)
    req = hold_service.place_hold(db, slot.id, "owner", {"adult": 1}, now=NOW)
    booking = booking_service.confirm(db, req.id, None, "owner", {}, now=NOW)
    return slot, booking


def entry_of(db, slot_id, user_id):
    db.expire_all()
    return (
        db.query(WaitlistEntry)
        .filter(WaitlistEntry.availability_id == slot_id, WaitlistEntry.user_id == user_id)
        .order_by(WaitlistEntry.position.desc())
        .first()
    )


def live_entries(db, slot_id, user_id):
    db.expire_all()
    return (
        db.query(WaitlistEntry)
        .filter(WaitlistEntry.availability_id == slot_id, WaitlistEntry.user_id == user_id,
                WaitlistEntry.status.in_(["waiting", "notified"]))
        .all()
    )


class TestJoin:
    def test_positions_are_fifo(self, db, full_slot):
        slot, _ = full_slot
        a = waitlist_service.join(db, slot.id, "A", now=NOW)
        b = waitlist_service.join(db, slot.id, "B", now=NOW)
        assert (a.position, a.status) == (1, "waiting")
        assert (b.position, b.status) == (2, "waiting")

    def test_slot_with_room(self, db, make_slot):
        slot = make_slot(capacity=3)
        with pytest.raises(ValidationError, match="still has availability"):
            waitlist_service.join(db, slot.id, "A", now=NOW)

    def test_waitlist_disabled(self, db):
        p = catalog_service.register_product(db, "Quiet Tour", enable_waitlist=False)
        slot = slot_service.create_slot(db, p.id, SLOT_DATE, SLOT_TIME, 0, PRICES, now=NOW)
        with pytest.raises(ValidationError, match="not enabled"):
            waitlist_service.join(db, slot.id, "A", now=NOW)

    def test_unknown_slot(self, db):
        with pytest.raises(NotFoundError):
            waitlist_service.join(db, "missing", "A", now=NOW)

    def test_duplicate_join(self, db, full_slot):
        slot, _ = full_slot
        waitlist_service.join(db, slot.id, "A", now=NOW)
        with pytest.raises(ConflictError, match="already on the waitlist"):
            waitlist_service.join(db, slot.id, "A", now=NOW)

    def test_rejoin_after_claim_lapsed(self, db, full_slot, sent):
        slot, _ = full_slot
        waitlist_service.join(db, slot.id, "A", now=NOW)
        waitlist_service.promote_next(db, slot.id, now=NOW)
        # the notified entry is past its deadline but not swept yet
        again = waitlist_service.join(db, slot.id, "A", now=NOW + timedelta(minutes=31))
        assert again.position == 2
        assert [e.status for e in live_entries(db, slot.id, "A")] == ["waiting"]

    def test_store_keeps_one_live_entry_per_user(self, db, full_slot):
        slot, _ = full_slot
        waitlist_service.join(db, slot.id, "A", now=NOW)
        db.add(WaitlistEntry(id="old", availability_id=slot.id, user_id="A", position=5,
                             status="expired", created_at=NOW))
        db.commit()
        db.add(WaitlistEntry(id="dup", availability_id=slot.id, user_id="A", position=6,
                             status="waiting", created_at=NOW))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_same_user_joining_concurrently(self, db, full_slot):
        slot, _ = full_slot
        raced = []

        def other_join(session, flush_context, instances):
            # another request by the same user commits first
            if raced:
                return
            raced.append(True)
            other = TestingSessionLocal()
            other.add(WaitlistEntry(id="first", availability_id=slot.id, user_id="A", position=1,
                                    status="waiting", created_at=NOW))
            other.commit()
            other.close()

        event.listen(db, "before_flush", other_join)
        try:
            with pytest.raises(ConflictError, match="already on the waitlist"):
                waitlist_service.join(db, slot.id, "A", now=NOW)
        finally:
            event.remove(db, "before_flush", other_join)
        assert [e.id for e in live_entries(db, slot.id, "A")] == ["first"]


class TestPromotion:
    def test_empty_queue(self, db, full_slot, sent):
        slot, _ = full_slot
        assert waitlist_service.promote_next(db, slot.id, now=NOW) is None
        assert sent == []

    def test_two_promotions_follow_join_order(self, db, full_slot, sent):
        slot, _ = full_slot
        for user in ("A", "B", "C"):
            waitlist_service.join(db, slot.id, user, now=NOW)
        assert waitlist_service.promote_next(db, slot.id, now=NOW) == "A"
        assert waitlist_service.promote_next(db, slot.id, now=NOW) == "B"
        assert entry_of(db, slot.id, "C").status == "waiting"

    def test_cancellation_notifies_first_in_line(self, db, full_slot, sent):
        slot, booking = full_slot
        waitlist_service.join(db, slot.id, "A", now=NOW)
        waitlist_service.join(db, slot.id, "B", now=NOW)
        assert slot_service.get_slot(db, slot.id).reserved_count == 1

        booking_service.cancel(db, booking["id"], "owner", now=NOW)

        assert slot_service.get_slot(db, slot.id).reserved_count == 0
        a = entry_of(db, slot.id, "A")
        assert a.status == "notified"
        assert waitlist_service.serialize_entry(a)["claimDeadline"] == (NOW + timedelta(minutes=30)).isoformat()
        assert entry_of(db, slot.id, "B").status == "waiting"
        assert sent == [{
            "type": "waitlist_spot_available",
            "userId": "A",
            "availabilityId": slot.id,
            "claimDeadline": (NOW + timedelta(minutes=30)).isoformat(),
        }]

    def test_failed_notification_keeps_promotion(self, db, full_slot, monkeypatch):
        slot, _ = full_slot
        waitlist_service.join(db, slot.id, "A", now=NOW)

        def unreachable(message):
            raise RuntimeError("connection refused")

        monkeypatch.setattr(notification_service, "deliver", unreachable)
        assert waitlist_service.promote_next(db, slot.id, now=NOW) == "A"
        assert entry_of(db, slot.id, "A").status == "notified"
        log = db.query(NotificationLog).one()
        assert (log.kind, log.status, log.attempts) == ("waitlist_spot_available", "failed", 1)

    def test_notified_user_who_books_is_converted(self, db, full_slot, sent):
        slot, booking = full_slot
        waitlist_service.join(db, slot.id, "A", now=NOW)
        booking_service.cancel(db, booking["id"], "owner", now=NOW)

        later = NOW + timedelta(minutes=10)
        req = hold_service.place_hold(db, slot.id, "A", {"adult": 1}, now=later)
        booking_service.confirm(db, req.id, None, "A", {}, now=later)
        assert entry_of(db, slot.id, "A").status == "converted"


class TestClaimExpiry:
    def test_lapsed_claim_passes_to_next(self, db, full_slot, sent):
        slot, booking = full_slot
        waitlist_service.join(db, slot.id, "A", now=NOW)
        waitlist_service.join(db, slot.id, "B", now=NOW)
        booking_service.cancel(db, booking["id"], "owner", now=NOW)

        result = waitlist_service.expire_lapsed_claims(db, now=NOW + timedelta(minutes=31))
        assert result == {"expired": 1, "promoted": ["B"]}
        assert entry_of(db, slot.id, "A").status == "expired"
        assert entry_of(db, slot.id, "B").status == "notified"
        assert [m["userId"] for m in sent] == ["A", "B"]

    def test_nothing_to_offer_when_slot_refilled(self, db, full_slot, sent):
        slot, booking = full_slot
        waitlist_service.join(db, slot.id, "A", now=NOW)
        waitlist_service.join(db, slot.id, "B", now=NOW)
        booking_service.cancel(db, booking["id"], "owner", now=NOW)
        hold_service.place_hold(db, slot.id, "walk-in", {"adult": 1}, now=NOW + timedelta(minutes=5))

        result = waitlist_service.expire_lapsed_claims(db, now=NOW + timedelta(minutes=31))
        assert result == {"expired": 1, "promoted": []}
        assert entry_of(db, slot.id, "B").status == "waiting"

    def test_rerun_is_harmless(self, db, full_slot, sent):
        slot, booking = full_slot
        waitlist_service.join(db, slot.id, "A", now=NOW)
        booking_service.cancel(db, booking["id"], "owner", now=NOW)
        later = NOW + timedelta(minutes=45)
        assert waitlist_service.expire_lapsed_claims(db, now=later)["expired"] == 1
        assert waitlist_service.expire_lapsed_claims(db, now=later) == {"expired": 0, "promoted": []}


class TestPredicates:
    def entry(self, status, deadline=None):
        return WaitlistEntry(id="e", availability_id="s", user_id="u", position=1, status=status, expired_at=deadline)

    def test_can_notify(self):
        assert waitlist_service.can_notify(self.entry("waiting"))
        assert not waitlist_service.can_notify(self.entry("notified", NOW))

    def test_can_convert_only_before_deadline(self):
        e = self.entry("notified", NOW + timedelta(minutes=30))
        assert waitlist_service.can_convert(e, NOW + timedelta(minutes=29))
        assert not waitlist_service.can_convert(e, NOW + timedelta(minutes=30))
        assert not waitlist_service.can_convert(self.entry("waiting"), NOW)

    def test_is_expired(self):
        deadline = NOW + timedelta(minutes=30)
        assert waitlist_service.is_expired(self.entry("expired"), NOW)
        assert waitlist_service.is_expired(self.entry("notified", deadline), deadline)
        assert not waitlist_service.is_expired(self.entry("notified", deadline), NOW)
        assert not waitlist_service.is_expired(self.entry("converted"), NOW)
