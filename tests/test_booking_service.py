from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.services import booking_service, hold_service, slot_service, waitlist_service
from conftest import NOW

SLOT_DAY_MORNING = datetime(2030, 6, 2, 7, 30, tzinfo=timezone.utc)
AFTER_START = datetime(2030, 6, 2, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def booked(db, make_slot):
    """A capacity-4 slot with one confirmed booking of 2 adults + 1 child by u1."""
    slot = make_slot(capacity=4)
    req = hold_service.place_hold(db, slot.id, "u1", {"adult": 2, "child": 1}, now=NOW)
    booking = booking_service.confirm(db, req.id, "order-item-1", "u1", {"adult": 2, "child": 1}, now=NOW)
    return slot, req, booking


def reserved(db, slot_id):
    return slot_service.get_slot(db, slot_id).reserved_count


class TestConfirm:
    def test_builds_items_and_enrichment(self, db, booked):
        slot, req, booking = booked
        assert booking["status"] == "confirmed"
        assert booking["bookingRequestId"] == req.id
        assert booking["orderItemId"] == "order-item-1"
        assert booking["slotDate"] == slot.slot_date
        assert booking["productName"] == "Harbour Tour"
        assert booking["personTypeQuantities"] == {"adult": 2, "child": 1}
        assert [(i["personType"], i["unitPrice"], i["totalPrice"]) for i in booking["items"]] == [
            ("adult", "40.00", "80.00"),
            ("child", "20.50", "20.50"),
        ]
        assert booking["totalPrice"] == "100.50"

    def test_capacity_is_not_claimed_twice(self, db, booked):
        slot, _, _ = booked
        assert reserved(db, slot.id) == 3

    def test_hold_is_consumed(self, db, booked):
        _, req, _ = booked
        assert hold_service.get_hold(db, req.id).status == "confirmed"
        with pytest.raises(ConflictError, match=r"not pending payment \(status: confirmed\)"):
            booking_service.confirm(db, req.id, None, "u1", {}, now=NOW)

    def test_expired_hold_cannot_be_confirmed(self, db, make_slot):
        slot = make_slot()
        req = hold_service.place_hold(db, slot.id, "u1", {"adult": 1}, now=NOW)
        hold_service.expire_stale_holds(db, now=NOW + timedelta(minutes=30))
        with pytest.raises(ConflictError, match="status: expired"):
            booking_service.confirm(db, req.id, None, "u1", {}, now=NOW + timedelta(minutes=31))

    def test_unknown_request(self, db):
        with pytest.raises(NotFoundError):
            booking_service.confirm(db, "missing", None, "u1", {}, now=NOW)

    def test_someone_elses_hold(self, db, make_slot):
        slot = make_slot()
        req = hold_service.place_hold(db, slot.id, "u1", {"adult": 1}, now=NOW)
        with pytest.raises(NotFoundError):
            booking_service.confirm(db, req.id, None, "u2", {}, now=NOW)

    def test_quantities_must_match_the_hold(self, db, make_slot):
        slot = make_slot()
        req = hold_service.place_hold(db, slot.id, "u1", {"adult": 1}, now=NOW)
        with pytest.raises(ValidationError):
            booking_service.confirm(db, req.id, None, "u1", {"adult": 2}, now=NOW)
        assert hold_service.get_hold(db, req.id).status == "pending_payment"

    def test_unknown_person_type(self, db, make_slot):
        slot = make_slot()
        req = hold_service.place_hold(db, slot.id, "u1", {"adult": 1}, now=NOW)
        with pytest.raises(ValidationError, match="Unknown person type: dragon"):
            booking_service.confirm(db, req.id, None, "u1", {"dragon": 1}, now=NOW)
        assert hold_service.get_hold(db, req.id).status == "pending_payment"


class TestCheckIn:
    def test_on_the_day(self, db, booked):
        _, _, booking = booked
        out = booking_service.check_in(db, booking["id"], now=SLOT_DAY_MORNING)
        assert out["status"] == "checked_in"

    def test_day_before(self, db, booked):
        _, _, booking = booked
        with pytest.raises(ConflictError, match="day of the booking"):
            booking_service.check_in(db, booking["id"], now=NOW)

    def test_after_the_day_has_passed(self, db, booked):
        _, _, booking = booked
        with pytest.raises(ConflictError):
            booking_service.check_in(db, booking["id"], now=SLOT_DAY_MORNING + timedelta(days=1))

    def test_only_once(self, db, booked):
        _, _, booking = booked
        booking_service.check_in(db, booking["id"], now=SLOT_DAY_MORNING)
        with pytest.raises(ConflictError, match="checked_in"):
            booking_service.check_in(db, booking["id"], now=SLOT_DAY_MORNING)

    def test_unknown_booking(self, db):
        with pytest.raises(NotFoundError):
            booking_service.check_in(db, "missing", now=NOW)


class TestCancel:
    def test_releases_capacity(self, db, booked, sent):
        slot, _, booking = booked
        out = booking_service.cancel(db, booking["id"], "u1", now=NOW)
        assert out["status"] == "cancelled"
        assert reserved(db, slot.id) == 0

    def test_twice(self, db, booked, sent):
        slot, _, booking = booked
        booking_service.cancel(db, booking["id"], "u1", now=NOW)
        with pytest.raises(ConflictError) as exc:
            booking_service.cancel(db, booking["id"], "u1", now=NOW)
        assert exc.value.message == (
            'Cannot cancel booking with status "cancelled". Only confirmed bookings can be cancelled.'
        )
        assert reserved(db, slot.id) == 0

    def test_not_owner(self, db, booked):
        slot, _, booking = booked
        with pytest.raises(NotFoundError):
            booking_service.cancel(db, booking["id"], "u2", now=NOW)
        assert reserved(db, slot.id) == 3

    def test_checked_in_booking(self, db, booked):
        _, _, booking = booked
        booking_service.check_in(db, booking["id"], now=SLOT_DAY_MORNING)
        with pytest.raises(ConflictError):
            booking_service.cancel(db, booking["id"], "u1", now=SLOT_DAY_MORNING)

    def test_failed_promotion_does_not_undo_cancellation(self, db, booked, monkeypatch):
        slot, _, booking = booked

        def boom(*args, **kwargs):
            raise RuntimeError("waitlist down")

        monkeypatch.setattr(waitlist_service, "promote_next", boom)
        out = booking_service.cancel(db, booking["id"], "u1", now=NOW)
        assert out["status"] == "cancelled"
        assert reserved(db, slot.id) == 0


class TestNoShow:
    def test_before_start(self, db, booked):
        _, _, booking = booked
        with pytest.raises(ConflictError, match="before the event time"):
            booking_service.mark_no_show(db, booking["id"], now=SLOT_DAY_MORNING)

    def test_after_start_keeps_capacity(self, db, booked, sent):
        slot, _, booking = booked
        out = booking_service.mark_no_show(db, booking["id"], now=AFTER_START)
        assert out["status"] == "no_show"
        assert reserved(db, slot.id) == 3
        assert sent == []

    def test_wrong_status(self, db, booked, sent):
        _, _, booking = booked
        booking_service.cancel(db, booking["id"], "u1", now=NOW)
        with pytest.raises(ConflictError, match='booking status is "cancelled"'):
            booking_service.mark_no_show(db, booking["id"], now=AFTER_START)


class TestQueries:
    def test_get_booking_hides_other_users(self, db, booked):
        _, _, booking = booked
        assert booking_service.get_booking(db, booking["id"], "u1")["id"] == booking["id"]
        with pytest.raises(NotFoundError):
            booking_service.get_booking(db, booking["id"], "u2")

    def test_list_user_bookings(self, db, make_slot):
        slot = make_slot(capacity=10)
        for minute in range(3):
            req = hold_service.place_hold(db, slot.id, "u1", {"adult": 1}, now=NOW)
            booking_service.confirm(db, req.id, None, "u1", {}, now=NOW + timedelta(minutes=minute))
        page = booking_service.list_user_bookings(db, "u1", page=1, limit=2)
        assert page["total"] == 3
        assert len(page["bookings"]) == 2
        assert booking_service.list_user_bookings(db, "u2")["total"] == 0
