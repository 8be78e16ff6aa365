"""
Closed status sets and their allowed transitions.

Every status column stores the enum's string value; services move a row from
one status to another only through `ensure_transition`.
"""
import enum

from app.core.errors import ConflictError


class SlotStatus(str, enum.Enum):
    AVAILABLE = "available"
    FULL = "full"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELED = "canceled"


# Stored values an admin may set; these always win over the derived status.
SLOT_OVERRIDE_STATUSES = {SlotStatus.CANCELED, SlotStatus.CLOSED, SlotStatus.COMPLETED}


class HoldStatus(str, enum.Enum):
    CART = "cart"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class WaitlistStatus(str, enum.Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    EXPIRED = "expired"
    CONVERTED = "converted"


class PersonType(str, enum.Enum):
    ADULT = "adult"
    CHILD = "child"
    PET = "pet"


TRANSITIONS: dict[type[enum.Enum], dict[enum.Enum, set[enum.Enum]]] = {
    HoldStatus: {
        HoldStatus.CART: {HoldStatus.PENDING_PAYMENT, HoldStatus.CANCELLED},
        HoldStatus.PENDING_PAYMENT: {HoldStatus.CONFIRMED, HoldStatus.EXPIRED, HoldStatus.CANCELLED},
        HoldStatus.CONFIRMED: set(),
        HoldStatus.EXPIRED: set(),
        HoldStatus.CANCELLED: set(),
    },
    BookingStatus: {
        BookingStatus.CONFIRMED: {BookingStatus.CHECKED_IN, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
        BookingStatus.CHECKED_IN: set(),
        BookingStatus.CANCELLED: set(),
        BookingStatus.NO_SHOW: set(),
    },
    WaitlistStatus: {
        WaitlistStatus.WAITING: {WaitlistStatus.NOTIFIED, WaitlistStatus.EXPIRED},
        WaitlistStatus.NOTIFIED: {WaitlistStatus.CONVERTED, WaitlistStatus.EXPIRED},
        WaitlistStatus.CONVERTED: set(),
        WaitlistStatus.EXPIRED: set(),
    },
}

# Holds whose quantity is still counted in the slot's reserved_count. A cart
# hold has not claimed capacity yet.
ACTIVE_HOLD_STATUSES = {HoldStatus.PENDING_PAYMENT}


def can_transition(current: enum.Enum, new: enum.Enum) -> bool:
    table = TRANSITIONS[type(new)]
    return new in table.get(type(new)(current), set())


def ensure_transition(current: str, new: enum.Enum, what: str = "record") -> None:
    """Raise ConflictError unless `current -> new` is listed in the transition table."""
    try:
        cur = type(new)(current)
    except ValueError:
        raise ConflictError(f"Unknown {what} status: {current}")
    if not can_transition(cur, new):
        raise ConflictError(f"Cannot change {what} status from {cur.value} to {new.value}")
