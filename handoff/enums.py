# handoff/enums.py
from enum import Enum, IntEnum

class TradeState(str, Enum):
    """Trade state as reported by the marketplace."""
    QUEUED = "queued"
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    CANCELLED = "cancelled"

class OfferPhase(str, Enum):
    """Engine-side phase of a TrackedOffer."""
    QUEUED = "queued"
    PENDING = "pending"
    SENT = "sent"
    CONFIRMED = "confirmed"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"

class OfferState(IntEnum):
    """Offer states emitted by the trading protocol."""
    INVALID = 1
    ACTIVE = 2
    ACCEPTED = 3
    COUNTERED = 4
    EXPIRED = 5
    CANCELED = 6
    DECLINED = 7
    INVALID_ITEMS = 8
    CREATED_NEEDS_CONFIRMATION = 9
    CANCELED_BY_SECOND_FACTOR = 10
    IN_ESCROW = 11

class SendStatus(str, Enum):
    SENT = "sent"
    PENDING = "pending"     # needs mobile confirmation
    NEEDS_CONFIRMATION = "needsConfirmation"

class DeadlineState(str, Enum):
    ARMED = "armed"
    FIRED = "fired"
    DISARMED = "disarmed"
