"""Management status vocabulary and upstream payment/section state sets.

Loaded once at import time and injected into the workflow and the merger.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Tuple

# Management statuses (operator-facing, stored verbatim)
NEEDS_REVIEW = "확인필요"
CONFIRMED = "확정"
WAITLISTED = "대기"
DEFERRED = "이월"
NO_SHOW = "불참"
AWAITING_PAYMENT = "결제대기중"
REFUND = "환불"
REFUND_WAITLIST_PAYOUT = "환불(대기자환불)"
REFUND_CANCELLED = "환불(참가취소,변심)"

# Upstream payment states
PAYMENT_COMPLETE = "PAYMENT_COMPLETE"
PAYMENT_PENDING = "PAYMENT_PENDING"
PAYMENT_PREPARATION = "PAYMENT_PREPARATION"
PAYMENT_OVERDUE = "PAYMENT_OVERDUE"
REFUND_PROCESSING = "REFUND_PROCESSING"
PARTIAL_REFUND_COMPLETE = "PARTIAL_REFUND_COMPLETE"
REFUND_COMPLETE = "REFUND_COMPLETE"

# Upstream fulfillment section states
RETURN_COMPLETE = "RETURN_COMPLETE"
CANCEL_COMPLETE = "CANCEL_COMPLETE"

# Payment status stored on operator-entered orders
MANUAL_ORDER_PAYMENT_STATUS = "MANUAL_ORDER"


@dataclass(frozen=True)
class StatusVocabulary:
    """Immutable status tables shared by the workflow and the merger."""

    needs_review: str = NEEDS_REVIEW
    confirmed: str = CONFIRMED
    waitlisted: str = WAITLISTED
    deferred: str = DEFERRED
    no_show: str = NO_SHOW
    awaiting_payment: str = AWAITING_PAYMENT
    refund: str = REFUND
    refund_sub_states: Tuple[str, ...] = (REFUND_WAITLIST_PAYOUT, REFUND_CANCELLED)
    payment_complete: str = PAYMENT_COMPLETE
    refund_payment_states: FrozenSet[str] = field(
        default_factory=lambda: frozenset({REFUND_PROCESSING, PARTIAL_REFUND_COMPLETE, REFUND_COMPLETE})
    )
    refund_section_states: FrozenSet[str] = field(
        default_factory=lambda: frozenset({RETURN_COMPLETE, CANCEL_COMPLETE})
    )

    @property
    def normal_statuses(self) -> Tuple[str, ...]:
        return (
            self.needs_review,
            self.confirmed,
            self.waitlisted,
            self.deferred,
            self.no_show,
            self.awaiting_payment,
        )

    @property
    def refund_family(self) -> Tuple[str, ...]:
        return (self.refund,) + self.refund_sub_states

    @property
    def selectable_statuses(self) -> Tuple[str, ...]:
        """Statuses offered to operators for a record in a normal state."""
        return (self.needs_review, self.confirmed, self.waitlisted, self.deferred)

    @property
    def notifiable_statuses(self) -> Tuple[str, ...]:
        return (self.confirmed,) + self.refund_sub_states

    def is_refund_family(self, status: str | None) -> bool:
        return status in self.refund_family

    def is_refund_sub_state(self, status: str | None) -> bool:
        return status in self.refund_sub_states

    def is_known(self, status: str | None) -> bool:
        return status in self.normal_statuses or status in self.refund_family


DEFAULT_VOCABULARY = StatusVocabulary()
