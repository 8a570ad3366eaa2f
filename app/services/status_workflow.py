"""Management status state machine.

Statuses fall into two families. Normal statuses are set by operators (and by
the payment-complete auto transition). The refund family is entered only
automatically, from authoritative payment data:

    normal  --(refund payment state)-->  환불  --(operator)-->  환불 sub-state
    환불 sub-state  --(operator)-->  any normal status

Every change, manual or automatic, appends a SyncOrderStatusHistory row.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from app.constants.statuses import DEFAULT_VOCABULARY, StatusVocabulary
from app.constants.sync_reasons import ReasonCode, explain_reason
from app.exceptions import InvalidTransitionError, OrderNotFoundError
from app.models.status_history import SyncOrderStatusHistory
from app.models.sync_order import SyncOrder
from app.utils.clock import utc_now

log = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class TransitionResult:
    accepted: bool
    code: Optional[ReasonCode] = None
    reason: Optional[str] = None


class StatusWorkflow:
    """Rule table plus the persistence of status changes.

    The rule methods are pure; ``change_status``/``apply_auto_transition``
    need a session.
    """

    def __init__(self, db: Optional[Session] = None, vocabulary: StatusVocabulary = DEFAULT_VOCABULARY):
        self.db = db
        self.vocabulary = vocabulary

    # Rules

    def initial_status(self, payment_status: Optional[str], section_status: Optional[str] = None) -> str:
        """Status of a record on its first sync."""
        v = self.vocabulary
        if payment_status in v.refund_payment_states:
            return v.refund
        if section_status in v.refund_section_states:
            return v.refund
        if payment_status == v.payment_complete:
            return v.needs_review
        return v.awaiting_payment

    def auto_transition(self, current: Optional[str], new_payment_status: Optional[str]) -> Optional[str]:
        """Status implied by a payment state change, or None when nothing changes."""
        v = self.vocabulary
        if current == v.awaiting_payment and new_payment_status == v.payment_complete:
            return v.needs_review
        if new_payment_status in v.refund_payment_states:
            if v.is_refund_family(current):
                return None
            return v.refund
        return None

    def validate_manual_transition(self, current: Optional[str], target: str) -> TransitionResult:
        v = self.vocabulary
        if not v.is_known(target):
            return self._reject(ReasonCode.UNKNOWN_STATUS, current, target)
        if current == target:
            return TransitionResult(
                accepted=False,
                code=ReasonCode.NOTHING_TO_DO,
                reason=explain_reason(ReasonCode.NOTHING_TO_DO, {"detail": f"이미 '{target}' 상태입니다."}),
            )

        if current == v.refund:
            allowed = target in v.refund_sub_states
        elif v.is_refund_sub_state(current):
            allowed = target in v.normal_statuses
        else:
            allowed = not v.is_refund_family(target)

        if not allowed:
            return self._reject(ReasonCode.INVALID_TRANSITION, current, target)
        return TransitionResult(accepted=True)

    def is_valid_manual_transition(self, current: Optional[str], target: str) -> bool:
        return self.validate_manual_transition(current, target).accepted

    def available_statuses(self, current: Optional[str]) -> List[str]:
        """Statuses an operator may pick for a record currently in ``current``."""
        v = self.vocabulary
        if current == v.refund:
            return list(v.refund_sub_states)
        return [status for status in v.selectable_statuses if status != current]

    def uses_carryover(self, status: Optional[str]) -> bool:
        return status == self.vocabulary.deferred

    def is_notification_eligible(self, order: SyncOrder) -> bool:
        return order.management_status in self.vocabulary.notifiable_statuses and not order.notification_sent

    @staticmethod
    def _reject(code: ReasonCode, current: Optional[str], target: str) -> TransitionResult:
        return TransitionResult(
            accepted=False,
            code=code,
            reason=explain_reason(code, {"current": current, "target": target}),
        )

    # Persistence

    def get_order(self, order_id: int) -> SyncOrder:
        order = self.db.get(SyncOrder, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def record_history(
        self,
        order: SyncOrder,
        previous_status: Optional[str],
        new_status: str,
        changed_by: str,
        carryover_round: Optional[int] = None,
    ) -> SyncOrderStatusHistory:
        entry = SyncOrderStatusHistory(
            sync_order_id=order.id,
            site_code=order.site_code,
            previous_status=previous_status,
            new_status=new_status,
            carryover_round=carryover_round,
            changed_by=changed_by,
            changed_at=utc_now(),
        )
        self.db.add(entry)
        return entry

    def _set_status(
        self,
        order: SyncOrder,
        new_status: str,
        changed_by: str,
        carryover_round: Optional[int] = None,
    ) -> None:
        previous = order.management_status
        order.management_status = new_status
        order.carryover_round = carryover_round if self.uses_carryover(new_status) else None
        # A new status needs its own notification
        order.notification_sent = False
        order.notification_sent_at = None
        self.record_history(order, previous, new_status, changed_by, order.carryover_round)

    def change_status(
        self,
        order_id: int,
        new_status: str,
        carryover_round: Optional[int] = None,
        changed_by: str = "admin",
    ) -> SyncOrder:
        """Operator-initiated change. Raises InvalidTransitionError with the reason."""
        order = self.get_order(order_id)
        result = self.validate_manual_transition(order.management_status, new_status)
        if not result.accepted:
            log.info(
                f"Rejected status change for order {order.order_no} ({order.site_code}): "
                f"'{order.management_status}' -> '{new_status}': {result.reason}"
            )
            raise InvalidTransitionError(result.code, message=result.reason)

        previous = order.management_status
        self._set_status(order, new_status, changed_by, carryover_round)
        self.db.commit()
        self.db.refresh(order)
        log.info(
            f"Order {order.order_no} ({order.site_code}) status '{previous}' -> '{new_status}' "
            f"by {changed_by}" + (f" (round {order.carryover_round})" if order.carryover_round else "")
        )
        return order

    def apply_auto_transition(self, order: SyncOrder, new_payment_status: Optional[str]) -> Optional[str]:
        """Apply the payment-driven rule to ``order``; the caller commits.

        Returns the new status, or None when the rule does not fire.
        """
        new_status = self.auto_transition(order.management_status, new_payment_status)
        if new_status is None:
            return None
        previous = order.management_status
        self._set_status(order, new_status, SYSTEM_ACTOR)
        log.info(
            f"Order {order.order_no} ({order.site_code}) auto transition '{previous}' -> '{new_status}' "
            f"(payment {new_payment_status})"
        )
        return new_status

    def mark_notified(self, order_id: int) -> SyncOrder:
        """Called by the notification sender once a message went out."""
        order = self.get_order(order_id)
        order.notification_sent = True
        order.notification_sent_at = utc_now()
        self.db.commit()
        self.db.refresh(order)
        log.debug(f"Order {order.order_no} marked notified for status '{order.management_status}'")
        return order

    def get_history(self, order_id: int, limit: Optional[int] = None) -> List[SyncOrderStatusHistory]:
        query = (
            self.db.query(SyncOrderStatusHistory)
            .filter(SyncOrderStatusHistory.sync_order_id == order_id)
            .order_by(SyncOrderStatusHistory.changed_at.desc(), SyncOrderStatusHistory.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()
