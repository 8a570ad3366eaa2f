import pytest

from app.constants.statuses import (
    AWAITING_PAYMENT,
    CONFIRMED,
    DEFERRED,
    NEEDS_REVIEW,
    NO_SHOW,
    REFUND,
    REFUND_CANCELLED,
    REFUND_WAITLIST_PAYOUT,
    WAITLISTED,
)
from app.constants.sync_reasons import ReasonCode
from app.exceptions import InvalidTransitionError, OrderNotFoundError
from app.models.sync_order import SyncOrder
from app.services.status_workflow import SYSTEM_ACTOR, StatusWorkflow


@pytest.fixture
def workflow():
    return StatusWorkflow()


def make_order(db, status=NEEDS_REVIEW, order_no=1, payment_status="PAYMENT_COMPLETE"):
    order = SyncOrder(
        site_code="S2024test",
        order_no=order_no,
        payment_status=payment_status,
        management_status=status,
        notification_sent=False,
        is_manual_order=False,
    )
    db.add(order)
    db.commit()
    return order


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (NEEDS_REVIEW, CONFIRMED, True),
        (CONFIRMED, WAITLISTED, True),
        (AWAITING_PAYMENT, DEFERRED, True),
        (NO_SHOW, NEEDS_REVIEW, True),
        (NEEDS_REVIEW, REFUND, False),
        (CONFIRMED, REFUND_CANCELLED, False),
        (REFUND, REFUND_WAITLIST_PAYOUT, True),
        (REFUND, REFUND_CANCELLED, True),
        (REFUND, CONFIRMED, False),
        (REFUND_CANCELLED, CONFIRMED, True),
        (REFUND_WAITLIST_PAYOUT, AWAITING_PAYMENT, True),
        (REFUND_CANCELLED, REFUND, False),
        (REFUND_CANCELLED, REFUND_WAITLIST_PAYOUT, False),
    ],
)
def test_manual_transition_table(workflow, current, target, allowed):
    assert workflow.is_valid_manual_transition(current, target) is allowed


def test_rejections_carry_reason(workflow):
    same = workflow.validate_manual_transition(CONFIRMED, CONFIRMED)
    assert same.code == ReasonCode.NOTHING_TO_DO

    unknown = workflow.validate_manual_transition(CONFIRMED, "없는상태")
    assert unknown.code == ReasonCode.UNKNOWN_STATUS

    invalid = workflow.validate_manual_transition(NEEDS_REVIEW, REFUND)
    assert invalid.code == ReasonCode.INVALID_TRANSITION
    assert REFUND in invalid.reason


def test_auto_transition_rules(workflow):
    assert workflow.auto_transition(AWAITING_PAYMENT, "PAYMENT_COMPLETE") == NEEDS_REVIEW
    assert workflow.auto_transition(CONFIRMED, "PAYMENT_COMPLETE") is None
    assert workflow.auto_transition(CONFIRMED, "REFUND_COMPLETE") == REFUND
    assert workflow.auto_transition(AWAITING_PAYMENT, "REFUND_PROCESSING") == REFUND
    assert workflow.auto_transition(REFUND_CANCELLED, "REFUND_COMPLETE") is None
    assert workflow.auto_transition(REFUND, "PARTIAL_REFUND_COMPLETE") is None
    assert workflow.auto_transition(NEEDS_REVIEW, "PAYMENT_PENDING") is None


def test_available_statuses(workflow):
    assert workflow.available_statuses(REFUND) == [REFUND_WAITLIST_PAYOUT, REFUND_CANCELLED]
    assert workflow.available_statuses(CONFIRMED) == [NEEDS_REVIEW, WAITLISTED, DEFERRED]


def test_change_status_records_history(db):
    order = make_order(db)
    workflow = StatusWorkflow(db)

    updated = workflow.change_status(order.id, CONFIRMED, changed_by="operator")

    assert updated.management_status == CONFIRMED
    history = workflow.get_history(order.id)
    assert len(history) == 1
    assert history[0].previous_status == NEEDS_REVIEW
    assert history[0].new_status == CONFIRMED
    assert history[0].changed_by == "operator"


def test_rejected_change_leaves_record_untouched(db):
    order = make_order(db, status=CONFIRMED)
    workflow = StatusWorkflow(db)

    with pytest.raises(InvalidTransitionError) as exc_info:
        workflow.change_status(order.id, REFUND_CANCELLED)

    assert exc_info.value.code == ReasonCode.INVALID_TRANSITION
    db.refresh(order)
    assert order.management_status == CONFIRMED
    assert workflow.get_history(order.id) == []


def test_carryover_round_kept_only_while_deferred(db):
    order = make_order(db)
    workflow = StatusWorkflow(db)

    deferred = workflow.change_status(order.id, DEFERRED, carryover_round=2)
    assert deferred.carryover_round == 2

    confirmed = workflow.change_status(order.id, CONFIRMED, carryover_round=3)
    assert confirmed.carryover_round is None


def test_new_status_resets_notification(db):
    order = make_order(db, status=CONFIRMED)
    workflow = StatusWorkflow(db)

    notified = workflow.mark_notified(order.id)
    assert notified.notification_sent is True
    assert notified.notification_sent_at is not None
    assert not workflow.is_notification_eligible(notified)

    waitlisted = workflow.change_status(order.id, WAITLISTED)
    assert waitlisted.notification_sent is False
    assert waitlisted.notification_sent_at is None


def test_apply_auto_transition_uses_system_actor(db):
    order = make_order(db, status=AWAITING_PAYMENT, payment_status="PAYMENT_PENDING")
    workflow = StatusWorkflow(db)

    assert workflow.apply_auto_transition(order, "PAYMENT_COMPLETE") == NEEDS_REVIEW
    db.commit()

    history = workflow.get_history(order.id)
    assert history[0].changed_by == SYSTEM_ACTOR
    assert history[0].previous_status == AWAITING_PAYMENT
    assert workflow.apply_auto_transition(order, "PAYMENT_COMPLETE") is None


def test_unknown_order(db):
    with pytest.raises(OrderNotFoundError):
        StatusWorkflow(db).change_status(999, CONFIRMED)
