from datetime import datetime, timedelta

import pytest

from tetherdesk import models
from tetherdesk.models.domain import OrderStatus, TradeDirection
from tetherdesk.services.order_transitions import (
    EXPIRY_FROM,
    MODERATION_FROM,
    USER_PROOF_FROM,
    allowed_moderation_sources,
    atomic_transition_order_status,
)

NOW = datetime(2026, 3, 1, 10, 0, 0)


def _seed(db, user_id, status):
    order = models.Order(
        user_id=user_id,
        direction=TradeDirection.sell,
        status=status,
        inr_amount=500,
        crypto_amount=500 / 83.5,
        exchange_rate=83.5,
        timer_started_at=NOW,
        timer_expires_at=NOW + timedelta(minutes=5),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def test_transition_table_shape():
    assert USER_PROOF_FROM == {OrderStatus.pending}
    assert EXPIRY_FROM == {OrderStatus.pending}
    assert OrderStatus.pending not in MODERATION_FROM
    assert allowed_moderation_sources(OrderStatus.completed) == {
        OrderStatus.pending,
        OrderStatus.processing,
    }
    assert allowed_moderation_sources(OrderStatus.processing) == {OrderStatus.pending}
    for sources in MODERATION_FROM.values():
        assert sources <= {OrderStatus.pending, OrderStatus.processing}


def test_conditional_update_applies_from_allowed_status(db_session, make_profile):
    user = make_profile()
    order = _seed(db_session, user.id, OrderStatus.pending)

    res = atomic_transition_order_status(
        db=db_session,
        order_id=order.id,
        to_status=OrderStatus.processing,
        allowed_from=USER_PROOF_FROM,
        updates={"utr_number": "UTR1"},
        now=NOW,
    )
    db_session.commit()

    assert res.updated is True
    assert res.rowcount == 1
    db_session.refresh(order)
    assert order.status == OrderStatus.processing
    assert order.utr_number == "UTR1"


def test_conditional_update_is_noop_from_other_status(db_session, make_profile):
    user = make_profile()
    order = _seed(db_session, user.id, OrderStatus.completed)

    res = atomic_transition_order_status(
        db=db_session,
        order_id=order.id,
        to_status=OrderStatus.cancelled,
        allowed_from=MODERATION_FROM[OrderStatus.cancelled],
        now=NOW,
    )
    db_session.commit()

    assert res.updated is False
    db_session.refresh(order)
    assert order.status == OrderStatus.completed


def test_conditional_update_respects_owner_filter(db_session, make_profile):
    owner = make_profile("owner@test.com")
    other = make_profile("other@test.com")
    order = _seed(db_session, owner.id, OrderStatus.pending)

    res = atomic_transition_order_status(
        db=db_session,
        order_id=order.id,
        to_status=OrderStatus.processing,
        allowed_from=USER_PROOF_FROM,
        user_id=other.id,
        now=NOW,
    )
    assert res.updated is False


def test_order_rejects_non_positive_amount_on_insert(db_session, make_profile):
    user = make_profile()
    db_session.add(
        models.Order(
            user_id=user.id,
            direction=TradeDirection.buy,
            status=OrderStatus.pending,
            inr_amount=0,
            crypto_amount=0,
            exchange_rate=84,
            timer_started_at=NOW,
            timer_expires_at=NOW + timedelta(minutes=5),
        )
    )
    with pytest.raises(ValueError):
        db_session.commit()
    db_session.rollback()
