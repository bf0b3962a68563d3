import threading
from datetime import datetime, timedelta

from tetherdesk import models
from tetherdesk.models.domain import OrderStatus, TradeDirection
from tetherdesk.services.order_expiry import EXPIRED_NOTE, cancel_expired_orders
from tetherdesk.services.scheduler import ExpirySweepRunner, run_expiry_sweep

NOW = datetime(2026, 3, 1, 10, 0, 0)


def _order(db, user_id, *, status=OrderStatus.pending, started=NOW):
    order = models.Order(
        user_id=user_id,
        direction=TradeDirection.buy,
        status=status,
        inr_amount=1000,
        crypto_amount=1000 / 84,
        exchange_rate=84,
        timer_started_at=started,
        timer_expires_at=started + timedelta(minutes=5),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def test_sweep_cancels_only_lapsed_pending_orders(db_session, make_profile):
    a = make_profile("a@test.com")
    b = make_profile("b@test.com")
    c = make_profile("c@test.com")
    lapsed = _order(db_session, a.id)
    fresh = _order(db_session, b.id, started=NOW + timedelta(minutes=4))
    under_review = _order(db_session, c.id, status=OrderStatus.processing)

    cancelled = cancel_expired_orders(db_session, now=NOW + timedelta(minutes=5))

    assert cancelled == [lapsed.id]
    for o in (lapsed, fresh, under_review):
        db_session.refresh(o)
    assert lapsed.status == OrderStatus.cancelled
    assert lapsed.admin_notes == EXPIRED_NOTE
    assert fresh.status == OrderStatus.pending
    assert under_review.status == OrderStatus.processing


def test_sweep_can_be_scoped_to_one_user(db_session, make_profile):
    a = make_profile("a@test.com")
    b = make_profile("b@test.com")
    mine = _order(db_session, a.id)
    theirs = _order(db_session, b.id)

    assert cancel_expired_orders(db_session, now=NOW + timedelta(hours=1), user_id=a.id) == [mine.id]
    db_session.refresh(theirs)
    assert theirs.status == OrderStatus.pending


def test_sweep_is_idempotent(db_session, make_profile):
    user = make_profile()
    _order(db_session, user.id)
    later = NOW + timedelta(minutes=10)
    assert len(cancel_expired_orders(db_session, now=later)) == 1
    assert cancel_expired_orders(db_session, now=later) == []


def test_run_expiry_sweep_uses_its_own_session(db_session, make_profile):
    user = make_profile()
    order = _order(db_session, user.id, started=datetime.utcnow() - timedelta(minutes=30))

    assert run_expiry_sweep() == [order.id]
    db_session.refresh(order)
    assert order.status == OrderStatus.cancelled


def test_runner_start_stop(monkeypatch):
    swept = threading.Event()

    def _fake_sweep(user_id=None):
        swept.set()
        return []

    monkeypatch.setattr("tetherdesk.services.scheduler.run_expiry_sweep", _fake_sweep)

    runner = ExpirySweepRunner(interval_seconds=3600)
    runner.start()
    assert runner.running
    assert swept.wait(timeout=5)
    runner.stop(timeout=5)
    assert not runner.running
