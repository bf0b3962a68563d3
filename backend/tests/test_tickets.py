from datetime import datetime, timedelta

from tetherdesk import models
from tetherdesk.models.domain import OrderStatus, TradeDirection


def _order(db, user_id):
    now = datetime.utcnow()
    order = models.Order(
        user_id=user_id,
        direction=TradeDirection.buy,
        status=OrderStatus.completed,
        inr_amount=1000,
        crypto_amount=1000 / 84,
        exchange_rate=84,
        timer_started_at=now,
        timer_expires_at=now + timedelta(minutes=5),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def test_user_opens_and_lists_own_tickets(client, make_profile, login_as):
    user = make_profile("user@test.com")
    other = make_profile("other@test.com")
    login_as(user.id)

    resp = client.post("/api/tickets", json={"subject": "  KYC  ", "message": "How long?"})

    assert resp.status_code == 201, resp.text
    assert resp.json()["subject"] == "KYC"
    assert resp.json()["status"] == "open"
    assert [t["subject"] for t in client.get("/api/tickets").json()] == ["KYC"]

    login_as(other.id)
    assert client.get("/api/tickets").json() == []


def test_ticket_may_reference_own_order_only(client, db_session, make_profile, login_as):
    owner = make_profile("owner@test.com")
    other = make_profile("other@test.com")
    order = _order(db_session, owner.id)

    login_as(other.id)
    denied = client.post(
        "/api/tickets", json={"subject": "Refund", "message": "?", "transaction_id": order.id}
    )
    assert denied.status_code == 404

    login_as(owner.id)
    ok = client.post(
        "/api/tickets", json={"subject": "Refund", "message": "?", "transaction_id": order.id}
    )
    assert ok.status_code == 201
    assert ok.json()["transaction_id"] == order.id


def test_order_creation_opens_a_ticket(client, make_profile, rate_table, login_as):
    user = make_profile()
    login_as(user.id)
    order = client.post(
        "/api/orders", json={"direction": "buy", "inr_amount": 2000, "wallet_address": "TXyz"}
    ).json()

    tickets = client.get("/api/tickets").json()

    assert len(tickets) == 1
    assert tickets[0]["transaction_id"] == order["id"]
    assert tickets[0]["subject"] == f"Buy Order Created: {order['id']}"
    assert "₹2000.00" in tickets[0]["message"]


def test_empty_ticket_is_rejected(client, make_profile, login_as):
    user = make_profile()
    login_as(user.id)

    assert client.post("/api/tickets", json={"subject": "", "message": "x"}).status_code == 422
