import pathlib
import re
from datetime import datetime, timedelta

from sqlalchemy.exc import OperationalError

from tetherdesk import models
from tetherdesk.api.routes.orders import build_order_read
from tetherdesk.models.domain import CryptoNetwork, OrderStatus, PaymentMethodType, TradeDirection
from tetherdesk.schemas.orders import PaymentInstructions
from tetherdesk.services import active_order_guard

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

BUY = {"direction": "buy", "inr_amount": 5000, "wallet_address": "TXyz123"}
SELL = {"direction": "sell", "inr_amount": 4175, "payout_method": "upi", "upi_id": "me@okbank"}


def _seed_order(db, user_id, *, status=OrderStatus.pending, started=None, direction=TradeDirection.buy):
    started = started or datetime.utcnow()
    order = models.Order(
        user_id=user_id,
        direction=direction,
        status=status,
        inr_amount=1000,
        crypto_amount=1000 / 84,
        exchange_rate=84,
        crypto_network=CryptoNetwork.trc20,
        timer_started_at=started,
        timer_expires_at=started + timedelta(minutes=5),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def _upload_proof(client, order_id):
    resp = client.post(
        f"/api/orders/{order_id}/proof",
        files={"file": ("receipt.png", PNG, "image/png")},
        data={"utr_number": "123456789012"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["proof_url"].removeprefix("http://testserver")


def test_create_buy_order_returns_countdown_and_upi_link(client, make_profile, rate_table, login_as):
    user = make_profile()
    login_as(user.id)

    resp = client.post("/api/orders", json=BUY)

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "pending"
    assert body["exchange_rate"] == 84.0
    assert abs(body["crypto_amount"] - 5000 / 84) < 1e-9
    assert 290 <= body["remaining_seconds"] <= 300
    assert body["is_expired"] is False
    assert body["payment"]["upi_url"] == "upi://pay?pa=tetherdesk@axl&pn=TetherDesk&am=5000.00&cu=INR"
    assert body["payment"]["deposit_address"] is None


def test_create_sell_order_points_to_deposit_wallet(
    client, db_session, make_profile, rate_table, login_as
):
    db_session.add(
        models.PaymentMethod(
            type=PaymentMethodType.crypto,
            name="USDT TRC-20",
            identifier="TDepositWallet",
            network=CryptoNetwork.trc20,
        )
    )
    db_session.commit()
    user = make_profile()
    login_as(user.id)

    resp = client.post("/api/orders", json=SELL)

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["direction"] == "sell"
    assert body["exchange_rate"] == 83.5
    assert body["payment"]["deposit_address"] == "TDepositWallet"
    assert body["payment"]["upi_url"] is None


def test_second_order_is_rejected_while_one_is_active(client, make_profile, rate_table, login_as):
    user = make_profile()
    login_as(user.id)
    assert client.post("/api/orders", json=BUY).status_code == 201

    resp = client.post("/api/orders", json=SELL)

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "ACTIVE_ORDER_EXISTS"


def test_create_fails_closed_when_guard_cannot_read(
    client, make_profile, rate_table, login_as, monkeypatch
):
    user = make_profile()
    login_as(user.id)

    def _boom(*_a, **_k):
        raise OperationalError("select", {}, Exception("db down"))

    monkeypatch.setattr(active_order_guard, "count_active_orders", _boom)

    resp = client.post("/api/orders", json=BUY)

    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "GUARD_UNAVAILABLE"


def test_stale_quoted_rate_is_rejected(client, make_profile, rate_table, login_as):
    user = make_profile()
    login_as(user.id)

    resp = client.post("/api/orders", json={**BUY, "quoted_rate": 85.0})

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "RATE_CHANGED"


def test_missing_payout_details_are_rejected(client, make_profile, rate_table, login_as):
    user = make_profile()
    login_as(user.id)

    resp = client.post("/api/orders", json={"direction": "sell", "inr_amount": 1000})

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "INVALID_ORDER_DETAILS"


def test_active_order_endpoint(client, make_profile, rate_table, login_as):
    user = make_profile()
    login_as(user.id)

    assert client.get("/api/orders/active").json() == {"has_active_order": False, "order": None}

    created = client.post("/api/orders", json=BUY).json()
    body = client.get("/api/orders/active").json()

    assert body["has_active_order"] is True
    assert body["order"]["id"] == created["id"]


def test_orders_are_private_to_their_owner(client, db_session, make_profile, login_as):
    owner = make_profile("owner@test.com")
    other = make_profile("other@test.com")
    order = _seed_order(db_session, owner.id)

    login_as(other.id)
    assert client.get(f"/api/orders/{order.id}").status_code == 404
    assert client.get("/api/orders").json() == []

    login_as(owner.id)
    listed = client.get("/api/orders").json()
    assert [o["id"] for o in listed] == [order.id]


def test_proof_upload_moves_order_to_processing(client, make_profile, rate_table, login_as):
    user = make_profile()
    login_as(user.id)
    order_id = client.post("/api/orders", json=BUY).json()["id"]

    resp = client.post(
        f"/api/orders/{order_id}/proof",
        files={"file": ("receipt.png", PNG, "image/png")},
        data={"utr_number": "123456789012"},
    )

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "processing"
    assert body["utr_number"] == "123456789012"
    assert body["remaining_seconds"] == 0
    assert re.fullmatch(
        rf"http://testserver/api/storage/payment-proofs/{user.id}/{order_id}-[0-9a-f]{{12}}-receipt\.png",
        body["proof_url"],
    )
    assert body["payment"]["upi_url"].startswith("upi://pay?")

    again = client.post(
        f"/api/orders/{order_id}/proof",
        files={"file": ("receipt.png", PNG, "image/png")},
        data={"utr_number": "123456789012"},
    )
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "INVALID_TRANSITION"


def test_buy_proof_requires_utr(client, make_profile, rate_table, login_as):
    user = make_profile()
    login_as(user.id)
    order_id = client.post("/api/orders", json=BUY).json()["id"]

    resp = client.post(
        f"/api/orders/{order_id}/proof", files={"file": ("receipt.png", PNG, "image/png")}
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "INVALID_ORDER_DETAILS"


def test_proof_after_expiry_is_rejected_and_order_cancelled(
    client, db_session, make_profile, login_as
):
    user = make_profile()
    order = _seed_order(db_session, user.id, started=datetime.utcnow() - timedelta(minutes=10))
    login_as(user.id)

    resp = client.post(
        f"/api/orders/{order.id}/proof",
        files={"file": ("receipt.png", PNG, "image/png")},
        data={"utr_number": "123456789012"},
    )

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "PAYMENT_WINDOW_EXPIRED"
    db_session.refresh(order)
    assert order.status == OrderStatus.cancelled


def test_countdown_stream_for_lapsed_order_emits_expired(client, db_session, make_profile, login_as):
    user = make_profile()
    order = _seed_order(db_session, user.id, started=datetime.utcnow() - timedelta(minutes=6))
    login_as(user.id)

    resp = client.get(f"/api/orders/{order.id}/countdown")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert "event: expired" in resp.text
    assert "event: tick" not in resp.text
    db_session.refresh(order)
    assert order.status == OrderStatus.cancelled


def test_countdown_stream_for_settled_order_reports_status(
    client, db_session, make_profile, login_as
):
    user = make_profile()
    order = _seed_order(db_session, user.id, status=OrderStatus.completed)
    login_as(user.id)

    resp = client.get(f"/api/orders/{order.id}/countdown")

    assert resp.status_code == 200
    assert resp.text.startswith("event: status\n")
    assert '"status": "completed"' in resp.text


def test_stored_proof_is_served_to_owner_and_admin_only(
    client, make_profile, rate_table, login_as
):
    user = make_profile("owner@test.com")
    stranger = make_profile("stranger@test.com")
    admin = make_profile("admin@test.com", is_admin=True)
    login_as(user.id)
    order_id = client.post("/api/orders", json=BUY).json()["id"]
    path = _upload_proof(client, order_id)

    resp = client.get(path)
    assert resp.status_code == 200
    assert resp.content == PNG

    login_as(admin.id)
    assert client.get(path).status_code == 200

    login_as(stranger.id)
    assert client.get(path).status_code == 404


def test_stored_proof_cannot_be_reached_through_another_users_prefix(
    client, make_profile, rate_table, login_as
):
    victim = make_profile("victim@test.com")
    attacker = make_profile("attacker@test.com")
    admin = make_profile("admin@test.com", is_admin=True)
    login_as(victim.id)
    order_id = client.post("/api/orders", json=BUY).json()["id"]
    path = _upload_proof(client, order_id)
    object_name = path.rsplit("/", 1)[-1]
    # Encoded dots survive client-side normalisation and reach the route as `..`.
    crafted = f"/api/storage/payment-proofs/{attacker.id}/%2E%2E/{victim.id}/{object_name}"

    login_as(attacker.id)
    assert client.get(crafted).status_code == 404

    login_as(admin.id)
    resp = client.get(crafted)
    assert resp.status_code == 200
    assert resp.content == PNG


def test_proof_upload_reports_storage_outage_as_503(
    client, make_profile, rate_table, login_as, monkeypatch
):
    user = make_profile()
    login_as(user.id)
    order_id = client.post("/api/orders", json=BUY).json()["id"]

    def _disk_full(self, data):
        raise OSError("No space left on device")

    monkeypatch.setattr(pathlib.Path, "write_bytes", _disk_full)

    resp = client.post(
        f"/api/orders/{order_id}/proof",
        files={"file": ("receipt.png", PNG, "image/png")},
        data={"utr_number": "123456789012"},
    )

    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "PROOF_STORAGE_UNAVAILABLE"
    assert client.get(f"/api/orders/{order_id}").json()["status"] == "pending"


def test_orders_require_authentication(client):
    assert client.get("/api/orders").status_code == 401
    assert client.post("/api/orders", json=BUY).status_code == 401


def test_order_read_carries_typed_payment_instructions(db_session, make_profile):
    user = make_profile()
    order = _seed_order(db_session, user.id)

    read = build_order_read(db_session, order)

    assert isinstance(read.payment, PaymentInstructions)
    assert read.payment.upi_url.startswith("upi://pay?")
    assert read.model_dump()["payment"]["deposit_address"] is None
