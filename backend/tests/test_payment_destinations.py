from tetherdesk import models
from tetherdesk.models.domain import CryptoNetwork, PaymentMethodType
from tetherdesk.services.payment_destinations import (
    build_upi_url,
    deposit_wallet,
    list_active_methods,
    upi_payee,
)


def test_upi_url_quotes_payee_and_formats_amount():
    assert (
        build_upi_url(vpa="desk@okaxis", payee_name="Tether Desk", inr_amount=1234.5)
        == "upi://pay?pa=desk@okaxis&pn=Tether%20Desk&am=1234.50&cu=INR"
    )


def test_upi_payee_prefers_active_method(db_session):
    assert upi_payee(db_session) == ("tetherdesk@axl", "TetherDesk")

    db_session.add_all(
        [
            models.PaymentMethod(
                type=PaymentMethodType.upi, name="Old", identifier="old@ok", is_active=False
            ),
            models.PaymentMethod(type=PaymentMethodType.upi, name="Desk", identifier="desk@ok"),
        ]
    )
    db_session.commit()

    assert upi_payee(db_session) == ("desk@ok", "Desk")


def test_deposit_wallet_is_per_network(db_session):
    db_session.add_all(
        [
            models.PaymentMethod(
                type=PaymentMethodType.crypto,
                name="ERC",
                identifier="0xabc",
                network=CryptoNetwork.erc20,
            ),
            models.PaymentMethod(
                type=PaymentMethodType.crypto,
                name="TRC",
                identifier="Tabc",
                network=CryptoNetwork.trc20,
            ),
        ]
    )
    db_session.commit()

    assert deposit_wallet(db_session, CryptoNetwork.erc20) == "0xabc"
    assert deposit_wallet(db_session, CryptoNetwork.trc20) == "Tabc"
    assert deposit_wallet(db_session, None) is None
    assert len(list_active_methods(db_session, method_type=PaymentMethodType.crypto)) == 2


def test_public_listing_filters(client, db_session):
    db_session.add_all(
        [
            models.PaymentMethod(type=PaymentMethodType.upi, name="Desk", identifier="desk@ok"),
            models.PaymentMethod(
                type=PaymentMethodType.crypto,
                name="TRC",
                identifier="Tabc",
                network=CryptoNetwork.trc20,
            ),
        ]
    )
    db_session.commit()

    crypto = client.get("/api/payment-methods", params={"type": "crypto", "network": "trc20"}).json()

    assert [m["identifier"] for m in crypto] == ["Tabc"]
    assert len(client.get("/api/payment-methods").json()) == 2
