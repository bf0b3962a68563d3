import pathlib
import re

import pytest

from tetherdesk.services import proof_storage
from tetherdesk.services.errors import ProofStorageError, ProofStorageUnavailableError

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def _write(**kw):
    args = dict(user_id=7, order_id="abc", filename="receipt.png", content=PNG, content_type="image/png")
    args.update(kw)
    return proof_storage.write_payment_proof(**args)


def test_write_stores_under_user_prefix():
    stored = _write()

    assert re.fullmatch(r"7/abc-[0-9a-f]{12}-receipt\.png", stored["key"])
    assert stored["size"] == len(PNG)
    assert stored["checksum"].startswith("sha256:")
    assert proof_storage.resolve_payment_proof(stored["key"]).read_bytes() == PNG
    assert proof_storage.proof_owner_id(stored["key"]) == 7


def test_each_upload_gets_its_own_key():
    first = _write()
    second = _write()

    assert first["key"] != second["key"]
    proof_storage.delete_payment_proof(second["key"])
    assert proof_storage.resolve_payment_proof(first["key"]).read_bytes() == PNG


def test_filename_is_sanitised():
    stored = _write(filename="../../etc/pass wd.pdf", content_type="application/pdf")

    assert re.fullmatch(r"7/abc-[0-9a-f]{12}-pass_wd\.pdf", stored["key"])


def test_object_key_layout():
    key = proof_storage.proof_object_key(
        user_id=7, order_id="abc", filename="wallet.jpg", attempt="a1b2", tag="sell"
    )
    assert key == "7/abc-sell-a1b2-wallet.jpg"


def test_content_type_parameters_are_ignored():
    assert _write(content_type="image/jpeg; charset=binary")["mime"] == "image/jpeg"


@pytest.mark.parametrize(
    "kw",
    [
        {"content": b""},
        {"content_type": "text/html"},
        {"content": b"x" * (5 * 1024 * 1024 + 1)},
    ],
)
def test_invalid_uploads_are_rejected(kw):
    with pytest.raises(ProofStorageError):
        _write(**kw)


def test_disk_failure_is_reported_as_unavailable(monkeypatch):
    def _fail(self, data):
        raise OSError("disk full")

    monkeypatch.setattr(pathlib.Path, "write_bytes", _fail)

    with pytest.raises(ProofStorageUnavailableError) as exc:
        _write()
    assert exc.value.code == "PROOF_STORAGE_UNAVAILABLE"


def test_keys_cannot_escape_the_bucket():
    with pytest.raises(ProofStorageError):
        proof_storage.resolve_payment_proof("../secrets.txt")
    with pytest.raises(ProofStorageError):
        proof_storage.proof_owner_id("../secrets.txt")


def test_owner_is_taken_from_the_resolved_path():
    assert proof_storage.proof_owner_id("7/../8/x.png") == 8
    assert proof_storage.proof_owner_id("7/./x.png") == 7
    assert proof_storage.proof_owner_id("7/..") is None


def test_delete_is_idempotent():
    key = _write()["key"]

    assert proof_storage.delete_payment_proof(key) is True
    assert proof_storage.delete_payment_proof(key) is False


def test_public_url():
    assert proof_storage.public_proof_url(None) is None
    assert (
        proof_storage.public_proof_url("7/abc-receipt.png")
        == "http://testserver/api/storage/payment-proofs/7/abc-receipt.png"
    )
    assert proof_storage.proof_owner_id("not-a-user/x.png") is None
