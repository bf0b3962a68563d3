from __future__ import annotations

import hashlib
import logging
import re
import uuid
from pathlib import Path
from typing import Any

from tetherdesk.config import settings
from tetherdesk.services.errors import ProofStorageError, ProofStorageUnavailableError

logger = logging.getLogger("tetherdesk.storage")

PROOF_BUCKET = "payment-proofs"
ALLOWED_CONTENT_TYPES = {"image/png", "image/jpeg", "image/webp", "application/pdf"}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def storage_root() -> Path:
    """Return the absolute storage root for this backend instance."""

    root = Path(settings.storage_dir)
    if root.is_absolute():
        return root

    # backend/tetherdesk/services/... -> backend/
    backend_root = Path(__file__).resolve().parents[2]
    return (backend_root / root).resolve()


def bucket_root() -> Path:
    return (storage_root() / PROOF_BUCKET).resolve()


def _safe_filename(filename: str) -> str:
    name = _UNSAFE_CHARS.sub("_", Path(filename or "").name).strip("._")
    return name or "proof.bin"


def proof_object_key(
    *,
    user_id: int,
    order_id: str,
    filename: str,
    attempt: str,
    tag: str | None = None,
) -> str:
    """Path inside the proof bucket: `<user_id>/<order_id>[-<tag>]-<attempt>-<filename>`.

    `attempt` is unique per upload, so removing a rejected upload never touches another one.
    """

    stem = f"{order_id}-{tag}" if tag else str(order_id)
    stem = f"{stem}-{attempt}"
    return f"{int(user_id)}/{stem}-{_safe_filename(filename)}"


def _resolve_key(key: str) -> Path:
    root = bucket_root()
    target = (root / key).resolve()
    if not target.is_relative_to(root):
        raise ProofStorageError("Invalid proof path")
    return target


def write_payment_proof(
    *,
    user_id: int,
    order_id: str,
    filename: str,
    content: bytes,
    content_type: str,
    tag: str | None = None,
) -> dict[str, Any]:
    """Persist a proof-of-payment file under the per-user, per-order prefix.

    Uses an atomic write (tmp -> replace). Returns the object key plus size/checksum metadata.
    """

    if not content:
        raise ProofStorageError("Proof file is empty")
    if len(content) > int(settings.max_proof_bytes):
        raise ProofStorageError("Proof file is too large")
    mime = (content_type or "application/octet-stream").split(";")[0].strip().lower()
    if mime not in ALLOWED_CONTENT_TYPES:
        raise ProofStorageError(f"Unsupported proof file type: {mime}")

    key = proof_object_key(
        user_id=user_id,
        order_id=order_id,
        filename=filename,
        attempt=uuid.uuid4().hex[:12],
        tag=tag,
    )
    target_path = _resolve_key(key)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target_path.with_suffix(target_path.suffix + ".tmp")

    try:
        tmp_path.write_bytes(content)
        tmp_path.replace(target_path)
    except OSError as exc:
        logger.error("proof_write_failed", extra={"key": key, "error": str(exc)})
        raise ProofStorageUnavailableError("Could not store the proof file") from exc

    return {
        "key": key,
        "mime": mime,
        "size": len(content),
        "checksum": f"sha256:{hashlib.sha256(content).hexdigest()}",
    }


def delete_payment_proof(key: str) -> bool:
    path = _resolve_key(key)
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


def resolve_payment_proof(key: str) -> Path:
    path = _resolve_key(key)
    if not path.is_file():
        raise ProofStorageError("Proof file not found")
    return path


def proof_owner_id(key: str) -> int | None:
    """Owner of the object `key` actually points at, after `..` segments are resolved."""

    parts = _resolve_key(key).relative_to(bucket_root()).parts
    head = parts[0] if len(parts) > 1 else ""
    return int(head) if head.isdigit() else None


def public_proof_url(key: str | None) -> str | None:
    if not key:
        return None
    base = str(settings.public_base_url or "").rstrip("/")
    return f"{base}{settings.api_prefix}/storage/{PROOF_BUCKET}/{key}"
