from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from tetherdesk import models
from tetherdesk.api.deps import get_current_user
from tetherdesk.services import proof_storage
from tetherdesk.services.errors import ProofStorageError

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get(f"/{proof_storage.PROOF_BUCKET}/{{key:path}}")
def download_payment_proof(
    key: str,
    current_user: models.Profile = Depends(get_current_user),
):
    """Serve a stored proof to its uploader or to a moderator.

    Ownership is read from the resolved location, never from the raw key.
    """

    try:
        owner_id = proof_storage.proof_owner_id(key)
        if not current_user.is_admin and owner_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proof not found")
        path = proof_storage.resolve_payment_proof(key)
    except ProofStorageError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proof not found")
    return FileResponse(path, filename=path.name)
