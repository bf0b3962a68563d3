from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.api.deps import get_current_user, get_db
from tetherdesk.schemas import ProfileRead, ProfileUpdate

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/me", response_model=ProfileRead)
def read_my_profile(current_user: models.Profile = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=ProfileRead)
def update_my_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    # Only contact fields are client-writable; counters and flags are server-owned.
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(current_user, field, (value or "").strip() or None)
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return current_user
