from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tetherdesk import models
from tetherdesk.api.deps import get_current_user, get_db, get_token_payload
from tetherdesk.core.observability import request_context
from tetherdesk.core.security import create_access_token, hash_password, verify_password
from tetherdesk.schemas import ProfileRead, SignupRequest, Token
from tetherdesk.services.audit import audit_event
from tetherdesk.services.auth import revoke_token

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token", response_model=Token)
def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    email = (form_data.username or "").strip().lower()
    try:
        user = db.query(models.Profile).filter(models.Profile.email == email).first()
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable. Please try again shortly.",
        )
    if not user or not verify_password(form_data.password, user.hashed_password):
        audit_event("auth.login_failed", None, {"email": email}, db=db, **request_context(request))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password"
        )
    if not user.active:
        audit_event(
            "auth.login_inactive", user.id, {"email": email}, db=db, **request_context(request)
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")

    access_token = create_access_token(subject=user.email)
    audit_event("auth.login_success", user.id, {"email": email}, db=db, **request_context(request))
    return Token(access_token=access_token)


@router.get("/me", response_model=ProfileRead)
def read_current_user(current_user: models.Profile = Depends(get_current_user)):
    return current_user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    payload: dict = Depends(get_token_payload),
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    revoke_token(db, claims=payload, profile_id=current_user.id)
    audit_event("auth.logout", current_user.id, {}, db=db, **request_context(request))
    return None


@router.post("/signup", response_model=ProfileRead, status_code=status.HTTP_201_CREATED)
def signup(request: Request, payload: SignupRequest, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    if "@" not in email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email")
    if db.query(models.Profile).filter(models.Profile.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered"
        )

    # Public signup never grants admin; moderators are provisioned out of band.
    user = models.Profile(
        email=email,
        full_name=(payload.full_name or "").strip() or None,
        hashed_password=hash_password(payload.password),
        is_admin=False,
        active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    audit_event("auth.signup", user.id, {"email": email}, db=db, **request_context(request))
    return user
