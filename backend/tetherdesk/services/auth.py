from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from tetherdesk import models


def is_token_revoked(db: Session, jti: str | None) -> bool:
    if not jti:
        return False
    return db.get(models.RevokedToken, str(jti)) is not None


def revoke_token(db: Session, *, claims: dict, profile_id: int) -> bool:
    """Record the token's `jti` as signed out. False when it has none or is already revoked."""

    jti = claims.get("jti")
    if not jti or is_token_revoked(db, jti):
        return False
    exp = claims.get("exp")
    db.add(
        models.RevokedToken(
            jti=str(jti),
            profile_id=int(profile_id),
            expires_at=datetime.utcfromtimestamp(int(exp)) if exp else None,
        )
    )
    db.commit()
    return True
