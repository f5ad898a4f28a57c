from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.user import User


@dataclass(frozen=True)
class Identity:
    user_id: UUID
    email: str
    name: str


def get_identity(
    x_user_email: str | None = Header(default=None, alias="X-User-Email"),
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Identity:
    email = x_user_email
    if not email and authorization and authorization.lower().startswith("bearer "):
        email = authorization[len("bearer "):]

    email = (email or "").strip().lower()
    if not email:
        raise HTTPException(
            status_code=401,
            detail="Missing identity. Provide X-User-Email header or a bearer token from /api/auth/login.",
        )

    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")

    return Identity(user_id=user.id, email=user.email, name=user.name)
