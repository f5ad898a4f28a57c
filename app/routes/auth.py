from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.identity import Identity, get_identity
from app.models.user import User
from app.schemas.user import LoginRequest, LoginResponse


router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()

    user = db.query(User).filter(User.email == email).first()
    if not user:
        user = User(email=email, name=payload.name)
        db.add(user)
        db.commit()
        db.refresh(user)

    # Demo-grade auth: the bearer token is the user's email.
    return {"user": user, "token": user.email}


@router.get("/me")
def me(identity: Identity = Depends(get_identity)):
    return {
        "user": {
            "id": str(identity.user_id),
            "email": identity.email,
            "name": identity.name,
        }
    }
