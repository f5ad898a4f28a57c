from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.identity import Identity, get_identity
from app.services.campaign_service import get_dashboard_stats


router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats")
def dashboard_stats(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return get_dashboard_stats(db, user_id=identity.user_id)
