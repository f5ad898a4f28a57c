from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.identity import Identity, get_identity
from app.schemas.campaign import AudienceSizeRequest
from app.services.segment_service import get_audience_size


router = APIRouter(prefix="/api/audience", tags=["audience"])


@router.post("/size")
def compute_audience_size(
    payload: AudienceSizeRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return {"size": get_audience_size(db, payload.rules)}
