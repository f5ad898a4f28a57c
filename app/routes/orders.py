from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.identity import Identity, get_identity
from app.schemas.order import OrderCreate, OrderOut
from app.services.order_service import create_order


router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=201)
def ingest_order(
    payload: OrderCreate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return create_order(db, payload)
