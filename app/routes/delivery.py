from fastapi import APIRouter, Depends, HTTPException

from app.deps.delivery import get_dispatcher
from app.schemas.delivery import DeliveryReceipt
from app.services.delivery_service import DeliveryDispatcher


router = APIRouter(prefix="/api/delivery", tags=["delivery"])


@router.post("/receipt")
async def delivery_receipt(
    payload: DeliveryReceipt,
    dispatcher: DeliveryDispatcher = Depends(get_dispatcher),
):
    found = await dispatcher.record_outcome(payload.messageId, payload.status, payload.failureReason)
    if not found:
        raise HTTPException(status_code=404, detail="Communication log not found")

    return {"success": True}
