from fastapi import APIRouter, Depends

from app.deps.delivery import get_vendor_simulator
from app.schemas.delivery import VendorSendAccepted, VendorSendRequest
from app.services.vendor_service import VendorSimulator


router = APIRouter(prefix="/api/vendor", tags=["vendor"])


@router.post("/send", response_model=VendorSendAccepted, status_code=202)
async def vendor_send(
    payload: VendorSendRequest,
    simulator: VendorSimulator = Depends(get_vendor_simulator),
):
    return simulator.accept(
        message_id=payload.messageId,
        customer_id=payload.customerId,
        message=payload.message,
    )
