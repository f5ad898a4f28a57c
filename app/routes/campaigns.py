import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.delivery import get_dispatcher
from app.deps.identity import Identity, get_identity
from app.models.communication_log import CommunicationLog
from app.schemas.campaign import CampaignCreate, CampaignOut, CampaignWithStatsOut, CommunicationLogOut
from app.services.ai_service import GenerationError, generate_campaign_insights
from app.services.campaign_service import (
    create_campaign,
    delete_campaign,
    get_campaign_with_stats,
    get_user_campaign,
    list_campaigns_with_stats,
    stop_campaign,
)
from app.services.delivery_service import DeliveryDispatcher


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])


@router.get("", response_model=list[CampaignWithStatsOut])
def list_campaigns(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    return list_campaigns_with_stats(db, user_id=identity.user_id)


@router.post("", response_model=CampaignOut, status_code=201)
async def create_and_send_campaign(
    payload: CampaignCreate,
    identity: Identity = Depends(get_identity),
    dispatcher: DeliveryDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
):
    campaign = await asyncio.to_thread(create_campaign, db, payload, user_id=identity.user_id)

    # Logs are written before we answer; the sends themselves run in the background.
    await dispatcher.dispatch(campaign.id)

    await asyncio.to_thread(db.refresh, campaign)
    return campaign


@router.get("/{campaign_id}", response_model=CampaignWithStatsOut)
def get_campaign(
    campaign_id: UUID,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    campaign = get_user_campaign(db, campaign_id, user_id=identity.user_id)
    return get_campaign_with_stats(db, campaign)


@router.get("/{campaign_id}/logs", response_model=list[CommunicationLogOut])
def list_campaign_logs(
    campaign_id: UUID,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    get_user_campaign(db, campaign_id, user_id=identity.user_id)

    q = db.query(CommunicationLog).filter(CommunicationLog.campaign_id == campaign_id)
    if status:
        q = q.filter(CommunicationLog.status == status)

    limit = max(1, min(limit, 500))
    offset = max(0, offset)

    return (
        q.order_by(CommunicationLog.created_at.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


@router.post("/{campaign_id}/stop", response_model=CampaignWithStatsOut)
async def stop_sending_campaign(
    campaign_id: UUID,
    identity: Identity = Depends(get_identity),
    dispatcher: DeliveryDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
):
    campaign = await asyncio.to_thread(get_user_campaign, db, campaign_id, user_id=identity.user_id)

    cancelled = dispatcher.cancel(campaign.id)
    await asyncio.to_thread(stop_campaign, db, campaign)

    logger.info("campaign stop requested", extra={"campaign_id": str(campaign_id), "cancelled_sends": cancelled})

    return await asyncio.to_thread(get_campaign_with_stats, db, campaign)


@router.delete("/{campaign_id}")
async def remove_campaign(
    campaign_id: UUID,
    identity: Identity = Depends(get_identity),
    dispatcher: DeliveryDispatcher = Depends(get_dispatcher),
    db: Session = Depends(get_db),
):
    campaign = await asyncio.to_thread(get_user_campaign, db, campaign_id, user_id=identity.user_id)

    cancelled = dispatcher.cancel(campaign_id)
    await asyncio.to_thread(delete_campaign, db, campaign)

    return {"deleted": True, "cancelledSends": cancelled}


@router.get("/{campaign_id}/insights")
def get_campaign_insights(
    campaign_id: UUID,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    campaign = get_user_campaign(db, campaign_id, user_id=identity.user_id)
    stats = get_campaign_with_stats(db, campaign)

    try:
        summary = generate_campaign_insights(stats)
    except GenerationError as e:
        logger.error("campaign insights failed", extra={"campaign_id": str(campaign_id), "error": str(e)})
        raise HTTPException(status_code=500, detail="Failed to generate campaign insights")

    return {"campaignId": str(campaign.id), "summary": summary}
