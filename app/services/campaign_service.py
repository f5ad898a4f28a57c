import logging
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.models.campaign import Campaign
from app.models.communication_log import CommunicationLog
from app.models.customer import Customer
from app.services.segment_service import get_audience_size
from app.utils.time import utcnow


logger = logging.getLogger(__name__)


# Campaign status only moves forward.
_TRANSITIONS = {
    "draft": {"scheduled", "sending", "cancelled", "failed"},
    "scheduled": {"sending", "cancelled", "failed"},
    "sending": {"completed", "completed_with_pending", "cancelled", "failed"},
}

TERMINAL_STATUSES = {"completed", "completed_with_pending", "cancelled", "failed"}


def advance_campaign_status(campaign: Campaign, status: str) -> bool:
    current = campaign.status or "draft"
    if status not in _TRANSITIONS.get(current, set()):
        logger.warning(
            "ignored campaign status transition",
            extra={"campaign_id": str(campaign.id), "from": current, "to": status},
        )
        return False

    campaign.status = status
    if status in TERMINAL_STATUSES:
        campaign.completed_at = utcnow()
    return True


def create_campaign(db: Session, payload, *, user_id: UUID) -> Campaign:
    rules = payload.rules
    campaign = Campaign(
        name=payload.name,
        description=payload.description,
        rules=[r.model_dump(mode="json", exclude_none=True) for r in rules],
        message=payload.message,
        audience_size=get_audience_size(db, rules),
        status="draft",
        scheduled_at=payload.scheduled_at,
        created_by=user_id,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)

    logger.info(
        "campaign created",
        extra={"campaign_id": str(campaign.id), "audience_size": campaign.audience_size},
    )
    return campaign


def get_user_campaign(db: Session, campaign_id: UUID, *, user_id: UUID) -> Campaign:
    campaign = (
        db.query(Campaign)
        .filter(Campaign.id == campaign_id)
        .filter(Campaign.created_by == user_id)
        .first()
    )
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


def _stats_columns():
    return (
        func.count(case((CommunicationLog.status == "sent", 1))).label("sent_count"),
        func.count(case((CommunicationLog.status == "failed", 1))).label("failed_count"),
        func.count(case((CommunicationLog.status == "pending", 1))).label("pending_count"),
    )


def _with_stats(campaign: Campaign, sent: int, failed: int, pending: int) -> dict:
    return {
        "id": campaign.id,
        "name": campaign.name,
        "description": campaign.description,
        "rules": campaign.rules or [],
        "message": campaign.message,
        "audience_size": campaign.audience_size,
        "status": campaign.status,
        "scheduled_at": campaign.scheduled_at,
        "completed_at": campaign.completed_at,
        "created_by": campaign.created_by,
        "created_at": campaign.created_at,
        "sent_count": int(sent or 0),
        "failed_count": int(failed or 0),
        "pending_count": int(pending or 0),
    }


def list_campaigns_with_stats(db: Session, *, user_id: UUID) -> list[dict]:
    """
    Campaigns of a user with delivery counts computed from their logs.

    The counts are the only view of actual delivery progress; they may
    disagree with ``status`` (a campaign can be completed_with_pending).
    """
    rows = (
        db.query(Campaign, *_stats_columns())
        .outerjoin(CommunicationLog, CommunicationLog.campaign_id == Campaign.id)
        .filter(Campaign.created_by == user_id)
        .group_by(Campaign.id)
        .order_by(Campaign.created_at.desc())
        .all()
    )
    return [_with_stats(c, sent, failed, pending) for c, sent, failed, pending in rows]


def get_campaign_with_stats(db: Session, campaign: Campaign) -> dict:
    sent, failed, pending = (
        db.query(*_stats_columns())
        .filter(CommunicationLog.campaign_id == campaign.id)
        .one()
    )
    return _with_stats(campaign, sent, failed, pending)


def stop_campaign(db: Session, campaign: Campaign) -> int:
    """Fail every still-pending log and mark the campaign cancelled."""
    if campaign.status in TERMINAL_STATUSES:
        raise HTTPException(status_code=400, detail=f"Campaign is already {campaign.status}")

    failed = (
        db.query(CommunicationLog)
        .filter(CommunicationLog.campaign_id == campaign.id)
        .filter(CommunicationLog.status == "pending")
        .update(
            {CommunicationLog.status: "failed", CommunicationLog.failure_reason: "Campaign stopped"},
            synchronize_session=False,
        )
    )
    advance_campaign_status(campaign, "cancelled")
    db.commit()

    logger.info("campaign stopped", extra={"campaign_id": str(campaign.id), "pending_failed": failed})
    return failed


def delete_campaign(db: Session, campaign: Campaign) -> None:
    db.query(CommunicationLog).filter(CommunicationLog.campaign_id == campaign.id).delete(
        synchronize_session=False
    )
    db.delete(campaign)
    db.commit()


def get_dashboard_stats(db: Session, *, user_id: UUID) -> dict:
    total_customers = int(db.query(func.count(Customer.id)).scalar() or 0)
    campaigns = list_campaigns_with_stats(db, user_id=user_id)

    active = sum(1 for c in campaigns if c["status"] in {"sending", "scheduled"})
    total_sent = sum(c["sent_count"] for c in campaigns)
    total_failed = sum(c["failed_count"] for c in campaigns)

    resolved = total_sent + total_failed
    delivery_rate = (total_sent / resolved) * 100 if resolved > 0 else 0.0

    return {
        "totalCustomers": total_customers,
        "activeCampaigns": active,
        "deliveryRate": f"{delivery_rate:.1f}",
        # assumed average revenue per delivered message
        "revenueImpact": total_sent * 150,
    }
