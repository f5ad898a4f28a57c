import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.identity import Identity, get_identity
from app.schemas.ai import ConvertRulesRequest, GenerateMessageRequest
from app.services.ai_service import (
    GenerationError,
    convert_natural_language_to_rules,
    generate_campaign_messages,
)
from app.services.segment_service import get_audience_size


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.post("/convert-rules")
def convert_rules(
    payload: ConvertRulesRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    text = (payload.naturalLanguage or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Natural language input is required")

    try:
        rules = convert_natural_language_to_rules(text)
    except GenerationError as e:
        logger.error("rule conversion failed", extra={"error": str(e)})
        raise HTTPException(status_code=500, detail="Failed to convert natural language to rules")

    return {
        "rules": [r.model_dump(mode="json", exclude_none=True) for r in rules],
        "audienceSize": get_audience_size(db, rules),
    }


@router.post("/generate-message")
def generate_message(
    payload: GenerateMessageRequest,
    identity: Identity = Depends(get_identity),
):
    try:
        messages = generate_campaign_messages(payload.objective, payload.audienceDescription)
    except GenerationError as e:
        logger.error("message generation failed", extra={"error": str(e)})
        raise HTTPException(status_code=500, detail="Failed to generate campaign messages")

    return {"messages": messages}
