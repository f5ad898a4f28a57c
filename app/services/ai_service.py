"""
Text-generation helpers backed by the Anthropic Messages API.

The model is treated as an opaque service that should answer with JSON.
Anything missing or unparseable surfaces as ``GenerationError``; callers turn
that into a generic failure response and never retry.
"""
import json
import logging
import re

import anthropic
from pydantic import ValidationError

from app import config
from app.schemas.segment_rule import SegmentRule


logger = logging.getLogger(__name__)


class GenerationError(Exception):
    pass


_client = None


def _get_client():
    global _client
    if _client is None:
        if not config.ANTHROPIC_API_KEY:
            raise GenerationError("ANTHROPIC_API_KEY is not configured")
        _client = anthropic.Anthropic(api_key=config.ANTHROPIC_API_KEY)
    return _client


def _complete(system: str, prompt: str, *, temperature: float) -> str:
    client = _get_client()
    try:
        response = client.messages.create(
            model=config.LLM_MODEL,
            max_tokens=config.LLM_MAX_TOKENS,
            system=system,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
        )
    except anthropic.APIError as e:
        raise GenerationError(f"Text generation request failed: {e}") from e

    text = "".join(
        getattr(block, "text", "") for block in (response.content or []) if getattr(block, "type", None) == "text"
    )
    if not text.strip():
        raise GenerationError("No content received from text generation service")
    return text


def _parse_json(content: str):
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    # The model sometimes wraps JSON in prose or code fences.
    for pattern in (r"\[[\s\S]*\]", r"\{[\s\S]*\}"):
        match = re.search(pattern, content)
        if not match:
            continue
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            continue

    raise GenerationError("Invalid JSON response from text generation service")


# ============================================================
# NATURAL LANGUAGE -> SEGMENT RULES
# ============================================================

RULES_SYSTEM_PROMPT = (
    "You are an expert at converting natural language into structured customer "
    "segmentation rules. Respond only with valid JSON."
)

RULES_PROMPT = """
Convert the following natural language description into a JSON array of segment rules:
"{text}"

Each rule must have this exact structure:
{{"field": "...", "operator": "...", "value": "..."}}

Fields: totalSpent, visitCount, lastVisit, status, location, emailVerified
- "spent", "spending", "purchase amount" -> totalSpent
- "visits", "visit count", "times visited" -> visitCount
- "last visit", "last seen", "inactive", "days ago" -> lastVisit (value is a number of days)
- "status", "tier", "vip" -> status (values: active, inactive, vip)
- "location", "city", "region" -> location
- "email verified" -> emailVerified (values: true, false)

Operators: gt (more than, above, over), lt (less than, under, below),
eq (equal to, is), gte (at least, minimum), lte (at most, maximum).

Examples:
"Customers who spent over 10,000" -> [{{"field": "totalSpent", "operator": "gt", "value": "10000"}}]
"Users who haven't visited in 30 days" -> [{{"field": "lastVisit", "operator": "lt", "value": "30"}}]
"VIP customers with more than 5 visits" -> [{{"field": "status", "operator": "eq", "value": "vip"}}, {{"field": "visitCount", "operator": "gt", "value": "5"}}]

Return only the JSON array.
"""


def convert_natural_language_to_rules(text: str) -> list[SegmentRule]:
    content = _complete(RULES_SYSTEM_PROMPT, RULES_PROMPT.format(text=text), temperature=0.1)
    parsed = _parse_json(content)

    items = parsed if isinstance(parsed, list) else (parsed.get("rules") if isinstance(parsed, dict) else None)
    if not isinstance(items, list):
        raise GenerationError("Text generation service did not return a rule list")

    rules = []
    for item in items:
        if not isinstance(item, dict):
            raise GenerationError(f"Generated rule is not an object: {item!r}")
        try:
            rules.append(
                SegmentRule(field=item.get("field"), operator=item.get("operator"), value=item.get("value"))
            )
        except ValidationError as e:
            logger.warning("unsupported generated rule", extra={"rule": item})
            raise GenerationError(f"Generated rule is not supported: {item!r}") from e

    return rules


# ============================================================
# CAMPAIGN MESSAGE SUGGESTIONS
# ============================================================

MESSAGES_SYSTEM_PROMPT = (
    "You are an expert marketing copywriter who creates high-converting campaign "
    "messages. Always respond with valid JSON."
)

MESSAGES_PROMPT = """
Generate 3 different campaign message suggestions.

Objective: {objective}
Audience: {audience}

Messages must be personalized with the {{{{name}}}} placeholder, action-oriented,
suited to the audience and varied in approach (urgency, value, appreciation...).

Return a JSON object:
{{"messages": [{{"type": "category", "message": "text with {{{{name}}}}", "engagement": "8.2%"}}]}}
"""


def generate_campaign_messages(objective: str, audience_description: str) -> list[dict]:
    prompt = MESSAGES_PROMPT.format(objective=objective, audience=audience_description)
    parsed = _parse_json(_complete(MESSAGES_SYSTEM_PROMPT, prompt, temperature=0.7))

    messages = parsed.get("messages") if isinstance(parsed, dict) else parsed
    if not isinstance(messages, list):
        raise GenerationError("Text generation service did not return a message list")

    return [
        {"type": str(m["type"]), "message": str(m["message"]), "engagement": str(m["engagement"])}
        for m in messages
        if isinstance(m, dict) and m.get("type") and m.get("message") and m.get("engagement")
    ]


# ============================================================
# CAMPAIGN INSIGHTS
# ============================================================

INSIGHTS_SYSTEM_PROMPT = (
    "You are a marketing analytics expert who provides clear, actionable insights "
    "about campaign performance. Always respond with valid JSON."
)

INSIGHTS_PROMPT = """
Summarise the performance of this campaign for a marketing manager:

Campaign: {name}
Audience size: {audience_size} customers
Messages sent: {sent_count}
Messages failed: {failed_count}
Messages pending: {pending_count}
Delivery rate: {delivery_rate}%

Cover overall performance, the key metrics, notable patterns and brief recommendations.
Return a JSON object: {{"summary": "..."}}
"""

DEFAULT_INSIGHT = "Campaign analysis completed successfully."


def generate_campaign_insights(stats: dict) -> str:
    sent = stats.get("sent_count", 0)
    failed = stats.get("failed_count", 0)
    resolved = sent + failed
    delivery_rate = round((sent / resolved) * 100, 1) if resolved else 0.0

    prompt = INSIGHTS_PROMPT.format(
        name=stats.get("name", ""),
        audience_size=stats.get("audience_size", 0),
        sent_count=sent,
        failed_count=failed,
        pending_count=stats.get("pending_count", 0),
        delivery_rate=delivery_rate,
    )
    parsed = _parse_json(_complete(INSIGHTS_SYSTEM_PROMPT, prompt, temperature=0.3))
    if isinstance(parsed, dict) and parsed.get("summary"):
        return str(parsed["summary"])
    return DEFAULT_INSIGHT
