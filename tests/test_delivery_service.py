import json
import random
import uuid
from decimal import Decimal

import httpx
import pytest

from app.models.campaign import Campaign
from app.models.communication_log import CommunicationLog
from app.services.campaign_service import list_campaigns_with_stats
from app.services.delivery_service import (
    VENDOR_UNREACHABLE_REASON,
    DeliveryDispatcher,
    HttpVendorClient,
    render_message,
)
from app.services.vendor_service import VENDOR_FAILURE_REASON, VendorSimulator


HIGH_SPENDERS = [{"field": "totalSpent", "operator": "gt", "value": "10000"}]


def _dispatcher(session_factory, vendor, **kwargs):
    kwargs.setdefault("send_delay_max", 0)
    kwargs.setdefault("completion_deadline", 3600)
    return DeliveryDispatcher(vendor=vendor, session_factory=session_factory, rng=random.Random(7), **kwargs)


def _logs(db, campaign_id):
    db.expire_all()
    return db.query(CommunicationLog).filter(CommunicationLog.campaign_id == campaign_id).all()


def _status(db, campaign_id):
    db.expire_all()
    return db.query(Campaign).filter(Campaign.id == campaign_id).one().status


def _http_vendor(handler):
    return HttpVendorClient(base_url="http://vendor.test", transport=httpx.MockTransport(handler))


def test_render_message_replaces_first_placeholder_only():
    assert render_message("Hi {{name}}!", "Alice") == "Hi Alice!"
    assert render_message("{{name}}, {{name}}", "Bob") == "Bob, {{name}}"
    assert render_message("No placeholder", "Carol") == "No placeholder"


@pytest.mark.asyncio
async def test_dispatch_creates_one_pending_log_per_matching_customer(
    db, session_factory, sample_customers, make_campaign, make_vendor
):
    campaign = make_campaign(HIGH_SPENDERS, message="Hi {{name}}, thanks for shopping")
    dispatcher = _dispatcher(session_factory, make_vendor(), send_delay_max=3600)

    scheduled = await dispatcher.dispatch(campaign.id)

    logs = _logs(db, campaign.id)
    assert scheduled == 2
    assert len(logs) == 2
    assert {log.status for log in logs} == {"pending"}
    assert sorted(log.message for log in logs) == [
        "Hi Alice Johnson, thanks for shopping",
        "Hi Carol Davis, thanks for shopping",
    ]
    assert {log.customer_id for log in logs} == {sample_customers["alice"].id, sample_customers["carol"].id}
    assert _status(db, campaign.id) == "sending"
    assert dispatcher.outstanding(campaign.id) == 2

    await dispatcher.shutdown()


@pytest.mark.asyncio
async def test_sent_outcomes_complete_the_campaign(db, session_factory, sample_customers, make_campaign, make_vendor):
    campaign = make_campaign(HIGH_SPENDERS)
    dispatcher = None

    def resolve(*, message_id, **_):
        return dispatcher.record_outcome(message_id, "sent")

    vendor = make_vendor(on_send=resolve)
    dispatcher = _dispatcher(session_factory, vendor)

    await dispatcher.dispatch(campaign.id)
    await dispatcher.drain(campaign.id)

    logs = _logs(db, campaign.id)
    assert len(vendor.sent) == 2
    assert {log.status for log in logs} == {"sent"}
    assert all(log.sent_at is not None for log in logs)
    assert _status(db, campaign.id) == "completed"

    # the deadline timer was released once the campaign settled
    await dispatcher.drain(campaign.id, include_deadlines=True)
    assert _status(db, campaign.id) == "completed"


@pytest.mark.asyncio
async def test_record_outcome_for_unknown_log(session_factory, make_vendor):
    dispatcher = _dispatcher(session_factory, make_vendor())

    assert await dispatcher.record_outcome(uuid.uuid4(), "sent") is False


@pytest.mark.asyncio
async def test_unreachable_vendor_fails_logs_directly(db, session_factory, sample_customers, make_campaign, make_vendor):
    campaign = make_campaign(HIGH_SPENDERS)
    dispatcher = _dispatcher(session_factory, make_vendor(error=httpx.ConnectError("connection refused")))

    await dispatcher.dispatch(campaign.id)
    await dispatcher.drain(campaign.id)

    logs = _logs(db, campaign.id)
    assert {log.status for log in logs} == {"failed"}
    assert {log.failure_reason for log in logs} == {VENDOR_UNREACHABLE_REASON}
    assert _status(db, campaign.id) == "completed"


@pytest.mark.asyncio
async def test_deadline_marks_completed_with_pending(db, session_factory, sample_customers, make_campaign, make_vendor):
    campaign = make_campaign(HIGH_SPENDERS)
    dispatcher = _dispatcher(session_factory, make_vendor(), completion_deadline=0)

    await dispatcher.dispatch(campaign.id)
    await dispatcher.drain(campaign.id, include_deadlines=True)

    assert _status(db, campaign.id) == "completed_with_pending"
    assert {log.status for log in _logs(db, campaign.id)} == {"pending"}


@pytest.mark.asyncio
async def test_empty_audience_completes_immediately(db, session_factory, sample_customers, make_campaign, make_vendor):
    campaign = make_campaign([{"field": "totalSpent", "operator": "gt", "value": "1000000"}])
    vendor = make_vendor()
    dispatcher = _dispatcher(session_factory, vendor)

    assert await dispatcher.dispatch(campaign.id) == 0

    assert _logs(db, campaign.id) == []
    assert _status(db, campaign.id) == "completed"
    assert vendor.sent == []


@pytest.mark.asyncio
async def test_empty_rule_set_sends_nothing(db, session_factory, sample_customers, make_campaign, make_vendor):
    campaign = make_campaign([])
    dispatcher = _dispatcher(session_factory, make_vendor())

    assert await dispatcher.dispatch(campaign.id) == 0
    assert _logs(db, campaign.id) == []


@pytest.mark.asyncio
async def test_missing_campaign_is_a_no_op(session_factory, make_vendor):
    vendor = make_vendor()
    dispatcher = _dispatcher(session_factory, vendor)

    assert await dispatcher.dispatch(uuid.uuid4()) == 0
    assert vendor.sent == []


@pytest.mark.asyncio
async def test_unreadable_rules_fail_the_campaign(db, session_factory, sample_customers, make_campaign, make_vendor):
    campaign = make_campaign([{"field": "shoeSize", "operator": "gt", "value": "9"}])
    dispatcher = _dispatcher(session_factory, make_vendor())

    assert await dispatcher.dispatch(campaign.id) == 0

    assert _status(db, campaign.id) == "failed"
    assert _logs(db, campaign.id) == []


@pytest.mark.asyncio
async def test_finished_campaign_is_not_dispatched_again(
    db, session_factory, sample_customers, make_campaign, make_vendor
):
    campaign = make_campaign(HIGH_SPENDERS, status="completed")
    dispatcher = _dispatcher(session_factory, make_vendor())

    assert await dispatcher.dispatch(campaign.id) == 0
    assert _logs(db, campaign.id) == []
    assert _status(db, campaign.id) == "completed"


@pytest.mark.asyncio
async def test_cancel_withdraws_outstanding_sends(db, session_factory, sample_customers, make_campaign, make_vendor):
    campaign = make_campaign(HIGH_SPENDERS)
    vendor = make_vendor()
    dispatcher = _dispatcher(session_factory, vendor, send_delay_max=3600)

    await dispatcher.dispatch(campaign.id)
    assert dispatcher.outstanding(campaign.id) == 2

    assert dispatcher.cancel(campaign.id) == 2
    await dispatcher.drain(campaign.id, include_deadlines=True)

    assert dispatcher.outstanding(campaign.id) == 0
    assert vendor.sent == []
    assert {log.status for log in _logs(db, campaign.id)} == {"pending"}


@pytest.mark.asyncio
async def test_aggregate_counts_sum_to_log_count(db, session_factory, user, make_customer, make_campaign, make_vendor):
    customers = [make_customer(f"Buyer {i}", total_spent=Decimal("500")) for i in range(5)]
    campaign = make_campaign([{"field": "totalSpent", "operator": "gte", "value": "500"}])
    unreachable_for = {customers[0].id, customers[1].id}
    dispatcher = None

    async def mixed(*, message_id, customer_id, message):
        if customer_id in unreachable_for:
            raise httpx.ConnectError("down")
        if customer_id == customers[2].id:
            await dispatcher.record_outcome(message_id, "sent")

    dispatcher = _dispatcher(session_factory, make_vendor(on_send=mixed))

    await dispatcher.dispatch(campaign.id)
    await dispatcher.drain(campaign.id)

    db.expire_all()
    stats = list_campaigns_with_stats(db, user_id=user.id)[0]
    assert (stats["sent_count"], stats["failed_count"], stats["pending_count"]) == (1, 2, 2)
    assert stats["sent_count"] + stats["failed_count"] + stats["pending_count"] == len(_logs(db, campaign.id))
    # status and counts are allowed to disagree until the deadline
    assert stats["status"] == "sending"

    await dispatcher.shutdown()


@pytest.mark.asyncio
async def test_round_trip_through_vendor_simulator(
    db, session_factory, sample_customers, make_campaign, make_vendor, make_receipts
):
    campaign = make_campaign(HIGH_SPENDERS)
    dispatcher = None
    receipts = make_receipts(
        forward=lambda r: dispatcher.record_outcome(r["messageId"], r["status"], r.get("failureReason"))
    )
    simulator = VendorSimulator(receipts=receipts, success_rate=0.0, delay_min=0, delay_max=0)

    def hand_to_vendor(*, message_id, customer_id, message):
        simulator.accept(message_id=message_id, customer_id=customer_id, message=message)

    dispatcher = _dispatcher(session_factory, make_vendor(on_send=hand_to_vendor))

    await dispatcher.dispatch(campaign.id)
    await dispatcher.drain(campaign.id)
    await simulator.drain()

    logs = _logs(db, campaign.id)
    assert len(receipts.receipts) == 2
    assert {log.status for log in logs} == {"failed"}
    assert {log.failure_reason for log in logs} == {VENDOR_FAILURE_REASON}
    assert _status(db, campaign.id) == "completed"


# =============================================================================
# HTTP VENDOR TRANSPORT
# =============================================================================


@pytest.mark.asyncio
async def test_http_vendor_posts_message_and_returns_body():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(202, json={"status": "accepted"})

    message_id, customer_id = uuid.uuid4(), uuid.uuid4()
    body = await _http_vendor(handler).send(message_id=message_id, customer_id=customer_id, message="Hi")

    assert body == {"status": "accepted"}
    assert str(seen[0].url) == "http://vendor.test/api/vendor/send"
    assert seen[0].method == "POST"
    assert json.loads(seen[0].content) == {
        "messageId": str(message_id),
        "customerId": str(customer_id),
        "message": "Hi",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [400, 503])
async def test_http_vendor_error_status_returns_empty(status_code):
    vendor = _http_vendor(lambda request: httpx.Response(status_code, json={"error": "nope"}))

    assert await vendor.send(message_id=uuid.uuid4(), customer_id=uuid.uuid4(), message="Hi") == {}


@pytest.mark.asyncio
async def test_http_vendor_non_json_body_returns_empty():
    vendor = _http_vendor(lambda request: httpx.Response(200, text="<html>ok</html>"))

    assert await vendor.send(message_id=uuid.uuid4(), customer_id=uuid.uuid4(), message="Hi") == {}


@pytest.mark.asyncio
async def test_http_vendor_unreachable_raises_request_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(httpx.RequestError):
        await _http_vendor(handler).send(message_id=uuid.uuid4(), customer_id=uuid.uuid4(), message="Hi")


@pytest.mark.asyncio
async def test_rejected_and_garbled_vendor_answers_leave_logs_pending(
    db, session_factory, sample_customers, make_campaign
):
    campaign = make_campaign(HIGH_SPENDERS)
    answers = iter([httpx.Response(500, text="boom"), httpx.Response(200, text="not json")])
    dispatcher = _dispatcher(session_factory, _http_vendor(lambda request: next(answers)))

    await dispatcher.dispatch(campaign.id)
    await dispatcher.drain(campaign.id)

    assert {log.status for log in _logs(db, campaign.id)} == {"pending"}
    assert _status(db, campaign.id) == "sending"

    await dispatcher.shutdown()


@pytest.mark.asyncio
async def test_unreachable_http_vendor_fails_logs(db, session_factory, sample_customers, make_campaign):
    campaign = make_campaign(HIGH_SPENDERS)

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = _dispatcher(session_factory, _http_vendor(handler))

    await dispatcher.dispatch(campaign.id)
    await dispatcher.drain(campaign.id)

    assert {log.failure_reason for log in _logs(db, campaign.id)} == {VENDOR_UNREACHABLE_REASON}
    assert _status(db, campaign.id) == "completed"
