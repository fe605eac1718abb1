"""Tests for negotiation (services/negotiation_service.py, api/negotiation.py).

Unit tests cover metric math and current-terms resolution on in-memory
rows; route tests cover counters, accept/reject rules, messages, the
negotiation view and per-user analytics.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from creatordeals.models.chat import ChatMessage
from creatordeals.models.deal import Deal
from creatordeals.models.offer import Offer, OfferCounter
from creatordeals.services.negotiation_service import compute_metrics, current_terms, latest_proposer
from creatordeals.tests.conftest import TestSession

_BASE = "/api/v1/negotiation"
T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _counter(seq: int, by: str, hours: float, amount=None, **flags) -> OfferCounter:
    return OfferCounter(
        sequence=seq,
        counter_by=by,
        counter_by_user_id=by.lower(),
        counter_amount=Decimal(str(amount)) if amount is not None else None,
        counter_date=T0 + timedelta(hours=hours),
        deliverables=flags.pop("deliverables", "[]"),
        is_message=flags.pop("is_message", False),
        is_acceptance=flags.pop("is_acceptance", False),
        is_rejection=flags.pop("is_rejection", False),
    )


def _offer(*counters: OfferCounter, amount=1000) -> Offer:
    return Offer(
        proposed_amount=Decimal(str(amount)),
        deliverables='["1 post"]',
        counters=list(counters),
    )


# ---------------------------------------------------------------------------
# Metrics (unit)
# ---------------------------------------------------------------------------

def test_metrics_empty_history():
    metrics = compute_metrics(_offer())
    assert metrics["total_rounds"] == 0
    assert metrics["convergence_score"] == 0.0
    assert metrics["average_response_time"] == 0.0
    assert metrics["negotiation_started"] is None


def test_metrics_convergence_and_response_time():
    offer = _offer(
        _counter(1, "Creator", 0, 1500),
        _counter(2, "Marketer", 3, 1200),
        _counter(3, "Creator", 4, 1300),
    )
    metrics = compute_metrics(offer)
    assert metrics["total_rounds"] == 3
    assert metrics["creator_responses"] == 2
    assert metrics["marketer_responses"] == 1
    # Gaps of 3h and 1h
    assert metrics["average_response_time"] == 2.0
    # 1 - |1200 - 1300| / 1300
    assert metrics["convergence_score"] == 0.92
    assert metrics["negotiation_started"] == T0
    assert metrics["last_activity"] == T0 + timedelta(hours=4)


def test_metrics_single_entry_has_no_response_time():
    metrics = compute_metrics(_offer(_counter(1, "Creator", 0, 1250)))
    assert metrics["average_response_time"] == 0.0
    # The marketer's opening amount stands in until they counter
    assert metrics["convergence_score"] == 0.8


def test_convergence_needs_a_creator_amount():
    offer = _offer(
        _counter(1, "Marketer", 0, 900),
        _counter(2, "Creator", 1, None),
    )
    assert compute_metrics(offer)["convergence_score"] == 0.0


def test_metrics_messages_count_as_rounds_but_not_amounts():
    offer = _offer(
        _counter(1, "Marketer", 0, is_message=True),
        _counter(2, "Marketer", 1, is_message=True),
    )
    metrics = compute_metrics(offer)
    assert metrics["total_rounds"] == 2
    assert metrics["convergence_score"] == 0.0


def test_current_terms_falls_back_to_offer():
    terms = current_terms(_offer())
    assert terms["amount"] == Decimal("1000.00")
    assert terms["proposed_by"] == "Marketer"
    assert terms["deliverables"] == ["1 post"]


def test_current_terms_use_latest_priced_counter():
    offer = _offer(
        _counter(1, "Marketer", 0, 1100),
        _counter(2, "Creator", 1, 1500, deliverables='["1 reel"]'),
        _counter(3, "Creator", 2, is_message=True),
    )
    terms = current_terms(offer)
    assert terms["amount"] == Decimal("1500.00")
    assert terms["deliverables"] == ["1 reel"]
    assert terms["proposed_by"] == "Creator"


def test_notes_only_counter_keeps_proposers_own_price():
    offer = _offer(
        _counter(1, "Creator", 0, 1500, deliverables='["1 reel"]'),
        _counter(2, "Marketer", 1, None),
    )
    terms = current_terms(offer)
    # The marketer never priced a counter, so their opening offer stands
    assert terms["amount"] == Decimal("1000.00")
    assert terms["deliverables"] == ["1 post"]
    assert terms["proposed_by"] == "Marketer"
    assert terms["counter_id"] is None
    assert latest_proposer(offer) == "Marketer"

    offer.counters.append(_counter(3, "Creator", 2, 1400))
    offer.counters.append(_counter(4, "Marketer", 3, 1200))
    offer.counters.append(_counter(5, "Marketer", 4, None))
    assert current_terms(offer)["amount"] == Decimal("1200.00")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

async def _setup(make_user, make_offer):
    marketer, m_token = await make_user("Marketer", name="Mia")
    creator, c_token = await make_user("Creator", name="Cleo")
    created = await make_offer(marketer.id, creator.id, proposed_amount=1000)
    return created["offer"]["id"], created["chat_room_id"], m_token, c_token


async def test_counter_updates_status_and_metrics(client, make_user, make_offer):
    offer_id, room_id, m_token, c_token = await _setup(make_user, make_offer)
    resp = await client.post(
        f"{_BASE}/{offer_id}/counter",
        json={"counter_amount": 1250, "notes": "Need more for two reels"},
        headers=_auth(c_token),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["offer_status"] == "Rejected-Countered"
    assert body["counter"]["counter_by"] == "Creator"
    assert body["counter"]["counter_amount"] == 1250.0
    assert body["metrics"]["total_rounds"] == 1
    assert body["metrics"]["convergence_score"] == 0.8

    async with TestSession() as s:
        offer = (await s.execute(select(Offer).where(Offer.id == offer_id))).scalar_one()
        assert offer.viewed_by_marketer is False
        texts = (await s.execute(
            select(ChatMessage.text).where(ChatMessage.chat_id == room_id)
        )).scalars().all()
        assert any("counter offer of 1250.00 USD" in t for t in texts)


async def test_counter_requires_amount_or_notes(client, make_user, make_offer):
    offer_id, _, _, c_token = await _setup(make_user, make_offer)
    resp = await client.post(f"{_BASE}/{offer_id}/counter", json={}, headers=_auth(c_token))
    assert resp.status_code == 400


async def test_counter_rejects_non_positive_amount(client, make_user, make_offer):
    offer_id, _, _, c_token = await _setup(make_user, make_offer)
    resp = await client.post(f"{_BASE}/{offer_id}/counter", json={"counter_amount": -5}, headers=_auth(c_token))
    assert resp.status_code == 422


async def test_counter_by_outsider_is_forbidden(client, make_user, make_offer):
    offer_id, _, _, _ = await _setup(make_user, make_offer)
    _, outsider = await make_user("Creator")
    resp = await client.post(f"{_BASE}/{offer_id}/counter", json={"counter_amount": 5}, headers=_auth(outsider))
    assert resp.status_code == 403


async def test_marketer_cannot_accept_own_offer(client, make_user, make_offer):
    offer_id, _, m_token, _ = await _setup(make_user, make_offer)
    resp = await client.post(f"{_BASE}/{offer_id}/accept", headers=_auth(m_token))
    assert resp.status_code == 400


async def test_counter_party_accepts_latest_counter(client, make_user, make_offer):
    offer_id, room_id, m_token, c_token = await _setup(make_user, make_offer)
    await client.post(f"{_BASE}/{offer_id}/counter", json={"counter_amount": 1250}, headers=_auth(c_token))

    # The creator made the latest proposal, so only the marketer may accept it
    assert (await client.post(f"{_BASE}/{offer_id}/accept", headers=_auth(c_token))).status_code == 400

    resp = await client.post(f"{_BASE}/{offer_id}/accept", headers=_auth(m_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["offer"]["status"] == "Accepted"
    assert body["offer"]["accepted_by"] == "Marketer"
    assert body["accepted_terms"]["amount"] == 1250.0
    deal = body["deal"]
    assert deal["payment_amount"] == 1250.0
    assert deal["required_payment"] == 625.0
    assert deal["payment_status"] == "Pending"
    assert deal["deal_number"].startswith("MC")
    assert body["chat_room_id"] == room_id

    async with TestSession() as s:
        assert (await s.execute(select(Deal).where(Deal.offer_id == offer_id))).scalar_one()

    # Accepted offers are closed
    resp = await client.post(f"{_BASE}/{offer_id}/counter", json={"counter_amount": 1}, headers=_auth(c_token))
    assert resp.status_code == 400


async def test_accepting_after_notes_only_counter_uses_marketers_price(client, make_user, make_offer):
    offer_id, _, m_token, c_token = await _setup(make_user, make_offer)
    await client.post(f"{_BASE}/{offer_id}/counter", json={"counter_amount": 1500}, headers=_auth(c_token))
    await client.post(f"{_BASE}/{offer_id}/counter", json={"notes": "Can we talk about timing?"}, headers=_auth(m_token))

    resp = await client.post(f"{_BASE}/{offer_id}/accept", headers=_auth(c_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["accepted_terms"]["amount"] == 1000.0
    assert body["offer"]["accepted_amount"] == 1000.0
    assert body["deal"]["payment_amount"] == 1000.0


async def test_expired_counter_cannot_be_accepted(client, make_user, make_offer):
    offer_id, _, m_token, c_token = await _setup(make_user, make_offer)
    await client.post(
        f"{_BASE}/{offer_id}/counter", json={"counter_amount": 1100, "expires_in_days": 1}, headers=_auth(c_token),
    )
    async with TestSession() as s:
        counter = (await s.execute(select(OfferCounter).where(OfferCounter.offer_id == offer_id))).scalar_one()
        counter.expires_at = datetime.now(timezone.utc) - timedelta(hours=1)
        await s.commit()

    resp = await client.post(f"{_BASE}/{offer_id}/accept", headers=_auth(m_token))
    assert resp.status_code == 400
    assert "expired" in resp.json()["detail"]


async def test_reject_records_history_entry(client, make_user, make_offer):
    offer_id, _, m_token, c_token = await _setup(make_user, make_offer)
    resp = await client.post(f"{_BASE}/{offer_id}/reject", json={"reason": "Not a fit"}, headers=_auth(c_token))
    assert resp.status_code == 200
    assert resp.json()["offer"]["status"] == "Rejected"

    view = (await client.get(f"{_BASE}/{offer_id}", headers=_auth(m_token))).json()
    assert view["negotiation_history"][-1]["is_rejection"] is True
    assert view["permissions"]["can_counter"] is False

    resp = await client.post(f"{_BASE}/{offer_id}/reject", headers=_auth(c_token))
    assert resp.status_code == 400


async def test_negotiation_message_is_mirrored_to_chat(client, make_user, make_offer):
    offer_id, room_id, m_token, _ = await _setup(make_user, make_offer)
    resp = await client.post(
        f"{_BASE}/{offer_id}/message", json={"message": "Happy to adjust timing"}, headers=_auth(m_token),
    )
    assert resp.status_code == 201
    assert resp.json()["entry"]["is_message"] is True
    assert resp.json()["entry"]["notes"] == "Happy to adjust timing"

    async with TestSession() as s:
        texts = (await s.execute(select(ChatMessage.text).where(ChatMessage.chat_id == room_id))).scalars().all()
    assert "Happy to adjust timing" in texts


async def test_negotiation_message_content_rules(client, make_user, make_offer):
    offer_id, _, m_token, _ = await _setup(make_user, make_offer)
    resp = await client.post(
        f"{_BASE}/{offer_id}/message", json={"message": "email me at mia@example.com"}, headers=_auth(m_token),
    )
    assert resp.status_code == 400


async def test_get_negotiation_view(client, make_user, make_offer):
    offer_id, _, m_token, c_token = await _setup(make_user, make_offer)
    await client.post(f"{_BASE}/{offer_id}/counter", json={"counter_amount": 1200}, headers=_auth(c_token))

    resp = await client.get(f"{_BASE}/{offer_id}", headers=_auth(m_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["participants"]["marketer"]["name"] == "Mia"
    assert body["participants"]["creator"]["name"] == "Cleo"
    assert body["current_terms"]["amount"] == 1200.0
    assert body["current_terms"]["proposed_by"] == "Creator"
    assert len(body["negotiation_history"]) == 1
    assert body["permissions"]["can_accept"] is True

    creator_view = (await client.get(f"{_BASE}/{offer_id}", headers=_auth(c_token))).json()
    assert creator_view["permissions"]["can_accept"] is False


async def test_get_negotiation_errors(client, make_user, make_offer):
    offer_id, _, _, _ = await _setup(make_user, make_offer)
    _, outsider = await make_user("Marketer")
    assert (await client.get(f"{_BASE}/{offer_id}", headers=_auth(outsider))).status_code == 403
    assert (await client.get(f"{_BASE}/nope", headers=_auth(outsider))).status_code == 400


async def test_user_analytics(client, make_user, make_offer):
    marketer, m_token = await make_user("Marketer")
    creator, c_token = await make_user("Creator")
    first = (await make_offer(marketer.id, creator.id))["offer"]["id"]
    second = (await make_offer(marketer.id, creator.id))["offer"]["id"]
    await make_offer(marketer.id, creator.id)  # untouched, not counted

    await client.post(f"{_BASE}/{first}/counter", json={"counter_amount": 1100}, headers=_auth(c_token))
    await client.post(f"{_BASE}/{first}/accept", headers=_auth(m_token))
    await client.post(f"{_BASE}/{second}/reject", headers=_auth(c_token))

    resp = await client.get(f"{_BASE}/analytics/user", headers=_auth(m_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_negotiations"] == 2
    assert body["accepted_negotiations"] == 1
    assert body["rejected_negotiations"] == 1
    assert body["success_rate"] == 50.0
    assert body["average_rounds"] == 1.5
    assert body["by_role"]["as_marketer"] == {"total": 2, "accepted": 1}
    assert body["by_role"]["as_creator"] == {"total": 0, "accepted": 0}
