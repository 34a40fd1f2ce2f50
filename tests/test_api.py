"""API tests for prospects, events, status actions, policy, report and the decay job."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _create(client: AsyncClient, email="jane@example.com", **extra) -> dict:
    resp = await client.post("/api/v1/prospects/", json={"email": email, "name": "Jane", **extra})
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_api_docs(client: AsyncClient):
    resp = await client.get("/docs")
    assert resp.status_code == 200


# ── Prospects ─────────────────────────────────────────────


class TestProspectEndpoints:
    @pytest.mark.asyncio
    async def test_create_and_get(self, client: AsyncClient):
        created = await _create(client)
        assert created["score"] == 0
        assert created["group"] == 0
        assert created["group_label"] == "Cold"
        assert created["status"] == "cold"
        assert created["status_label"] == "Cold"
        assert created["next_status"] == "contacted"

        resp = await client.get(f"/api/v1/prospects/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["email"] == "jane@example.com"

    @pytest.mark.asyncio
    async def test_invalid_email(self, client: AsyncClient):
        resp = await client.post("/api/v1/prospects/", json={"email": "not-an-email"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_not_found(self, client: AsyncClient):
        assert (await client.get("/api/v1/prospects/missing")).status_code == 404
        resp = await client.post("/api/v1/prospects/missing/events", json={"event_type": "email_opened"})
        assert resp.status_code == 404
        resp = await client.post("/api/v1/prospects/missing/status", json={"status": "contacted"})
        assert resp.status_code == 404
        assert (await client.get("/api/v1/prospects/missing/events")).status_code == 404
        assert (await client.get("/api/v1/prospects/missing/history")).status_code == 404


# ── Events ────────────────────────────────────────────────


class TestEventEndpoints:
    @pytest.mark.asyncio
    async def test_open_then_reply(self, client: AsyncClient):
        prospect = await _create(client)
        url = f"/api/v1/prospects/{prospect['id']}/events"

        opened = (await client.post(url, json={"event_type": "email_opened"})).json()
        assert (opened["score"], opened["group"], opened["status"]) == (1, 1, "contacted")
        assert opened["delta"] == 1
        assert opened["status_changed"] is True

        replied = (await client.post(url, json={"event_type": "email_replied"})).json()
        assert replied["score"] == 4
        assert replied["replies"] == 1
        assert replied["status"] == "interested"

    @pytest.mark.asyncio
    async def test_duplicate_delivery(self, client: AsyncClient):
        prospect = await _create(client)
        url = f"/api/v1/prospects/{prospect['id']}/events"
        body = {"event_type": "email_clicked", "event_id": "wh-42"}

        first = (await client.post(url, json=body)).json()
        second = (await client.post(url, json=body)).json()
        assert first["duplicate"] is False
        assert second["duplicate"] is True
        assert second["score"] == 1
        assert second["clicks"] == 1

    @pytest.mark.asyncio
    async def test_unknown_event_type_is_accepted(self, client: AsyncClient):
        prospect = await _create(client)
        resp = await client.post(
            f"/api/v1/prospects/{prospect['id']}/events",
            json={"event_type": "linkedin_viewed", "metadata": {"source": "extension"}},
        )
        assert resp.status_code == 200
        assert resp.json()["applied"] is False

        events = (await client.get(f"/api/v1/prospects/{prospect['id']}/events")).json()
        viewed = [e for e in events if e["event_type"] == "linkedin_viewed"]
        assert viewed[0]["metadata"] == {"source": "extension"}
        assert viewed[0]["applied"] is False

    @pytest.mark.asyncio
    async def test_bounce_then_open(self, client: AsyncClient):
        prospect = await _create(client)
        url = f"/api/v1/prospects/{prospect['id']}/events"
        await client.post(url, json={"event_type": "email_opened"})
        bounced = (await client.post(url, json={"event_type": "email_bounced"})).json()
        assert bounced["status"] == "bounced"

        after = (await client.post(url, json={"event_type": "email_opened"})).json()
        assert after["applied"] is False
        assert after["score"] == 1
        assert after["opens"] == 1

        detail = (await client.get(f"/api/v1/prospects/{prospect['id']}")).json()
        assert detail["next_status"] is None

    @pytest.mark.asyncio
    async def test_history(self, client: AsyncClient):
        prospect = await _create(client)
        url = f"/api/v1/prospects/{prospect['id']}"
        await client.post(f"{url}/events", json={"event_type": "email_opened"})
        await client.post(f"{url}/status", json={"status": "qualified"})

        history = (await client.get(f"{url}/history")).json()
        assert {h["trigger"] for h in history} == {"event", "manual"}
        manual = next(h for h in history if h["trigger"] == "manual")
        assert manual["new_status"] == "qualified"


# ── Status actions ────────────────────────────────────────


class TestStatusEndpoints:
    @pytest.mark.asyncio
    async def test_mark_contacted(self, client: AsyncClient):
        prospect = await _create(client)
        resp = await client.post(f"/api/v1/prospects/{prospect['id']}/status", json={"status": "contacted"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "contacted"
        assert resp.json()["reason"] == "Marked Contacted"

    @pytest.mark.asyncio
    async def test_bounced_cannot_be_requested(self, client: AsyncClient):
        prospect = await _create(client)
        resp = await client.post(f"/api/v1/prospects/{prospect['id']}/status", json={"status": "bounced"})
        assert resp.status_code == 422


# ── Policy & report ───────────────────────────────────────


class TestScoringEndpoints:
    @pytest.mark.asyncio
    async def test_get_default_policy(self, client: AsyncClient):
        resp = await client.get("/api/v1/scoring/policy")
        assert resp.status_code == 200
        data = resp.json()
        assert data["tenant_id"] == "default"
        assert data["version"] == 1
        assert data["points"]["email_replied"] == 3
        assert len(data["group_bands"]) == 7

    @pytest.mark.asyncio
    async def test_update_policy(self, client: AsyncClient):
        resp = await client.put("/api/v1/scoring/policy", json={"points": {"email_replied": 2}})
        assert resp.status_code == 200
        assert resp.json()["version"] == 2
        assert resp.json()["points"]["email_replied"] == 2

        prospect = await _create(client)
        outcome = (await client.post(
            f"/api/v1/prospects/{prospect['id']}/events", json={"event_type": "email_replied"}
        )).json()
        assert outcome["score"] == 2

        detail = (await client.get(f"/api/v1/prospects/{prospect['id']}")).json()
        assert detail["policy_version"] == 2

    @pytest.mark.asyncio
    async def test_invalid_policy_is_rejected(self, client: AsyncClient):
        bands = [{"lower": 0, "upper": 2, "group": 0}, {"lower": 4, "upper": 6, "group": 1}]
        resp = await client.put("/api/v1/scoring/policy", json={"group_bands": bands})
        assert resp.status_code == 422
        assert "non-exhaustive" in resp.json()["detail"]

        assert (await client.get("/api/v1/scoring/policy")).json()["version"] == 1

    @pytest.mark.asyncio
    async def test_report(self, client: AsyncClient):
        prospect = await _create(client)
        await client.post(f"/api/v1/prospects/{prospect['id']}/status", json={"status": "handoff"})
        await _create(client, email="b@example.com")

        report = (await client.get("/api/v1/scoring/report")).json()
        assert report["total_prospects"] == 2
        assert report["handoff"] == 1
        assert report["conversion_rate"] == 50.0

    @pytest.mark.asyncio
    async def test_group_follows_current_bands(self, client: AsyncClient):
        prospect = await _create(client)
        await client.post(f"/api/v1/prospects/{prospect['id']}/events", json={"event_type": "email_replied"})
        before = (await client.get(f"/api/v1/prospects/{prospect['id']}")).json()
        assert before["group"] == 3

        bands = [
            {"lower": 0, "upper": 1, "group": 0, "label": "Cold"},
            {"lower": 2, "upper": 4, "group": 1, "label": "Warm"},
            {"lower": 5, "upper": 6, "group": 2, "label": "Hot"},
        ]
        resp = await client.put(
            "/api/v1/scoring/policy",
            json={"group_bands": bands, "status_by_group": {"0": "cold", "1": "contacted"}},
        )
        assert resp.status_code == 200

        after = (await client.get(f"/api/v1/prospects/{prospect['id']}")).json()
        assert after["score"] == 3
        assert after["group"] == 1
        assert after["group_label"] == "Warm"

        report = (await client.get("/api/v1/scoring/report")).json()
        assert [(g["group"], g["count"]) for g in report["groups"]] == [(0, 0), (1, 1), (2, 0)]


# ── Decay job ─────────────────────────────────────────────


class TestDecayJob:
    @pytest.mark.asyncio
    async def test_trigger_sweep(self, client: AsyncClient):
        prospect = await _create(client)
        url = f"/api/v1/prospects/{prospect['id']}/events"
        quiet_since = (NOW - timedelta(days=11)).isoformat()
        await client.post(url, json={"event_type": "email_opened", "occurred_at": quiet_since})
        await client.post(url, json={"event_type": "email_clicked", "occurred_at": quiet_since})

        report = (await client.post("/api/v1/jobs/score-decay", json={"now": NOW.isoformat()})).json()
        assert report["scanned"] == 1
        assert report["decayed_count"] == 1
        assert report["decayed"][0]["score"] == 1

        again = (await client.post("/api/v1/jobs/score-decay", json={"now": NOW.isoformat()})).json()
        assert again["decayed_count"] == 0

    @pytest.mark.asyncio
    async def test_trigger_sweep_without_body(self, client: AsyncClient):
        resp = await client.post("/api/v1/jobs/score-decay")
        assert resp.status_code == 200
        assert resp.json()["scanned"] == 0
