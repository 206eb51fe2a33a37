"""Tests for the billing / premium HTTP routes (app/api)."""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from fastapi import FastAPI

from app.main import create_app
from app.services.lifecycle import PaymentState
from tests.conftest import make_settings


def _gateway(poll_bodies: list[dict[str, Any]]) -> httpx.MockTransport:
    polls = iter(poll_bodies)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/payments/stk-push/":
            return httpx.Response(201, json={"success": True, "status": "QUEUED", "CheckoutRequestID": "abc"})
        return httpx.Response(200, json=next(polls, {"status": "QUEUED"}))

    return httpx.MockTransport(handler)


def _app(poll_bodies: list[dict[str, Any]] | None = None, **overrides: Any) -> FastAPI:
    overrides.setdefault("poll_interval_seconds", 0)
    return create_app(make_settings(**overrides), transport=_gateway(poll_bodies or []))


def _client(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health() -> None:
    async with _client(_app()) as client:
        r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_list_plans_with_local_prices() -> None:
    async with _client(_app()) as client:
        r = await client.get("/billing/plans")
    assert r.status_code == 200
    plans = {p["code"]: p for p in r.json()}
    assert plans["expert"]["price"] == 6.50
    assert plans["expert"]["local_price"] == 841.1
    assert plans["average"]["name"] == "AVERAGE SKILLED"


@pytest.mark.asyncio
async def test_sample_prices_feed_plans() -> None:
    async with _client(_app()) as client:
        r = await client.post("/billing/prices/sample", json={"beginner": "1.00"})
        assert r.json() == {"beginner": 1.0, "average": 4.5, "expert": 6.5}
        r = await client.post("/billing/session/plan", json={"plan": "beginner"})
    assert r.json()["price"] == 1.0


@pytest.mark.asyncio
async def test_purchase_flow_unlocks_premium() -> None:
    app = _app([{"status": "QUEUED"}, {"status": "SUCCESS"}])
    async with _client(app) as client:
        r = await client.get("/premium/account")
        assert r.status_code == 402

        r = await client.post("/billing/session/plan", json={"plan": "expert"})
        assert r.json()["state"] == "plan_selected"

        r = await client.post("/billing/session/proceed")
        assert r.json()["ksh_amount"] == "841.10"
        assert r.json()["payment_amount"] == 841

        r = await client.post("/billing/session/submit", json={"phone": "0722000111"})
        assert r.status_code == 200
        body = r.json()
        assert body["state"] == "waiting_confirmation"
        assert body["phone"] == "254722000111"
        assert body["checkout_request_id"] == "abc"

        assert await app.state.lifecycle.wait() is PaymentState.SUCCEEDED

        r = await client.get("/billing/session")
        assert r.json()["state"] == "succeeded"
        assert r.json()["message"] == "Welcome to your EXPERT Account!"

        r = await client.get("/billing/purchase")
        purchase = r.json()
        assert purchase["has_purchased"] is True
        assert purchase["record"]["kshAmount"] == "841.10"
        assert purchase["record"]["paymentStatus"] == "success"

        r = await client.get("/premium/account")
        assert r.status_code == 200
        assert r.json()["message"] == "Welcome to your EXPERT Account!"

        r = await client.get("/premium/expert-feature")
        assert r.status_code == 200

        r = await client.delete("/billing/purchase")
        assert r.json()["has_purchased"] is False
        r = await client.get("/premium/account")
        assert r.status_code == 402


@pytest.mark.asyncio
async def test_timeout_leaves_pending_record_and_no_access() -> None:
    app = _app(poll_max_attempts=2)
    async with _client(app) as client:
        await client.post("/billing/session/plan", json={"plan": "average"})
        await client.post("/billing/session/proceed")
        await client.post("/billing/session/submit", json={"phone": "0722000111"})
        assert await app.state.lifecycle.wait() is PaymentState.TIMED_OUT

        r = await client.get("/billing/purchase")
        assert r.json()["has_purchased"] is False
        assert r.json()["record"]["paymentStatus"] == "pending"

        r = await client.post("/billing/session/retry")
        assert r.json()["state"] == "awaiting_phone_input"

        r = await client.post("/billing/session/cancel")
        assert r.json()["state"] == "idle"
        assert r.json()["plan"] is None


@pytest.mark.asyncio
async def test_error_mapping() -> None:
    async with _client(_app()) as client:
        r = await client.post("/billing/session/proceed")
        assert r.status_code == 409

        r = await client.post("/billing/session/plan", json={"plan": "gold"})
        assert r.status_code == 404

        await client.post("/billing/session/plan", json={"plan": "beginner"})
        await client.post("/billing/session/proceed")
        r = await client.post("/billing/session/submit", json={"phone": "123"})
        assert r.status_code == 422

        r = await client.get("/billing/session")
        assert r.json()["state"] == "awaiting_phone_input"


@pytest.mark.asyncio
async def test_reconcile_without_record() -> None:
    async with _client(_app()) as client:
        r = await client.post("/billing/purchase/reconcile")
    assert r.status_code == 200
    assert r.json() == {"has_purchased": False, "record": None}
