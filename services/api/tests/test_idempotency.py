import json
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from bakehouse.infra.idempotency import idempotency_clear_key, idempotency_precheck, idempotency_store_result
from bakehouse.models import Order

# --- Unit Tests for Logic ---


@pytest.fixture
def fake_redis():
    return FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def patched_redis(fake_redis):
    # Patch the get_redis used inside idempotency module
    with patch("bakehouse.infra.idempotency.get_redis", return_value=fake_redis):
        yield fake_redis


def make_request(idem_key=None, body=b'{"foo": "bar"}'):
    req = AsyncMock(spec=Request)
    req.headers = {"Idempotency-Key": idem_key} if idem_key else {}
    req.method = "POST"
    req.url.path = "/api/orders"
    req.body = AsyncMock(return_value=body)
    return req


@pytest.mark.asyncio
async def test_precheck_missing_header(patched_redis):
    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(make_request(), route_key="test")
    assert exc.value.status_code == 400

    assert await idempotency_precheck(make_request(), route_key="test", required=False) is None


@pytest.mark.asyncio
async def test_idempotency_flow(patched_redis):
    idem_key = str(uuid.uuid4())
    req = make_request(idem_key)

    # 1. First call -> returns key to proceed
    res = await idempotency_precheck(req, route_key="orders.create")
    assert isinstance(res, tuple)
    rkey, rhash, body = res
    assert rkey == f"bakehouse:idemp:orders.create:{idem_key}"
    assert b"foo" in body

    data = json.loads(await patched_redis.get(rkey))
    assert data["state"] == "processing"

    # 2. Concurrent duplicate -> 409
    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(req, route_key="orders.create")
    assert exc.value.status_code == 409

    # 3. Store result
    await idempotency_store_result(rkey, rhash, status=201, body={"order_id": "abc"})
    data = json.loads(await patched_redis.get(rkey))
    assert data["state"] == "done"
    assert data["status"] == 201

    # 4. Replay
    res2 = await idempotency_precheck(req, route_key="orders.create")
    assert isinstance(res2, JSONResponse)
    assert json.loads(res2.body) == {"order_id": "abc"}
    assert res2.status_code == 201
    assert res2.headers["Idempotent-Replayed"] == "true"


@pytest.mark.asyncio
async def test_same_key_different_body(patched_redis):
    idem_key = str(uuid.uuid4())
    rkey, rhash, _ = await idempotency_precheck(make_request(idem_key), route_key="orders.create")
    await idempotency_store_result(rkey, rhash, status=201, body={})

    with pytest.raises(HTTPException) as exc:
        await idempotency_precheck(make_request(idem_key, body=b'{"foo": "baz"}'), route_key="orders.create")
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_clear_key_allows_retry(patched_redis):
    idem_key = str(uuid.uuid4())
    rkey, _, _ = await idempotency_precheck(make_request(idem_key), route_key="orders.create")
    await idempotency_clear_key(rkey)
    assert isinstance(await idempotency_precheck(make_request(idem_key), route_key="orders.create"), tuple)


# --- Integration Test with DB and Client ---

def test_order_creation_idempotency(client, db_session, gateway, make_product):
    """Submitting the same order twice with one key places one order and one hold."""
    bagel = make_product("Plain Bagel", price="2.00")
    payload = {
        "customer_name": "Ada Baker",
        "customer_email": "ada@example.com",
        "delivery_address": "12 Mill Lane",
        "delivery_city": "Portland",
        "delivery_state": "OR",
        "delivery_zip": "97201",
        "fulfillment_date": "2026-03-07T09:00:00Z",
        "fulfillment_window": "morning",
        "items": [{"product_id": bagel.id, "quantity": 4}],
    }
    headers = {"Idempotency-Key": str(uuid.uuid4())}

    resp1 = client.post("/api/orders", json=payload, headers=headers)
    assert resp1.status_code == 201, resp1.text

    resp2 = client.post("/api/orders", json=payload, headers=headers)
    assert resp2.status_code == 201, resp2.text
    assert resp2.headers["Idempotent-Replayed"] == "true"
    assert resp1.json()["order_id"] == resp2.json()["order_id"]

    assert db_session.query(Order).count() == 1
    assert len(gateway.intents) == 1


def test_failed_order_releases_key(client, db_session, make_product):
    retired = make_product("Onion Bagel", is_active=False)
    payload = {
        "customer_name": "Ada Baker",
        "customer_email": "ada@example.com",
        "delivery_address": "12 Mill Lane",
        "delivery_city": "Portland",
        "delivery_state": "OR",
        "delivery_zip": "97201",
        "fulfillment_date": "2026-03-07T09:00:00Z",
        "fulfillment_window": "morning",
        "items": [{"product_id": retired.id, "quantity": 1}],
    }
    headers = {"Idempotency-Key": str(uuid.uuid4())}

    assert client.post("/api/orders", json=payload, headers=headers).status_code == 400
    # Not stuck in "processing": the retry runs again and fails the same way
    assert client.post("/api/orders", json=payload, headers=headers).status_code == 400
