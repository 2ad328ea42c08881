from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from bakehouse.services import orders as order_service


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert data["redis_ok"] is True


def test_health_database_down(client):
    with patch("bakehouse.routers.health.ping", side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
        resp = client.get("/api/health")
    assert resp.status_code == 503
    assert resp.json()["status"] == "error"


def test_locations(client):
    resp = client.post("/api/admin/locations", json={"name": "Basement Bakery", "type": "basement"})
    assert resp.status_code == 201
    location_id = resp.json()["id"]

    resp = client.patch(f"/api/admin/locations/{location_id}", json={"is_active": False})
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    assert client.post("/api/admin/locations", json={"name": "Van", "type": "truck"}).status_code == 422
    assert client.patch("/api/admin/locations/missing", json={"name": "x"}).status_code == 404


def test_manual_freezer_stock(client, make_product):
    plain = make_product("Plain Bagel")

    resp = client.post("/api/admin/freezer", json={"product_id": plain.id, "quantity": 24})
    assert resp.status_code == 200, resp.text
    stock_id = resp.json()["id"]

    resp = client.patch(f"/api/admin/freezer/{stock_id}", json={"quantity": 20})
    assert resp.json()["quantity"] == 20

    stats = client.get("/api/admin/freezer/stats").json()
    assert stats == {
        "total_items": 20,
        "unique_products": 1,
        "product_breakdown": [
            {"product_id": plain.id, "product_name": "Plain Bagel", "total_quantity": 20, "batches": 1},
        ],
    }

    activity = client.get("/api/admin/activity", params={"entity_type": "freezer_stock"}).json()
    assert [a["action"] for a in activity] == ["freezer.stocked"]


def test_freezer_unknown_product(client):
    assert client.post("/api/admin/freezer", json={"product_id": "nope", "quantity": 1}).status_code == 400
    assert client.patch("/api/admin/freezer/nope", json={"quantity": 1}).status_code == 404


def test_default_actor_recorded(client, make_ingredient):
    flour = make_ingredient()
    client.post(f"/api/admin/ingredients/{flour.id}/adjust", json={"quantity": "1", "type": "receive"})
    activity = client.get("/api/admin/activity").json()
    assert activity[0]["actor"] == "admin"


def test_public_locations_active_only(client):
    client.post("/api/admin/locations", json={"name": "Basement Bakery", "type": "basement"})
    client.post("/api/admin/locations", json={"name": "Old Popup", "type": "popup", "is_active": False})

    public = client.get("/api/locations").json()
    assert [loc["name"] for loc in public] == ["Basement Bakery"]
    assert len(client.get("/api/admin/locations").json()) == 2


def test_dashboard_stats(client, db_session, gateway, make_ingredient, make_product):
    make_ingredient("Spelt Flour", "100", reorder_threshold="20")
    make_ingredient("Yeast", "0.5", reorder_threshold="1")
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
    }
    ids = []
    for quantity in (10, 3, 1):
        resp = client.post("/api/orders", json={**payload, "items": [{"product_id": bagel.id, "quantity": quantity}]})
        ids.append(resp.json()["order_id"])
    order_service.update_order_status(db_session, gateway, ids[0], "approved")
    order_service.update_order_status(db_session, gateway, ids[1], "cancelled")

    stats = client.get("/api/admin/stats/dashboard").json()
    assert stats["today_orders"] == 3
    assert stats["pending_orders"] == 1
    assert stats["today_revenue"] == "20.00"
    assert stats["low_stock_count"] == 1


def test_dashboard_stats_empty(client):
    assert client.get("/api/admin/stats/dashboard").json() == {
        "today_orders": 0,
        "pending_orders": 0,
        "today_revenue": "0.00",
        "low_stock_count": 0,
    }
