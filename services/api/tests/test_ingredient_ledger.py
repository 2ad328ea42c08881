from decimal import Decimal

import pytest

from bakehouse.exceptions import InsufficientStock, NotFoundError, ValidationFailed
from bakehouse.models import Ingredient, InventoryAdjustment
from bakehouse.services import ingredient_ledger


def on_hand(db, ingredient_id):
    db.expire_all()
    return Decimal(db.get(Ingredient, ingredient_id).on_hand)


# --- Service ---

def test_deduct_records_adjustment(db_session, make_ingredient):
    flour = make_ingredient("Spelt Flour", "100")

    adj = ingredient_ledger.deduct(db_session, flour.id, Decimal("10"), reason="test", actor="baker")
    db_session.commit()

    assert on_hand(db_session, flour.id) == Decimal("90")
    assert adj.adjustment_type == "production"
    assert adj.quantity == Decimal("-10")
    assert adj.previous_quantity == Decimal("100")
    assert adj.new_quantity == Decimal("90")
    assert adj.adjusted_by == "baker"


def test_deduct_never_goes_negative(db_session, make_ingredient):
    salt = make_ingredient("Sea Salt", "5")

    with pytest.raises(InsufficientStock) as exc:
        ingredient_ledger.deduct(db_session, salt.id, Decimal("5.5"))
    db_session.rollback()

    shortage = exc.value.shortages[0]
    assert shortage.ingredient_id == salt.id
    assert shortage.shortfall == Decimal("0.5")
    assert on_hand(db_session, salt.id) == Decimal("5")
    assert db_session.query(InventoryAdjustment).count() == 0


def test_deduct_to_exactly_zero_is_allowed(db_session, make_ingredient):
    yeast = make_ingredient("Yeast", "2")
    ingredient_ledger.deduct(db_session, yeast.id, Decimal("2"))
    db_session.commit()
    assert on_hand(db_session, yeast.id) == Decimal("0")


def test_deduct_unknown_ingredient(db_session):
    with pytest.raises(NotFoundError):
        ingredient_ledger.deduct(db_session, "missing", Decimal("1"))


def test_deduct_rejects_negative_amount(db_session, make_ingredient):
    flour = make_ingredient()
    with pytest.raises(ValidationFailed):
        ingredient_ledger.deduct(db_session, flour.id, Decimal("-1"))


def test_deduct_many_is_all_or_nothing(db_session, make_ingredient):
    flour = make_ingredient("Spelt Flour", "100")
    salt = make_ingredient("Sea Salt", "1")
    seeds = make_ingredient("Sesame Seeds", "0")

    with pytest.raises(InsufficientStock) as exc:
        ingredient_ledger.deduct_many(db_session, {
            flour.id: Decimal("10"),
            salt.id: Decimal("2"),
            seeds.id: Decimal("0.5"),
        })
    db_session.rollback()

    # Both short ingredients are reported, not only the first
    assert {s.ingredient_id for s in exc.value.shortages} == {salt.id, seeds.id}
    assert on_hand(db_session, flour.id) == Decimal("100")
    assert db_session.query(InventoryAdjustment).count() == 0


def test_check_stock_reports_without_changing(db_session, make_ingredient):
    flour = make_ingredient("Spelt Flour", "5")
    shortages = ingredient_ledger.check_stock(db_session, {flour.id: Decimal("10")})
    assert len(shortages) == 1
    assert Decimal(shortages[0].as_dict()["shortfall"]) == Decimal("5")
    assert on_hand(db_session, flour.id) == Decimal("5")


def test_adjust_receive_and_waste(db_session, make_ingredient):
    honey = make_ingredient("Honey", "3", unit="gallon")

    ingredient_ledger.adjust(db_session, honey.id, Decimal("2"), "receive", reason="delivery")
    ingredient_ledger.adjust(db_session, honey.id, Decimal("-0.5"), "waste", reason="spilled")
    db_session.commit()

    assert on_hand(db_session, honey.id) == Decimal("4.5")
    rows = db_session.query(InventoryAdjustment).filter_by(ingredient_id=honey.id).all()
    assert sorted(r.adjustment_type for r in rows) == ["receive", "waste"]
    assert all(r.ref_type == "manual" for r in rows)


def test_adjust_rejects_unknown_type(db_session, make_ingredient):
    honey = make_ingredient("Honey", "3")
    with pytest.raises(ValidationFailed):
        ingredient_ledger.adjust(db_session, honey.id, Decimal("1"), "gift")


def test_set_on_hand_unchanged_writes_nothing(db_session, make_ingredient):
    flour = make_ingredient("Spelt Flour", "100")
    assert ingredient_ledger.set_on_hand(db_session, flour.id, Decimal("100")) is None
    assert db_session.query(InventoryAdjustment).count() == 0


# --- API ---

def test_adjust_endpoint(client, make_ingredient, db_session):
    flour = make_ingredient("Spelt Flour", "100")

    resp = client.post(
        f"/api/admin/ingredients/{flour.id}/adjust",
        json={"quantity": "25", "type": "receive", "reason": "weekly delivery"},
        headers={"X-Actor": "sam"},
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert Decimal(data["new_quantity"]) == Decimal("125")
    assert Decimal(data["previous_quantity"]) == Decimal("100")
    assert data["adjusted_by"] == "sam"
    # Decimals go over the wire as strings
    assert isinstance(data["quantity"], str)

    assert on_hand(db_session, flour.id) == Decimal("125")

    activity = client.get("/api/admin/activity", params={"entity_type": "ingredient"}).json()
    assert activity[0]["action"] == "ingredient.adjusted"
    assert activity[0]["actor"] == "sam"


def test_adjust_endpoint_below_zero_rejected(client, make_ingredient, db_session):
    salt = make_ingredient("Sea Salt", "1")

    resp = client.post(
        f"/api/admin/ingredients/{salt.id}/adjust",
        json={"quantity": "-3", "type": "waste"},
    )
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["message"] == "Insufficient stock"
    assert Decimal(detail["shortages"][0]["shortfall"]) == Decimal("2")
    assert on_hand(db_session, salt.id) == Decimal("1")


def test_adjust_endpoint_unknown_ingredient(client):
    resp = client.post("/api/admin/ingredients/nope/adjust", json={"quantity": "1", "type": "receive"})
    assert resp.status_code == 404


def test_patch_on_hand_is_audited_as_correction(client, make_ingredient, db_session):
    flour = make_ingredient("Spelt Flour", "100")

    resp = client.patch(
        f"/api/admin/ingredients/{flour.id}",
        json={"on_hand": "80", "name": "Whole Spelt Flour"},
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["name"] == "Whole Spelt Flour"
    assert Decimal(data["on_hand"]) == Decimal("80")

    history = client.get("/api/admin/inventory-adjustments", params={"ingredient_id": flour.id}).json()
    assert len(history) == 1
    assert history[0]["adjustment_type"] == "correction"
    assert Decimal(history[0]["quantity"]) == Decimal("-20")


def test_create_ingredient_rejects_negative_on_hand(client):
    resp = client.post("/api/admin/ingredients", json={"name": "Oats", "unit": "lb", "on_hand": "-1"})
    assert resp.status_code == 422


def test_low_stock(client, make_ingredient):
    make_ingredient("Spelt Flour", "100", reorder_threshold="20")
    make_ingredient("Yeast", "0.5", reorder_threshold="0.5")

    resp = client.get("/api/admin/ingredients/low-stock")
    assert resp.status_code == 200
    assert [i["name"] for i in resp.json()] == ["Yeast"]
    assert resp.json()[0]["is_low"] is True


def test_seed_only_on_empty_pantry(client):
    resp = client.post("/api/admin/ingredients/seed")
    assert resp.status_code == 200
    assert len(resp.json()["ingredients"]) > 0

    resp = client.post("/api/admin/ingredients/seed")
    assert resp.status_code == 400
