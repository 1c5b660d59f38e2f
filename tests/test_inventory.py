import json

import pytest

import database
import inventory
from database import create_numbered_document
from errors import InsufficientStock, NotFound, ValidationError


def stock_of(db, collection, entity_id, size, color):
    doc = db[collection].find_one({"_id": entity_id})
    return next(v["stock"] for v in doc["variants"] if v["size"] == size and v["color"] == color)


def test_reduce_stock_decrements(db, tee):
    variant = inventory.reduce_stock(db, "product", tee["_id"], "M", "Red", 3)
    assert variant == {"size": "M", "color": "Red", "price": 20.0, "stock": 2}
    assert stock_of(db, "product", tee["_id"], "M", "Red") == 2


def test_reduce_stock_to_zero(db, tee):
    assert inventory.reduce_stock(db, "product", tee["_id"], "M", "Red", 5)["stock"] == 0


def test_over_commit_is_rejected_without_change(db, tee):
    with pytest.raises(InsufficientStock, match="Not enough stock"):
        inventory.reduce_stock(db, "product", tee["_id"], "M", "Red", 6)
    assert stock_of(db, "product", tee["_id"], "M", "Red") == 5


def test_unknown_variant(db, tee):
    with pytest.raises(NotFound, match="Variant not found"):
        inventory.reduce_stock(db, "product", tee["_id"], "XS", "Red", 1)
    assert stock_of(db, "product", tee["_id"], "M", "Red") == 5


def test_unknown_entity(db):
    with pytest.raises(NotFound, match="Best seller not found"):
        inventory.reduce_stock(db, "bestseller", 404, "M", "Red", 1)


def test_quantity_must_be_positive(db, tee):
    with pytest.raises(ValidationError):
        inventory.reduce_stock(db, "product", tee["_id"], "M", "Red", 0)


def test_lost_race_is_rechecked(db, tee, monkeypatch):
    calls = []

    def racing_swap(db_, collection, doc, changes):
        if not calls:
            # another checkout takes 4 units between our read and our write
            db_[collection].update_one({"_id": doc["_id"], "variants.size": "M"},
                                       {"$set": {"variants.0.stock": 1}, "$inc": {"version": 1}})
        calls.append(changes)
        return database.compare_and_swap(db_, collection, doc, changes)

    monkeypatch.setattr(inventory, "compare_and_swap", racing_swap)
    with pytest.raises(InsufficientStock):
        inventory.reduce_stock(db, "product", tee["_id"], "M", "Red", 3)
    assert stock_of(db, "product", tee["_id"], "M", "Red") == 1


def test_normalize_variants_fills_blanks():
    raw = json.dumps([{"size": "S", "price": "12.5", "stock": "3"}, {"color": "Blue", "price": "n/a"}])
    assert inventory.normalize_variants(raw) == [
        {"size": "S", "color": "", "price": 12.5, "stock": 3},
        {"size": "", "color": "Blue", "price": 0.0, "stock": 0},
    ]


def test_normalize_variants_rejects_garbage():
    assert inventory.normalize_variants(None) == []
    with pytest.raises(ValidationError):
        inventory.normalize_variants("{not json")


def test_set_stock(db, tee):
    assert inventory.set_stock(db, tee["_id"], 42)["stock"] == 42
    with pytest.raises(NotFound):
        inventory.set_stock(db, 999, 1)
    with pytest.raises(ValidationError):
        inventory.set_stock(db, tee["_id"], -1)


def test_bestseller_reduce_stock_route(client, db):
    b = create_numbered_document(db, "bestseller", {
        "name": "Silk Scarf", "variants": [{"size": "", "color": "Green", "price": 30.0, "stock": 2}]})
    r = client.post("/bestsellers/reduce-stock",
                    json={"bestseller_id": b["_id"], "size": "", "color": "Green", "quantity": 2})
    assert r.status_code == 200
    assert r.json() == {"success": True, "variant": {"size": "", "color": "Green", "price": 30.0, "stock": 0}}

    r = client.post("/bestsellers/reduce-stock",
                    json={"bestseller_id": b["_id"], "size": "", "color": "Green", "quantity": 1})
    assert r.status_code == 400
    assert r.json() == {"error": "Not enough stock"}


def test_product_reduce_stock_route(client, tee):
    r = client.post("/products/reduce-stock", json={"product_id": tee["_id"], "size": "L", "color": "Red"})
    assert r.status_code == 400
    r = client.post("/products/reduce-stock", json={"product_id": tee["_id"], "size": "M", "color": "Pink"})
    assert r.status_code == 404
    assert r.json() == {"error": "Variant not found"}
    r = client.post("/products/reduce-stock", json={"size": "M", "color": "Red"})
    assert r.status_code == 400


def test_stock_patch_route(client, tee):
    r = client.patch(f"/products/stock/{tee['_id']}", json={"stock": 3})
    assert r.status_code == 200
    assert r.json()["stock"] == 3
