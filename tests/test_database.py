from bson import ObjectId

from database import compare_and_swap, create_document, create_numbered_document, next_id, to_public


def test_next_id_counts_per_collection(db):
    assert [next_id(db, "product") for _ in range(3)] == [1, 2, 3]
    assert next_id(db, "order") == 1


def test_create_document_stamps_version(db):
    _id = create_document(db, "cart", {"user_id": "u1", "items": []})
    doc = db["cart"].find_one({"_id": _id})
    assert doc["version"] == 0
    assert doc["created_at"] is not None


def test_compare_and_swap_rejects_stale_version(db):
    doc = create_numbered_document(db, "product", {"name": "Tee", "stock": 1})
    assert compare_and_swap(db, "product", doc, {"stock": 2})
    assert not compare_and_swap(db, "product", doc, {"stock": 3})
    stored = db["product"].find_one({"_id": doc["_id"]})
    assert stored["stock"] == 2
    assert stored["version"] == 1


def test_to_public():
    oid = ObjectId()
    assert to_public({"_id": oid, "version": 3, "x": 1}, key="cart_id") == {"cart_id": str(oid), "x": 1}
    assert to_public({"_id": 5}) == {"id": 5}
    assert to_public(None) is None
