import pytest

import cart
import orders
from errors import InvalidArgument, NotFound, ValidationError

ITEMS = [
    {"product_id": 201, "selected_size": "M", "selected_color": "Red", "quantity": 2, "price_at_addition": 20.0},
    {"product_id": 305, "selected_size": "S", "selected_color": "Blue", "quantity": 1, "price_at_addition": 15.0},
]


@pytest.fixture
def filled_cart(db):
    cart.add_to_cart(db, "u1", dict(ITEMS[0]))
    return "u1"


def has_cart(db, user_id):
    return db["cart"].find_one({"user_id": user_id}) is not None


@pytest.mark.parametrize("method,status,expected", [
    ("cod", None, "pending"),
    ("COD", "paid", "pending"),
    ("online", None, "pending"),
    ("online", "paid", "paid"),
    ("online", "failed", "failed"),
])
def test_resolve_payment_status(method, status, expected):
    assert orders.resolve_payment_status(method, status) == expected


@pytest.mark.parametrize("status", [None, "paid", "failed", "pending"])
def test_cod_always_clears_cart(db, filled_cart, status):
    assert orders.finalize_order(db, filled_cart, "cod", status) == "pending"
    assert not has_cart(db, filled_cart)


def test_paid_online_clears_cart(db, filled_cart):
    assert orders.finalize_order(db, filled_cart, "online", "paid") == "paid"
    assert not has_cart(db, filled_cart)


def test_pending_online_keeps_cart(db, filled_cart):
    assert orders.finalize_order(db, filled_cart, "online", None) == "pending"
    assert has_cart(db, filled_cart)


def test_create_order_snapshots_items(db, filled_cart):
    order = orders.create_order(db, "u1", ITEMS, 55.0, {"city": "Pune"}, "cod", "paid")
    assert order["order_id"] == 1
    assert order["order_status"] == "Pending"
    assert order["payment_status"] == "pending"
    assert [i["return_status"] for i in order["items"]] == [None, None]
    assert not has_cart(db, "u1")


def test_create_order_validation(db):
    with pytest.raises(ValidationError):
        orders.create_order(db, None, ITEMS, 10.0)
    with pytest.raises(ValidationError):
        orders.create_order(db, "u1", [], 10.0)
    with pytest.raises(ValidationError):
        orders.create_order(db, "u1", [{"quantity": 1}], 10.0)


def test_return_workflow(db):
    order = orders.create_order(db, "u1", ITEMS, 55.0, payment_method="cod")
    requested = orders.request_return(db, order["order_id"], "Wrong size")
    assert {i["return_status"] for i in requested["items"]} == {"Requested"}
    assert requested["return_reason"] == "Wrong size"

    approved = orders.resolve_return(db, order["order_id"], "approve")
    assert {i["return_status"] for i in approved["items"]} == {"Approved"}


def test_reject_return(db):
    order = orders.create_order(db, "u1", ITEMS, 55.0, payment_method="cod")
    orders.request_return(db, order["order_id"], "Changed my mind")
    rejected = orders.resolve_return(db, order["order_id"], "reject")
    assert {i["return_status"] for i in rejected["items"]} == {"Rejected"}


def test_bogus_action_leaves_state(db):
    order = orders.create_order(db, "u1", ITEMS, 55.0, payment_method="cod")
    orders.request_return(db, order["order_id"], "Damaged")
    with pytest.raises(InvalidArgument):
        orders.resolve_return(db, order["order_id"], "bogus")
    stored = orders.get_order(db, order["order_id"])
    assert {i["return_status"] for i in stored["items"]} == {"Requested"}


def test_resolve_without_request_leaves_state(db):
    order = orders.create_order(db, "u1", ITEMS, 55.0, payment_method="cod")
    with pytest.raises(InvalidArgument, match="No return requested for this order"):
        orders.resolve_return(db, order["order_id"], "approve")
    stored = orders.get_order(db, order["order_id"])
    assert {i["return_status"] for i in stored["items"]} == {None}

    orders.request_return(db, order["order_id"], "Damaged")
    orders.resolve_return(db, order["order_id"], "reject")
    with pytest.raises(InvalidArgument):
        orders.resolve_return(db, order["order_id"], "approve")
    stored = orders.get_order(db, order["order_id"])
    assert {i["return_status"] for i in stored["items"]} == {"Rejected"}


def test_return_on_missing_order(db):
    with pytest.raises(NotFound, match="Order not found"):
        orders.request_return(db, 99, "x")
    with pytest.raises(NotFound):
        orders.resolve_return(db, 99, "approve")


def test_update_order_keeps_return_status(db):
    order = orders.create_order(db, "u1", ITEMS, 55.0, payment_method="cod")
    orders.request_return(db, order["order_id"], "Damaged")
    items = orders.get_order(db, order["order_id"])["items"][:1]
    updated = orders.update_order(db, order["order_id"], {"items": items, "total_amount": 40.0, "payment_method": None})
    assert updated["total_amount"] == 40.0
    assert updated["payment_method"] == "cod"
    assert [i["return_status"] for i in updated["items"]] == ["Requested"]


def test_sales_summary(db):
    orders.create_order(db, "u1", ITEMS, 55.0, payment_method="online", payment_status="paid")
    orders.create_order(db, "u2", ITEMS[:1], 40.0, payment_method="cod")
    summary = orders.sales_summary(db)
    assert summary == {"orders": 2, "revenue": 55.0, "units_sold": {"201": 4, "305": 1}}


def test_order_routes(client):
    client.post("/carts/add", json={"user_id": "u1", "product": ITEMS[0]})
    r = client.post("/orders/add", json={"user_id": "u1", "items": ITEMS, "total_amount": 55.0,
                                         "shipping_address": {"city": "Pune"}, "payment_method": "cod"})
    assert r.status_code == 201
    order_id = r.json()["order_id"]
    assert client.get("/carts/u1").json()["items"] == []

    client.post("/orders/add", json={"user_id": "u1", "items": ITEMS[:1], "total_amount": 40.0,
                                     "payment_method": "online"})
    mine = client.get("/orders/user/u1").json()
    assert [o["order_id"] for o in mine] == [order_id + 1, order_id]
    assert len(client.get("/orders/").json()) == 2

    r = client.put(f"/orders/{order_id}/status", json={"order_status": "Shipped"})
    assert r.json()["order_status"] == "Shipped"

    r = client.post(f"/orders/{order_id}/return", json={"reason": "Too small"})
    assert r.json()["data"]["items"][0]["return_status"] == "Requested"

    r = client.put(f"/orders/{order_id}/return", json={"action": "bogus"})
    assert r.status_code == 400

    r = client.put(f"/orders/{order_id}/return", json={"action": "approve"})
    assert {i["return_status"] for i in r.json()["data"]["items"]} == {"Approved"}
    r = client.put(f"/orders/{order_id}/return", json={"action": "approve"})
    assert r.status_code == 400
    assert r.json() == {"error": "No return requested for this order"}

    assert client.get("/orders/analytics/sales").json()["orders"] == 2

    assert client.delete(f"/orders/{order_id}").json() == {"message": "Order deleted successfully"}
    r = client.get(f"/orders/{order_id}")
    assert r.status_code == 404
    assert r.json() == {"error": "Order not found"}
