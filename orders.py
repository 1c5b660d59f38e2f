"""
Order placement, checkout side effects and the order-level return workflow.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.database import Database

from cart import clear_cart
from config import CAS_MAX_RETRIES
from database import compare_and_swap, create_numbered_document, get_documents, to_public, utcnow
from errors import ConflictError, InvalidArgument, NotFound, ValidationError
from schemas import Order, OrderItem

logger = logging.getLogger("elanstore.orders")

COD_METHODS = {"cod", "cash on delivery", "cash_on_delivery"}
RETURN_ACTIONS = {"approve": "Approved", "reject": "Rejected"}
EDITABLE_FIELDS = ("items", "total_amount", "shipping_address", "payment_method")


def is_cod(payment_method: Optional[str]) -> bool:
    return (payment_method or "").strip().lower() in COD_METHODS


def resolve_payment_status(payment_method: Optional[str], payment_status: Optional[str] = None) -> str:
    if is_cod(payment_method):
        return "pending"
    return payment_status or "pending"


def finalize_order(db: Database, user_id: Any, payment_method: Optional[str],
                   payment_status: Optional[str] = None) -> str:
    """Clear the user's cart once the order is paid or will be paid on delivery.

    The whole cart goes, not just the lines that made it into the order.
    Returns the effective payment status.
    """
    status = resolve_payment_status(payment_method, payment_status)
    if status == "paid" or is_cod(payment_method):
        clear_cart(db, user_id)
    return status


def _public(order: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return to_public(order, key="order_id")


def _order_items(items: List[Dict[str, Any]], keep_return_status: bool = False) -> List[Dict[str, Any]]:
    try:
        parsed = [OrderItem(**i) for i in items]
    except (PydanticValidationError, TypeError) as e:
        raise ValidationError("Invalid order items") from e
    if not keep_return_status:
        for it in parsed:
            it.return_status = None
    return [it.model_dump() for it in parsed]


def create_order(db: Database, user_id: Any, items: List[Dict[str, Any]], total_amount: float,
                 shipping_address: Optional[Dict[str, Any]] = None, payment_method: Optional[str] = None,
                 payment_status: Optional[str] = None, gateway_order_id: Optional[str] = None) -> Dict[str, Any]:
    if not user_id:
        raise ValidationError("user_id is required")
    if not items:
        raise ValidationError("Order must contain at least one item")
    payment_method = payment_method or "cod"
    try:
        order = Order(
            user_id=str(user_id),
            items=_order_items(items),
            total_amount=total_amount,
            shipping_address=shipping_address or {},
            payment_method=payment_method,
            payment_status=resolve_payment_status(payment_method, payment_status),
            gateway_order_id=gateway_order_id,
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid order: {e.errors()[0]['msg']}") from e

    doc = create_numbered_document(db, "order", order)
    finalize_order(db, order.user_id, order.payment_method, order.payment_status)
    logger.info("Created order %s for user %s (%s, %s)", doc["_id"], order.user_id,
                order.payment_method, order.payment_status)
    return _public(doc)


def get_order(db: Database, order_id: int) -> Dict[str, Any]:
    order = db["order"].find_one({"_id": order_id})
    if order is None:
        raise NotFound("Order not found")
    return _public(order)


def list_orders(db: Database, user_id: Any = None) -> List[Dict[str, Any]]:
    query = {"user_id": str(user_id)} if user_id is not None else {}
    docs = get_documents(db, "order", query, sort=[("created_at", -1), ("_id", -1)])
    return [_public(o) for o in docs]


def _update(db: Database, order_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    order = db["order"].find_one_and_update(
        {"_id": order_id},
        {"$set": changes | {"updated_at": utcnow()}, "$inc": {"version": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if order is None:
        raise NotFound("Order not found")
    return _public(order)


def update_order_status(db: Database, order_id: int, order_status: Optional[str]) -> Dict[str, Any]:
    if not order_status:
        raise ValidationError("order_status is required")
    return _update(db, order_id, {"order_status": order_status})


def update_order(db: Database, order_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
    if not changes:
        raise ValidationError("Nothing to update")
    if "items" in changes:
        changes["items"] = _order_items(changes["items"], keep_return_status=True)
    if "total_amount" in changes and changes["total_amount"] < 0:
        raise ValidationError("total_amount must be non-negative")
    return _update(db, order_id, changes)


def attach_gateway_order(db: Database, order_id: int, gateway_order_id: str) -> Dict[str, Any]:
    return _update(db, order_id, {"gateway_order_id": gateway_order_id})


def mark_paid(db: Database, order_id: int, payment_id: str) -> Dict[str, Any]:
    order = _update(db, order_id, {"payment_status": "paid", "payment_id": payment_id})
    finalize_order(db, order["user_id"], order.get("payment_method"), "paid")
    return order


def delete_order(db: Database, order_id: int) -> None:
    result = db["order"].delete_one({"_id": order_id})
    if not result.deleted_count:
        raise NotFound("Order not found")


def _set_return_status(db: Database, order_id: int, status: str,
                       extra: Optional[Dict[str, Any]] = None, require: Optional[str] = None) -> Dict[str, Any]:
    for _ in range(CAS_MAX_RETRIES):
        order = db["order"].find_one({"_id": order_id})
        if order is None:
            raise NotFound("Order not found")
        current = order.get("items", [])
        if require and (not current or any(it.get("return_status") != require for it in current)):
            raise InvalidArgument("No return requested for this order")
        items = [dict(it, return_status=status) for it in current]
        if compare_and_swap(db, "order", order, {"items": items} | (extra or {})):
            logger.info("Order %s return status -> %s", order_id, status)
            return get_order(db, order_id)
    raise ConflictError("Order is being updated elsewhere, please retry")


def request_return(db: Database, order_id: int, reason: Optional[str]) -> Dict[str, Any]:
    return _set_return_status(db, order_id, "Requested", {"return_reason": reason})


def resolve_return(db: Database, order_id: int, action: Optional[str]) -> Dict[str, Any]:
    status = RETURN_ACTIONS.get((action or "").lower())
    if status is None:
        raise InvalidArgument("Invalid action, expected 'approve' or 'reject'")
    return _set_return_status(db, order_id, status, require="Requested")


def sales_summary(db: Database) -> Dict[str, Any]:
    orders = 0
    revenue = 0.0
    units: Dict[str, int] = {}
    for o in db["order"].find({}):
        orders += 1
        if o.get("payment_status") == "paid":
            revenue += float(o.get("total_amount", 0))
        for it in o.get("items", []):
            key = str(it.get("product_id"))
            units[key] = units.get(key, 0) + int(it.get("quantity", 0))
    return {"orders": orders, "revenue": round(revenue, 2), "units_sold": units}
