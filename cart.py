"""
Cart aggregation.

A cart is one document per user holding an ordered list of lines. Lines are
unique per (product_id, selected_size, selected_color); adding a line that is
already present bumps its quantity instead of appending a duplicate.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import CAS_MAX_RETRIES
from database import compare_and_swap, create_document, get_documents, to_public
from errors import ConflictError, NotFound, ValidationError
from schemas import Cart, CartLine

logger = logging.getLogger("elanstore.cart")


def _same_variant(item: Dict[str, Any], product_id: int, size: str, color: str) -> bool:
    return (
        item.get("product_id") == product_id
        and item.get("selected_size") == size
        and item.get("selected_color") == color
    )


def merge_line(items: List[Dict[str, Any]], line: CartLine) -> List[Dict[str, Any]]:
    merged = [dict(i) for i in items]
    for it in merged:
        if _same_variant(it, *line.key()):
            it["quantity"] += line.quantity
            return merged
    merged.append(line.model_dump())
    return merged


def _public(cart: Dict[str, Any]) -> Dict[str, Any]:
    return to_public(cart, key="cart_id")


def _find(db: Database, user_id: str) -> Optional[Dict[str, Any]]:
    return db["cart"].find_one({"user_id": user_id})


def _rewrite_items(db: Database, user_id: str,
                   mutate: Callable[[List[Dict[str, Any]]], Optional[List[Dict[str, Any]]]]) -> Dict[str, Any]:
    # mutate returns None when there is nothing to write
    for _ in range(CAS_MAX_RETRIES):
        cart = _find(db, user_id)
        if cart is None:
            raise NotFound("Cart not found")
        items = mutate([dict(i) for i in cart.get("items", [])])
        if items is None:
            return _public(cart)
        if compare_and_swap(db, "cart", cart, {"items": items}):
            return _public(_find(db, user_id))
    raise ConflictError("Cart is being updated elsewhere, please retry")


def add_to_cart(db: Database, user_id: Any, product: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not user_id or not product or not product.get("product_id"):
        raise ValidationError("Invalid product or user ID")
    try:
        line = CartLine(**product)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid cart item: {e.errors()[0]['msg']}") from e

    user_id = str(user_id)
    for _ in range(CAS_MAX_RETRIES):
        cart = _find(db, user_id)
        if cart is None:
            try:
                create_document(db, "cart", Cart(user_id=user_id, items=[line]))
            except DuplicateKeyError:
                # created by a concurrent request, merge into it instead
                continue
            logger.info("Created cart for user %s", user_id)
            return _public(_find(db, user_id))
        items = merge_line(cart.get("items", []), line)
        if compare_and_swap(db, "cart", cart, {"items": items}):
            return _public(_find(db, user_id))
    raise ConflictError("Cart is being updated elsewhere, please retry")


def update_line(db: Database, user_id: Any, product_id: int, size: str, color: str, quantity: int) -> Dict[str, Any]:
    if quantity is None or quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    def mutate(items):
        for it in items:
            if _same_variant(it, product_id, size, color):
                it["quantity"] = quantity
                return items
        raise NotFound("Item not found in cart")

    return _rewrite_items(db, str(user_id), mutate)


def remove_line(db: Database, user_id: Any, product_id: int, size: str, color: str) -> Dict[str, Any]:
    """Drop the matching line. A line that is not in the cart leaves the cart untouched."""
    def mutate(items):
        kept = [it for it in items if not _same_variant(it, product_id, size, color)]
        return kept if len(kept) != len(items) else None

    return _rewrite_items(db, str(user_id), mutate)


def remove_product(db: Database, user_id: Any, product_id: int) -> Dict[str, Any]:
    def mutate(items):
        kept = [it for it in items if it.get("product_id") != product_id]
        return kept if len(kept) != len(items) else None

    return _rewrite_items(db, str(user_id), mutate)


def get_cart(db: Database, user_id: Any) -> Dict[str, Any]:
    cart = _find(db, str(user_id))
    if cart is None:
        return {"user_id": str(user_id), "items": []}
    return _public(cart)


def list_carts(db: Database) -> List[Dict[str, Any]]:
    return [_public(c) for c in get_documents(db, "cart")]


def clear_cart(db: Database, user_id: Any) -> bool:
    result = db["cart"].delete_one({"user_id": str(user_id)})
    if result.deleted_count:
        logger.info("Cleared cart for user %s", user_id)
    return bool(result.deleted_count)
