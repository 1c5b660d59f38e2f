"""
Variant stock guard for products and bestsellers.
"""
import json
import logging
from typing import Any, Dict, List, Union

from pymongo import ReturnDocument
from pymongo.database import Database

from config import CAS_MAX_RETRIES
from database import compare_and_swap, utcnow
from errors import ConflictError, InsufficientStock, NotFound, ValidationError
from schemas import VariantStock

logger = logging.getLogger("elanstore.inventory")

ENTITY_LABELS = {"product": "Product", "bestseller": "Best seller"}


def _number(value: Any, cast):
    try:
        return cast(value)
    except (TypeError, ValueError):
        return cast(0)


def normalize_variants(raw: Union[str, List[Dict[str, Any]], None]) -> List[Dict[str, Any]]:
    """Accept a JSON string or a list of dicts; blank size/color become "" and bad numbers 0."""
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError("variants must be a JSON list") from e
    if not isinstance(raw, list):
        raise ValidationError("variants must be a JSON list")
    variants = []
    for v in raw:
        variants.append(VariantStock(
            size=v.get("size") or "",
            color=v.get("color") or "",
            price=_number(v.get("price"), float),
            stock=max(_number(v.get("stock"), int), 0),
        ).model_dump())
    return variants


def reduce_stock(db: Database, collection: str, entity_id: int, size: str, color: str, quantity: int) -> Dict[str, Any]:
    if quantity is None or quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    label = ENTITY_LABELS.get(collection, collection.capitalize())

    for _ in range(CAS_MAX_RETRIES):
        entity = db[collection].find_one({"_id": entity_id})
        if entity is None:
            raise NotFound(f"{label} not found")
        variants = [dict(v) for v in entity.get("variants") or []]
        index = next((i for i, v in enumerate(variants) if v.get("size") == size and v.get("color") == color), None)
        if index is None:
            raise NotFound("Variant not found")
        if variants[index].get("stock", 0) < quantity:
            raise InsufficientStock("Not enough stock")
        variants[index]["stock"] -= quantity
        if compare_and_swap(db, collection, entity, {"variants": variants}):
            logger.info("Reduced %s %s (%s/%s) by %d to %d", collection, entity_id, size, color,
                        quantity, variants[index]["stock"])
            return variants[index]
    raise ConflictError("Stock is being updated elsewhere, please retry")


def set_stock(db: Database, product_id: int, stock: int) -> Dict[str, Any]:
    if stock is None or stock < 0:
        raise ValidationError("stock must be a non-negative integer")
    product = db["product"].find_one_and_update(
        {"_id": product_id},
        {"$set": {"stock": stock, "updated_at": utcnow()}, "$inc": {"version": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if product is None:
        raise NotFound("Product not found")
    return product
