import json
import logging
import re
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Optional, List, Dict, Any, Union

from fastapi import FastAPI, HTTPException, Depends, Header, Request, Form, File, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException
import jwt

import cart as carts
import orders
from config import (ALLOWED_ORIGINS, JWT_EXP_MIN, JWT_SECRET, PAYMENT_SIGNING_SECRET, PRIMARY_CURRENCY,
                    STORE_NAME, STRIPE_SECRET, CLOUDINARY_CLOUD_NAME)
from database import create_numbered_document, ensure_indexes, get_db, get_documents, ping, to_public, utcnow
from errors import ApiError, NotFound, ValidationError
from inventory import normalize_variants, reduce_stock, set_stock
from payments import create_payment_order, verify_signature
from schemas import Bestseller, CodSetting, ContactMessage, Coupon, Product, Review, User
from uploads import ImageUploader, get_uploader, read_uploads, upload_all

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger("elanstore")

# Security
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # indexes go on whichever store get_db resolves to, overrides included
    db_factory = app.dependency_overrides.get(get_db, get_db)
    try:
        ensure_indexes(db_factory())
    except PyMongoError as e:
        logger.warning("Could not create indexes: %s", e)
    yield


app = FastAPI(title="Elan Store API", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in ALLOWED_ORIGINS] if ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Utilities
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_token(user_doc: Dict[str, Any]) -> str:
    payload = {
        "sub": str(user_doc.get("_id")),
        "email": user_doc.get("email"),
        "exp": datetime.now(timezone.utc) + timedelta(minutes=JWT_EXP_MIN),
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_user(authorization: Optional[str] = Header(default=None), db: Database = Depends(get_db)) -> Dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    payload = decode_token(token)
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db["user"].find_one({"_id": user_id})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def build(model, **data):
    try:
        return model(**data)
    except PydanticValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err["loc"])
        raise ValidationError(f"{field}: {err['msg']}" if field else err["msg"]) from e


def parse_json_list(raw: Optional[str], field: str) -> List[Any]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{field} must be a JSON list") from e
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a JSON list")
    return value


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    user = to_public(doc, key="user_id")
    user.pop("password_hash", None)
    user.pop("updated_at", None)
    return user


# Error handlers
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    err = exc.errors()[0]
    field = ".".join(str(p) for p in err["loc"] if p != "body")
    return JSONResponse(status_code=400, content={"error": f"{field}: {err['msg']}" if field else err["msg"]})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Health and config
@app.get("/")
def root():
    return {"name": STORE_NAME, "status": "ok"}


@app.get("/config")
def get_config():
    return {
        "storeName": STORE_NAME,
        "currency": PRIMARY_CURRENCY,
        "payments": {"gateway": bool(STRIPE_SECRET), "verification": bool(PAYMENT_SIGNING_SECRET)},
        "uploads": bool(CLOUDINARY_CLOUD_NAME),
    }


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    info = {"backend": "running", "database": "unavailable", "collections": []}
    try:
        info["collections"] = ping(db)
        info["database"] = "connected"
    except PyMongoError as e:
        info["database"] = f"error: {str(e)[:80]}"
    return info


# Users
class RegisterDTO(BaseModel):
    full_name: str
    email: EmailStr
    phone_number: Optional[str] = None
    password: str


class LoginDTO(BaseModel):
    email: EmailStr
    password: str


@app.post("/users/register")
def register(data: RegisterDTO, db: Database = Depends(get_db)):
    if db["user"].find_one({"email": data.email}):
        raise ValidationError("Email already registered")
    user = User(full_name=data.full_name, email=data.email, phone_number=data.phone_number,
                password_hash=hash_password(data.password))
    try:
        doc = create_numbered_document(db, "user", user)
    except DuplicateKeyError:
        raise ValidationError("Email already registered")
    logger.info("Registered user %s", doc["_id"])
    return {"user": public_user(doc)}


@app.post("/users/login")
def login(data: LoginDTO, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": data.email})
    if not user or not verify_password(data.password, user.get("password_hash", "")):
        raise ValidationError("Invalid credentials")
    return {"user": public_user(user), "token": create_token(user)}


@app.get("/users/")
def list_users(db: Database = Depends(get_db)):
    return {"users": [public_user(u) for u in get_documents(db, "user", sort=[("_id", 1)])]}


@app.get("/users/me")
def me(user: Dict[str, Any] = Depends(get_current_user)):
    return {"user": public_user(user)}


@app.get("/users/{user_id}")
def get_user(user_id: int, db: Database = Depends(get_db)):
    user = db["user"].find_one({"_id": user_id})
    if not user:
        raise NotFound("User not found")
    return {"user": public_user(user)}


# Products
class StockDTO(BaseModel):
    stock: int


class ReduceStockDTO(BaseModel):
    product_id: Optional[int] = None
    bestseller_id: Optional[int] = None
    size: str = ""
    color: str = ""
    quantity: int = 1


@app.post("/products/add")
async def add_product(
    name: str = Form(...),
    category: Optional[str] = Form(None),
    subcategory: Optional[str] = Form(None),
    price: float = Form(0.0),
    stock: int = Form(0),
    is_new: bool = Form(False),
    is_bestseller: bool = Form(False),
    is_featured: bool = Form(False),
    variants: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    db: Database = Depends(get_db),
    uploader: ImageUploader = Depends(get_uploader),
):
    product = build(Product, name=name, category=category, subcategory=subcategory, price=price, stock=stock,
                    variants=normalize_variants(variants), is_new=is_new, is_bestseller=is_bestseller,
                    is_featured=is_featured)
    product.images = await upload_all(uploader, await read_uploads(images), "elanproducts")
    doc = create_numbered_document(db, "product", product)
    logger.info("Created product %s with %d images", doc["_id"], len(product.images))
    return {"product": to_public(doc)}


@app.put("/products/update/{product_id}")
async def update_product(
    product_id: int,
    name: str = Form(...),
    category: Optional[str] = Form(None),
    subcategory: Optional[str] = Form(None),
    price: float = Form(0.0),
    stock: int = Form(0),
    is_new: bool = Form(False),
    is_bestseller: bool = Form(False),
    is_featured: bool = Form(False),
    variants: Optional[str] = Form(None),
    existingImages: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    db: Database = Depends(get_db),
    uploader: ImageUploader = Depends(get_uploader),
):
    kept = parse_json_list(existingImages, "existingImages")
    if not db["product"].find_one({"_id": product_id}, {"_id": 1}):
        raise NotFound("Product not found")
    uploaded = await upload_all(uploader, await read_uploads(images), "elanproducts")
    product = build(Product, name=name, category=category, subcategory=subcategory, price=price, stock=stock,
                    images=kept + uploaded, variants=normalize_variants(variants), is_new=is_new,
                    is_bestseller=is_bestseller, is_featured=is_featured)
    doc = db["product"].find_one_and_update(
        {"_id": product_id},
        {"$set": product.model_dump() | {"updated_at": utcnow()}, "$inc": {"version": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Product not found")
    return {"product": to_public(doc)}


@app.get("/products/all")
def list_products(db: Database = Depends(get_db)):
    return [to_public(p) for p in get_documents(db, "product", sort=[("_id", -1)])]


@app.get("/products/new")
def list_new_products(db: Database = Depends(get_db)):
    return [to_public(p) for p in get_documents(db, "product", {"is_new": True}, sort=[("created_at", -1)])]


@app.get("/products/bestsellers")
def list_bestseller_products(db: Database = Depends(get_db)):
    return [to_public(p) for p in get_documents(db, "product", {"is_bestseller": True})]


@app.get("/products/featured")
def list_featured_products(db: Database = Depends(get_db)):
    return [to_public(p) for p in get_documents(db, "product", {"is_featured": True})]


@app.get("/products/search/{query}")
def search_products(query: str, db: Database = Depends(get_db)):
    docs = get_documents(db, "product", {"name": {"$regex": re.escape(query), "$options": "i"}})
    return [to_public(p) for p in docs]


@app.post("/products/reduce-stock")
def reduce_product_stock(data: ReduceStockDTO, db: Database = Depends(get_db)):
    if data.product_id is None:
        raise ValidationError("product_id is required")
    variant = reduce_stock(db, "product", data.product_id, data.size, data.color, data.quantity)
    return {"success": True, "variant": variant}


@app.patch("/products/stock/{product_id}")
def update_product_stock(product_id: int, data: StockDTO, db: Database = Depends(get_db)):
    return to_public(set_stock(db, product_id, data.stock))


@app.delete("/products/delete/{product_id}")
def delete_product(product_id: int, db: Database = Depends(get_db)):
    result = db["product"].delete_one({"_id": product_id})
    if not result.deleted_count:
        raise NotFound("Product not found")
    return {"message": "Product deleted successfully"}


@app.get("/products/{product_id}")
def get_product(product_id: int, db: Database = Depends(get_db)):
    p = db["product"].find_one({"_id": product_id})
    if not p:
        raise NotFound("Product not found")
    return to_public(p)


# Bestsellers
class ReviewDTO(BaseModel):
    name: Optional[str] = None
    rating: Optional[float] = None
    comment: Optional[str] = None


async def _bestseller_images(uploader: ImageUploader, main_image: Optional[UploadFile],
                             thumbnails: Optional[List[UploadFile]]):
    main_blobs = await read_uploads([main_image] if main_image else [], max_files=1)
    thumb_blobs = await read_uploads(thumbnails)
    urls = await upload_all(uploader, main_blobs + thumb_blobs, "elanbestsellers")
    main_url = urls[0] if main_blobs else None
    return main_url, urls[len(main_blobs):]


@app.post("/bestsellers/add")
async def add_bestseller(
    name: str = Form(...),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    variants: Optional[str] = Form(None),
    mainImage: Optional[UploadFile] = File(None),
    thumbnails: Optional[List[UploadFile]] = File(None),
    db: Database = Depends(get_db),
    uploader: ImageUploader = Depends(get_uploader),
):
    parsed_variants = normalize_variants(variants)
    main_url, thumb_urls = await _bestseller_images(uploader, mainImage, thumbnails)
    bestseller = build(Bestseller, name=name, category=category, description=description, main_image=main_url,
                       thumbnails=thumb_urls, variants=parsed_variants)
    doc = create_numbered_document(db, "bestseller", bestseller)
    logger.info("Created bestseller %s", doc["_id"])
    return {"bestseller": to_public(doc)}


@app.put("/bestsellers/update/{bestseller_id}")
async def update_bestseller(
    bestseller_id: int,
    name: str = Form(...),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    variants: Optional[str] = Form(None),
    existingMainImage: Optional[str] = Form(None),
    existingThumbnails: Optional[str] = Form(None),
    mainImage: Optional[UploadFile] = File(None),
    thumbnails: Optional[List[UploadFile]] = File(None),
    db: Database = Depends(get_db),
    uploader: ImageUploader = Depends(get_uploader),
):
    kept_thumbs = parse_json_list(existingThumbnails, "existingThumbnails")
    parsed_variants = normalize_variants(variants)
    if not db["bestseller"].find_one({"_id": bestseller_id}, {"_id": 1}):
        raise NotFound("Best seller not found")
    main_url, thumb_urls = await _bestseller_images(uploader, mainImage, thumbnails)
    changes = {
        "name": name,
        "category": category,
        "description": description,
        "main_image": main_url or existingMainImage or None,
        "thumbnails": kept_thumbs + thumb_urls,
        "variants": parsed_variants,
        "updated_at": utcnow(),
    }
    doc = db["bestseller"].find_one_and_update(
        {"_id": bestseller_id},
        {"$set": changes, "$inc": {"version": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Best seller not found")
    return {"bestseller": to_public(doc)}


@app.get("/bestsellers/all")
def list_bestsellers(db: Database = Depends(get_db)):
    return [to_public(b) for b in get_documents(db, "bestseller", sort=[("_id", -1)])]


@app.post("/bestsellers/reduce-stock")
def reduce_bestseller_stock(data: ReduceStockDTO, db: Database = Depends(get_db)):
    if data.bestseller_id is None:
        raise ValidationError("bestseller_id is required")
    variant = reduce_stock(db, "bestseller", data.bestseller_id, data.size, data.color, data.quantity)
    return {"success": True, "variant": variant}


@app.delete("/bestsellers/delete/{bestseller_id}")
def delete_bestseller(bestseller_id: int, db: Database = Depends(get_db)):
    result = db["bestseller"].delete_one({"_id": bestseller_id})
    if not result.deleted_count:
        raise NotFound("Best seller not found")
    return {"message": "Best seller deleted successfully"}


@app.get("/bestsellers/{bestseller_id}")
def get_bestseller(bestseller_id: int, db: Database = Depends(get_db)):
    b = db["bestseller"].find_one({"_id": bestseller_id})
    if not b:
        raise NotFound("Best seller not found")
    return to_public(b)


@app.post("/bestsellers/{bestseller_id}/review")
def add_review(bestseller_id: int, data: ReviewDTO, db: Database = Depends(get_db)):
    if not data.name or not data.rating or not data.comment:
        raise ValidationError("All fields are required")
    review = build(Review, name=data.name, rating=data.rating, comment=data.comment).model_dump()
    review["date"] = utcnow()
    doc = db["bestseller"].find_one_and_update(
        {"_id": bestseller_id},
        {"$push": {"reviews": review}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Best seller not found")
    return {"success": True, "review": review}


# Carts
class AddToCartDTO(BaseModel):
    user_id: Optional[Union[int, str]] = None
    product: Optional[Dict[str, Any]] = None


class CartLineKeyDTO(BaseModel):
    product_id: int
    selected_size: str = ""
    selected_color: str = ""


class CartLineUpdateDTO(CartLineKeyDTO):
    quantity: int


@app.get("/carts/")
def list_carts(db: Database = Depends(get_db)):
    return carts.list_carts(db)


@app.get("/carts/{user_id}")
def get_cart(user_id: str, db: Database = Depends(get_db)):
    return carts.get_cart(db, user_id)


@app.post("/carts/add")
def cart_add(data: AddToCartDTO, db: Database = Depends(get_db)):
    return carts.add_to_cart(db, data.user_id, data.product)


@app.patch("/carts/update/{user_id}")
def cart_update(user_id: str, data: CartLineUpdateDTO, db: Database = Depends(get_db)):
    return carts.update_line(db, user_id, data.product_id, data.selected_size, data.selected_color, data.quantity)


@app.delete("/carts/remove/{user_id}")
def cart_remove(user_id: str, data: CartLineKeyDTO, db: Database = Depends(get_db)):
    return carts.remove_line(db, user_id, data.product_id, data.selected_size, data.selected_color)


@app.delete("/carts/remove/{user_id}/{product_id}")
def cart_remove_product(user_id: str, product_id: int, db: Database = Depends(get_db)):
    return carts.remove_product(db, user_id, product_id)


# Orders
class OrderCreateDTO(BaseModel):
    user_id: Optional[Union[int, str]] = None
    items: List[Dict[str, Any]] = []
    total_amount: float = 0.0
    shipping_address: Optional[Dict[str, Any]] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    gateway_order_id: Optional[str] = None


class OrderStatusDTO(BaseModel):
    order_status: Optional[str] = None


class OrderUpdateDTO(BaseModel):
    items: Optional[List[Dict[str, Any]]] = None
    total_amount: Optional[float] = None
    shipping_address: Optional[Dict[str, Any]] = None
    payment_method: Optional[str] = None


class ReturnRequestDTO(BaseModel):
    reason: Optional[str] = None


class ReturnResolveDTO(BaseModel):
    action: Optional[str] = None


class PaymentCreateDTO(BaseModel):
    order_id: Optional[int] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    receipt: Optional[str] = None


class PaymentVerifyDTO(BaseModel):
    gateway_order_id: str
    payment_id: str
    signature: str


@app.post("/orders/add", status_code=201)
def create_order(data: OrderCreateDTO, db: Database = Depends(get_db)):
    return orders.create_order(db, data.user_id, data.items, data.total_amount, data.shipping_address,
                               data.payment_method, data.payment_status, data.gateway_order_id)


@app.get("/orders/")
def list_orders(db: Database = Depends(get_db)):
    return orders.list_orders(db)


@app.get("/orders/user/{user_id}")
def list_user_orders(user_id: str, db: Database = Depends(get_db)):
    return orders.list_orders(db, user_id)


@app.get("/orders/analytics/sales")
def sales(db: Database = Depends(get_db)):
    return orders.sales_summary(db)


@app.post("/orders/payment/create")
def create_payment(data: PaymentCreateDTO, db: Database = Depends(get_db)):
    currency = data.currency or PRIMARY_CURRENCY
    if data.order_id is None:
        return create_payment_order(data.amount, currency, data.receipt)

    order = orders.get_order(db, data.order_id)
    amount = data.amount if data.amount is not None else order["total_amount"]
    gateway_order = create_payment_order(amount, currency, data.receipt or f"order_{data.order_id}")
    orders.attach_gateway_order(db, data.order_id, gateway_order["id"])
    return gateway_order


@app.get("/orders/{order_id}")
def get_order(order_id: int, db: Database = Depends(get_db)):
    return orders.get_order(db, order_id)


@app.put("/orders/{order_id}/status")
def update_order_status(order_id: int, data: OrderStatusDTO, db: Database = Depends(get_db)):
    return orders.update_order_status(db, order_id, data.order_status)


@app.put("/orders/{order_id}")
def update_order(order_id: int, data: OrderUpdateDTO, db: Database = Depends(get_db)):
    return orders.update_order(db, order_id, data.model_dump())


@app.delete("/orders/{order_id}")
def delete_order(order_id: int, db: Database = Depends(get_db)):
    orders.delete_order(db, order_id)
    return {"message": "Order deleted successfully"}


@app.post("/orders/{order_id}/return")
def request_return(order_id: int, data: ReturnRequestDTO, db: Database = Depends(get_db)):
    return {"message": "Return requested", "data": orders.request_return(db, order_id, data.reason)}


@app.put("/orders/{order_id}/return")
def resolve_return(order_id: int, data: ReturnResolveDTO, db: Database = Depends(get_db)):
    return {"message": "Return updated", "data": orders.resolve_return(db, order_id, data.action)}


@app.post("/orders/{order_id}/payment/verify")
def verify_payment(order_id: int, data: PaymentVerifyDTO, db: Database = Depends(get_db)):
    order = orders.get_order(db, order_id)
    if not order.get("gateway_order_id") or order["gateway_order_id"] != data.gateway_order_id:
        logger.warning("Gateway order %s does not belong to order %s", data.gateway_order_id, order_id)
        raise ValidationError("Payment verification failed")
    if not verify_signature(data.gateway_order_id, data.payment_id, data.signature):
        logger.warning("Payment signature mismatch for order %s", order_id)
        raise ValidationError("Payment verification failed")
    order = orders.mark_paid(db, order_id, data.payment_id)
    return {"verified": True, "order": order}


# Coupons
class CouponApplyDTO(BaseModel):
    code: str
    subtotal: float
    product_id: Optional[int] = None
    category: Optional[str] = None


def _coupon_expired(coupon: Dict[str, Any]) -> bool:
    expiry = coupon.get("expiry_date")
    if not expiry:
        return False
    try:
        return date.fromisoformat(str(expiry)[:10]) < utcnow().date()
    except ValueError:
        return False


@app.post("/coupons/add", status_code=201)
def add_coupon(data: Coupon, db: Database = Depends(get_db)):
    if db["coupon"].find_one({"code": data.code}):
        raise ValidationError("Coupon code already exists")
    try:
        doc = create_numbered_document(db, "coupon", data)
    except DuplicateKeyError:
        raise ValidationError("Coupon code already exists")
    return {"message": "Coupon added", "coupon": to_public(doc)}


@app.get("/coupons/")
def list_coupons(db: Database = Depends(get_db)):
    return [to_public(c) for c in get_documents(db, "coupon", sort=[("created_at", -1), ("_id", -1)])]


@app.post("/coupons/apply")
def apply_coupon(data: CouponApplyDTO, db: Database = Depends(get_db)):
    coup = db["coupon"].find_one({"code": data.code})
    if not coup:
        raise NotFound("Invalid coupon")
    if _coupon_expired(coup):
        raise ValidationError("Coupon expired")
    if coup.get("applicable_products") and data.product_id not in coup["applicable_products"]:
        raise ValidationError("Coupon not applicable to this product")
    if coup.get("applicable_categories") and data.category not in coup["applicable_categories"]:
        raise ValidationError("Coupon not applicable to this category")
    if coup.get("discount_type") == "percent":
        discount = round(data.subtotal * float(coup.get("discount_value", 0)) / 100.0, 2)
    else:
        discount = min(float(coup.get("discount_value", 0)), data.subtotal)
    return {"code": coup["code"], "discount": discount}


@app.put("/coupons/{coupon_id}")
def update_coupon(coupon_id: int, data: Coupon, db: Database = Depends(get_db)):
    try:
        doc = db["coupon"].find_one_and_update(
            {"_id": coupon_id},
            {"$set": data.model_dump() | {"updated_at": utcnow()}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise ValidationError("Coupon code already exists")
    if doc is None:
        raise NotFound("Coupon not found")
    return {"message": "Coupon updated", "coupon": to_public(doc)}


@app.delete("/coupons/{coupon_id}")
def delete_coupon(coupon_id: int, db: Database = Depends(get_db)):
    result = db["coupon"].delete_one({"_id": coupon_id})
    if not result.deleted_count:
        raise NotFound("Coupon not found")
    return {"message": "Coupon deleted"}


# Cash on delivery settings
class CodDTO(BaseModel):
    cod_charge: Optional[float] = None


def _cod_charge(data: CodDTO) -> CodSetting:
    if data.cod_charge is None:
        raise ValidationError("cod_charge required")
    return build(CodSetting, cod_charge=data.cod_charge)


@app.get("/cod/")
def list_cod_settings(db: Database = Depends(get_db)):
    return [to_public(s) for s in get_documents(db, "settings", sort=[("_id", 1)])]


@app.get("/cod/{setting_id}")
def get_cod_setting(setting_id: int, db: Database = Depends(get_db)):
    s = db["settings"].find_one({"_id": setting_id})
    if not s:
        raise NotFound("Setting not found")
    return to_public(s)


@app.post("/cod/", status_code=201)
def create_cod_setting(data: CodDTO, db: Database = Depends(get_db)):
    doc = create_numbered_document(db, "settings", _cod_charge(data))
    return {"message": "Setting created", "setting": to_public(doc)}


@app.put("/cod/{setting_id}")
def update_cod_setting(setting_id: int, data: CodDTO, db: Database = Depends(get_db)):
    setting = _cod_charge(data)
    doc = db["settings"].find_one_and_update(
        {"_id": setting_id},
        {"$set": setting.model_dump() | {"updated_at": utcnow()}, "$inc": {"version": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Setting not found")
    return {"message": "Setting updated", "setting": to_public(doc)}


@app.delete("/cod/{setting_id}")
def delete_cod_setting(setting_id: int, db: Database = Depends(get_db)):
    doc = db["settings"].find_one_and_delete({"_id": setting_id})
    if doc is None:
        raise NotFound("Setting not found")
    return {"message": "Setting deleted", "setting": to_public(doc)}


# Contact
class ContactDTO(BaseModel):
    full_name: str
    email: EmailStr
    message: str


class MessageStatusDTO(BaseModel):
    status: Optional[str] = None


@app.post("/contact", status_code=201)
def submit_contact(data: ContactDTO, db: Database = Depends(get_db)):
    doc = create_numbered_document(db, "contact_message", ContactMessage(**data.model_dump()))
    return {"message": "Message saved", "data": to_public(doc)}


@app.get("/contact/messages")
def list_messages(db: Database = Depends(get_db)):
    docs = get_documents(db, "contact_message", sort=[("created_at", -1), ("_id", -1)])
    return [to_public(m) for m in docs]


@app.put("/contact/messages/{message_id}/status")
def update_message_status(message_id: int, data: MessageStatusDTO, db: Database = Depends(get_db)):
    if not data.status:
        raise ValidationError("status is required")
    doc = db["contact_message"].find_one_and_update(
        {"_id": message_id},
        {"$set": {"status": data.status, "updated_at": utcnow()}, "$inc": {"version": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Message not found")
    return {"message": "Status updated", "data": to_public(doc)}


if __name__ == "__main__":
    import os
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
