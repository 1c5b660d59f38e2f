"""
Elan Store Database Schemas

Each Pydantic model below represents one MongoDB collection (or a document embedded in one).
The collection name is the lowercase class name, e.g. class Product -> collection "product".

These schemas are used for validation before inserting/updating documents.
"""
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, EmailStr


class VariantStock(BaseModel):
    size: str = ""
    color: str = ""
    price: float = 0.0
    stock: int = Field(0, ge=0)


class CartLine(BaseModel):
    product_id: int
    selected_size: str = ""
    selected_color: str = ""
    quantity: int = Field(1, ge=1)
    price_at_addition: float = 0.0
    product_name: str = ""
    product_images: List[str] = []

    def key(self):
        return self.product_id, self.selected_size, self.selected_color


class Cart(BaseModel):
    user_id: str
    items: List[CartLine] = []


class OrderItem(CartLine):
    return_status: Optional[str] = Field(None, description="None | Requested | Approved | Rejected")


class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0)
    order_status: str = Field("Pending", description="Pending | Shipped | Delivered | Cancelled")
    payment_method: str = Field("cod", description="cod | online")
    payment_status: str = Field("pending", description="pending | paid | failed")
    payment_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    shipping_address: Dict[str, Any] = {}
    return_reason: Optional[str] = None


class Review(BaseModel):
    name: str
    rating: float = Field(..., ge=0, le=5)
    comment: str


class Product(BaseModel):
    name: str
    category: Optional[str] = None
    subcategory: Optional[str] = None
    price: float = 0.0
    stock: int = Field(0, ge=0)
    images: List[str] = []
    variants: List[VariantStock] = []
    is_new: bool = False
    is_bestseller: bool = False
    is_featured: bool = False


class Bestseller(BaseModel):
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    main_image: Optional[str] = None
    thumbnails: List[str] = []
    variants: List[VariantStock] = []
    reviews: List[Dict[str, Any]] = []


class Coupon(BaseModel):
    code: str
    discount_type: str = Field("percent", description="percent|flat")
    discount_value: float = Field(..., ge=0)
    applicable_products: List[int] = []
    applicable_categories: List[str] = []
    expiry_date: Optional[str] = None  # ISO date string


class CodSetting(BaseModel):
    cod_charge: float = Field(..., ge=0)


class ContactMessage(BaseModel):
    full_name: str
    email: EmailStr
    message: str
    status: str = Field("new", description="new | read | replied")


class User(BaseModel):
    full_name: str
    email: EmailStr
    phone_number: Optional[str] = None
    password_hash: str
