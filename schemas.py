"""
Database Schemas for the GIFT CHOICE storefront

Each model mirrors one table (or a joined view of it) as it travels over the
wire. JSON keys are camelCase; snake_case is accepted on input as well.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PLACEHOLDER_IMAGE = "/placeholder.svg"

OrderStatus = Literal["pending", "confirmed", "delivered", "cancelled"]
Platform = Literal["instagram", "youtube", "facebook", "tiktok"]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductSize(ApiModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)


class Subcategory(ApiModel):
    name: str
    slug: Optional[str] = None


class Product(ApiModel):
    id: str
    name: str
    description: str = ""
    price: float
    images: List[str] = [PLACEHOLDER_IMAGE]
    category: str = Field("", description="Category name, resolved from the category join")
    category_id: Optional[str] = None
    category_slug: Optional[str] = None
    subcategory: Optional[str] = None
    sizes: Optional[List[ProductSize]] = None
    badge: Optional[str] = None
    in_stock: bool = True
    is_featured: bool = False
    is_new_arrival: bool = False
    is_festival: bool = False
    created_at: datetime

    @property
    def from_price(self) -> float:
        """Price shown on cards: the first size when sizes exist."""
        if self.sizes:
            return self.sizes[0].price
        return self.price

    @property
    def min_price(self) -> float:
        if self.sizes:
            return min(s.price for s in self.sizes)
        return self.price

    def find_size(self, name: str) -> Optional[ProductSize]:
        for size in self.sizes or []:
            if size.name == name:
                return size
        return None


class Category(ApiModel):
    id: str
    name: str
    slug: str
    image: str = ""
    subcategories: Optional[List[Subcategory]] = None


class Review(ApiModel):
    id: str
    product_id: str
    customer_name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    created_at: datetime


class ReviewSummary(ApiModel):
    reviews: List[Review]
    average_rating: float
    count: int


class CartLine(ApiModel):
    id: str
    product: Product
    quantity: int
    selected_size: Optional[ProductSize] = None
    unit_price: float = Field(..., description="Price snapshot taken when the line was added")
    line_total: float


class Cart(ApiModel):
    items: List[CartLine]
    total_items: int
    total_price: float


class OrderLine(ApiModel):
    id: str
    product_id: str
    product_name: str
    quantity: int
    price: float
    selected_size_name: Optional[str] = None
    line_total: float


class Order(ApiModel):
    id: str
    items: List[OrderLine]
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    total: float
    status: OrderStatus = "pending"
    created_at: datetime


class ContactMessage(ApiModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    message: str
    is_read: bool = False
    created_at: datetime


class PromotionalBanner(ApiModel):
    id: str
    image: str = ""
    title: str = ""
    link: Optional[str] = None
    is_active: bool = True
    order: int = 0
    created_at: datetime


class SocialMediaPost(ApiModel):
    id: str
    thumbnail: str = ""
    title: str = ""
    link: Optional[str] = None
    video_link: Optional[str] = None
    platform: Optional[Platform] = None
    is_active: bool = True
    order: int = 0
    created_at: datetime
