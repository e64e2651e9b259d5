import logging
import re
import traceback
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import EmailStr, Field

from chatbot import Catalog, ChatRequest, ChatTurn, step
from checkout import cart_summary, order_summary, whatsapp_link
from database import (
    TABLES,
    DatabaseError,
    as_datetime,
    create_document,
    delete_document,
    dialect_name,
    execute,
    get_document,
    get_documents,
    init_db,
    list_tables,
    loads_json,
    new_id,
    query,
    transaction,
    update_document,
    utcnow,
)
from schemas import (
    PLACEHOLDER_IMAGE,
    ApiModel,
    Cart,
    CartLine,
    Category,
    ContactMessage,
    Order,
    OrderLine,
    OrderStatus,
    Platform,
    Product,
    ProductSize,
    PromotionalBanner,
    Review,
    ReviewSummary,
    SocialMediaPost,
    Subcategory,
)
from search import get_suggestions, search_products
from seed import seed_catalog_if_empty
from settings import settings

logger = logging.getLogger("uvicorn")

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------------
# Errors
# -----------------------------

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", [])[1:])
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"detail": f"{field}: {message}" if field else message, "errors": errors},
    )


@app.exception_handler(DatabaseError)
async def database_exception_handler(request: Request, exc: DatabaseError):
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    body = {"detail": "Database error", "error": exc.message, "details": exc.detail}
    if not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=body)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} crashed: {exc!r}", exc_info=exc)
    body = {"detail": "Internal server error", "error": str(exc) or type(exc).__name__}
    if not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=body)


@app.on_event("startup")
def on_startup():
    init_db()
    if settings.seed_catalog:
        seed_catalog_if_empty()


# -----------------------------
# Helpers
# -----------------------------

PRODUCT_SELECT = """
    SELECT p.*, c.name AS category_name, c.slug AS category_slug
    FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
"""


def slugify(value: str) -> str:
    slug = re.sub(r"\s+", "-", value.strip().lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def escape_like(value: str) -> str:
    # '!' is the ESCAPE character in every LIKE built here
    return value.replace("!", "!!").replace("%", "!%").replace("_", "!_")


def product_from_row(row: Dict[str, Any]) -> Product:
    sizes = loads_json(row.get("sizes"))
    return Product(
        id=row["id"],
        name=row["name"],
        description=row.get("description") or "",
        price=float(row["price"]),
        images=loads_json(row.get("images"), []) or [PLACEHOLDER_IMAGE],
        category=row.get("category_name") or "",
        category_id=row.get("category_id"),
        category_slug=row.get("category_slug"),
        subcategory=row.get("subcategory"),
        sizes=[ProductSize(**s) for s in sizes] if sizes else None,
        badge=row.get("badge"),
        in_stock=bool(row.get("in_stock")),
        is_featured=bool(row.get("is_featured")),
        is_new_arrival=bool(row.get("is_new_arrival")),
        is_festival=bool(row.get("is_festival")),
        created_at=as_datetime(row["created_at"]),
    )


def category_from_row(row: Dict[str, Any]) -> Category:
    subs = loads_json(row.get("subcategories"))
    return Category(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        image=row.get("image") or "",
        subcategories=[Subcategory(**s) for s in subs] if subs is not None else None,
    )


def fetch_products(filters: Optional[Dict[str, Any]] = None, search: Optional[str] = None) -> List[Product]:
    sql = PRODUCT_SELECT + " WHERE 1=1"
    params: Dict[str, Any] = {}
    for key, value in (filters or {}).items():
        if value is None:
            continue
        if key == "category":
            sql += " AND (c.slug = :category OR c.name = :category OR p.category_id = :category)"
        else:
            sql += f" AND p.{key} = :{key}"
        params[key] = value
    if search:
        sql += " AND (p.name LIKE :search ESCAPE '!' OR p.description LIKE :search ESCAPE '!')"
        params["search"] = f"%{escape_like(search)}%"
    sql += " ORDER BY p.created_at DESC"
    return [product_from_row(r) for r in query(sql, params)]


def load_product(product_id: str, conn=None) -> Optional[Product]:
    rows = query(PRODUCT_SELECT + " WHERE p.id = :id", {"id": product_id}, conn=conn)
    return product_from_row(rows[0]) if rows else None


def fetch_categories() -> List[Category]:
    return [category_from_row(r) for r in get_documents("categories", order_by="name ASC")]


def resolve_category_id(category_id: Optional[str], category: Optional[str], strict: bool = False) -> Optional[str]:
    """Category id from an explicit id (must exist) or a slug/name lookup.

    With `strict`, a name that matches nothing is rejected instead of
    resolving to no category.
    """
    if category_id:
        if not get_document("categories", category_id):
            raise HTTPException(status_code=400, detail="Unknown category")
        return category_id
    if category:
        rows = query(
            "SELECT id FROM categories WHERE slug = :value OR LOWER(name) = LOWER(:value)",
            {"value": category},
        )
        if rows:
            return rows[0]["id"]
        if strict:
            raise HTTPException(status_code=400, detail="Unknown category")
    return None


# -----------------------------
# Schemas (request bodies)
# -----------------------------

class SizeChoice(ApiModel):
    name: str
    price: Optional[float] = None


class ProductCreate(ApiModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: float = Field(..., ge=0)
    images: List[str] = []
    category: Optional[str] = None
    category_id: Optional[str] = None
    subcategory: Optional[str] = None
    sizes: Optional[List[ProductSize]] = None
    badge: Optional[str] = None
    in_stock: bool = True
    is_featured: bool = False
    is_new_arrival: bool = False
    is_festival: bool = False


class ProductUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    images: Optional[List[str]] = None
    category: Optional[str] = None
    category_id: Optional[str] = None
    subcategory: Optional[str] = None
    sizes: Optional[List[ProductSize]] = None
    badge: Optional[str] = None
    in_stock: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_new_arrival: Optional[bool] = None
    is_festival: Optional[bool] = None


class CategoryCreate(ApiModel):
    name: str = Field(..., min_length=1)
    slug: Optional[str] = None
    image: str = ""
    subcategories: Optional[List[Subcategory]] = None


class CategoryUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1)
    slug: Optional[str] = None
    image: Optional[str] = None
    subcategories: Optional[List[Subcategory]] = None


class ReviewCreate(ApiModel):
    customer_name: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


class CartAdd(ApiModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)
    selected_size: Optional[SizeChoice] = None


class CartUpdate(ApiModel):
    item_id: str
    quantity: int


class OrderItemIn(ApiModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    selected_size: Optional[SizeChoice] = None


class OrderCreate(ApiModel):
    customer_name: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    customer_email: Optional[EmailStr] = None
    items: List[OrderItemIn] = Field(..., min_length=1)
    total: Optional[float] = None


class OrderUpdate(ApiModel):
    status: Optional[OrderStatus] = None
    total: Optional[float] = Field(default=None, ge=0)


class CheckoutRequest(ApiModel):
    customer_name: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    customer_email: Optional[EmailStr] = None


class MessageCreate(ApiModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    message: str = Field(..., min_length=1)


class MessageUpdate(ApiModel):
    is_read: Optional[bool] = None


class BannerCreate(ApiModel):
    image: str = ""
    title: str = ""
    link: Optional[str] = None
    is_active: bool = True
    order: int = 0


class BannerUpdate(ApiModel):
    image: Optional[str] = None
    title: Optional[str] = None
    link: Optional[str] = None
    is_active: Optional[bool] = None
    order: Optional[int] = None


class SocialPostCreate(ApiModel):
    thumbnail: str = ""
    title: str = ""
    link: Optional[str] = None
    video_link: Optional[str] = None
    platform: Optional[Platform] = None
    is_active: bool = True
    order: int = 0


class SocialPostUpdate(ApiModel):
    thumbnail: Optional[str] = None
    title: Optional[str] = None
    link: Optional[str] = None
    video_link: Optional[str] = None
    platform: Optional[Platform] = None
    is_active: Optional[bool] = None
    order: Optional[int] = None


# -----------------------------
# Health & Test
# -----------------------------

@app.get("/")
def read_root():
    return {"message": "GIFT CHOICE API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if (settings.database_url or settings.mysql_host) else "⚠️ Using local SQLite",
        "dialect": None,
        "tables": [],
    }
    try:
        response["dialect"] = dialect_name()
        response["tables"] = list_tables()
        response["database"] = "✅ Connected"
    except DatabaseError as e:
        response["database"] = f"❌ Error: {str(e.detail or e.message)[:80]}"
    return response


@app.get("/api/init-db")
def initialize_database():
    before = set(list_tables())
    init_db()
    after = set(list_tables())
    return {
        "success": True,
        "created": [t for t in TABLES if t in after and t not in before],
        "missing": [t for t in TABLES if t not in after],
        "tables": sorted(after),
    }


# -----------------------------
# Products
# -----------------------------

@app.get("/api/products")
def list_products(
    category: Optional[str] = Query(default=None),
    category_id: Optional[str] = Query(default=None, alias="categoryId"),
    featured: Optional[bool] = Query(default=None),
    new_arrival: Optional[bool] = Query(default=None, alias="newArrival"),
    festival: Optional[bool] = Query(default=None),
    in_stock: Optional[bool] = Query(default=None, alias="inStock"),
    search: Optional[str] = Query(default=None),
):
    filters = {
        "category": category,
        "category_id": category_id,
        "is_featured": featured,
        "is_new_arrival": new_arrival,
        "is_festival": festival,
        "in_stock": in_stock,
    }
    return {"items": fetch_products(filters, search)}


@app.get("/api/products/{product_id}", response_model=Product)
def get_product(product_id: str):
    product = load_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.post("/api/products", response_model=Product, status_code=201)
def create_product(payload: ProductCreate):
    data = payload.model_dump(exclude={"category", "category_id"})
    data["category_id"] = resolve_category_id(payload.category_id, payload.category)
    pid = create_document("products", data)
    return load_product(pid)


@app.put("/api/products/{product_id}", response_model=Product)
def update_product(product_id: str, payload: ProductUpdate):
    changes = payload.model_dump(exclude_unset=True)
    # NOT NULL columns keep their value when sent as null
    for column in ("name", "price", "in_stock", "is_featured", "is_new_arrival", "is_festival"):
        if column in changes and changes[column] is None:
            del changes[column]
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    if "category_id" in changes or "category" in changes:
        category_id = changes.pop("category_id", None)
        category = changes.pop("category", None)
        changes["category_id"] = resolve_category_id(category_id, category, strict=True)
    changes["updated_at"] = utcnow()
    if update_document("products", product_id, changes) == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return load_product(product_id)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str):
    if delete_document("products", product_id) == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"ok": True}


@app.get("/api/products/{product_id}/reviews", response_model=ReviewSummary)
def list_reviews(product_id: str):
    if not get_document("products", product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    rows = query(
        "SELECT * FROM product_reviews WHERE product_id = :pid ORDER BY created_at DESC",
        {"pid": product_id},
    )
    reviews = [Review(**{**r, "comment": r.get("comment") or "", "created_at": as_datetime(r["created_at"])}) for r in rows]
    average = round(sum(r.rating for r in reviews) / len(reviews), 1) if reviews else 0.0
    return ReviewSummary(reviews=reviews, average_rating=average, count=len(reviews))


@app.post("/api/products/{product_id}/reviews", response_model=Review, status_code=201)
def create_review(product_id: str, payload: ReviewCreate):
    if not get_document("products", product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    data = payload.model_dump()
    data["product_id"] = product_id
    rid = create_document("product_reviews", data)
    row = get_document("product_reviews", rid)
    return Review(**{**row, "created_at": as_datetime(row["created_at"])})


# -----------------------------
# Categories
# -----------------------------

def _with_sub_slugs(subcategories: Optional[List[Subcategory]]) -> Optional[List[Dict[str, str]]]:
    if subcategories is None:
        return None
    return [{"name": s.name, "slug": s.slug or slugify(s.name)} for s in subcategories]


def _ensure_unique_slug(slug: str, exclude_id: Optional[str] = None) -> None:
    rows = query("SELECT id FROM categories WHERE slug = :slug", {"slug": slug})
    if any(r["id"] != exclude_id for r in rows):
        raise HTTPException(status_code=409, detail=f"Category slug '{slug}' already exists")


@app.get("/api/categories")
def list_categories():
    return {"items": fetch_categories()}


@app.get("/api/categories/{category_id}", response_model=Category)
def get_category(category_id: str):
    row = get_document("categories", category_id)
    if not row:
        raise HTTPException(status_code=404, detail="Category not found")
    return category_from_row(row)


@app.post("/api/categories", response_model=Category, status_code=201)
def create_category(payload: CategoryCreate):
    slug = slugify(payload.slug or payload.name)
    if not slug:
        raise HTTPException(status_code=400, detail="Category name must contain letters or digits")
    _ensure_unique_slug(slug)
    cid = create_document(
        "categories",
        {
            "name": payload.name,
            "slug": slug,
            "image": payload.image,
            "subcategories": _with_sub_slugs(payload.subcategories) or [],
        },
    )
    return category_from_row(get_document("categories", cid))


@app.put("/api/categories/{category_id}", response_model=Category)
def update_category(category_id: str, payload: CategoryUpdate):
    changes = payload.model_dump(exclude_unset=True)
    for required in ("name", "slug"):
        if changes.get(required) is None:
            changes.pop(required, None)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    if not get_document("categories", category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    if "slug" in changes:
        changes["slug"] = slugify(changes["slug"])
        if not changes["slug"]:
            raise HTTPException(status_code=400, detail="Slug must contain letters or digits")
        _ensure_unique_slug(changes["slug"], exclude_id=category_id)
    if "subcategories" in changes:
        changes["subcategories"] = _with_sub_slugs(payload.subcategories)
    changes["updated_at"] = utcnow()
    update_document("categories", category_id, changes)
    return category_from_row(get_document("categories", category_id))


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str):
    if delete_document("categories", category_id) == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"ok": True}


# -----------------------------
# Cart
# -----------------------------

def cart_session(request: Request, response: Response) -> str:
    """Session token for the caller, minting one (and its cookie) when needed."""
    token = request.cookies.get(settings.session_cookie_name)
    # expires_at is recorded but not enforced
    if token and get_document("sessions", token):
        return token

    token = new_id()
    create_document(
        "sessions",
        {"id": token, "expires_at": utcnow() + timedelta(days=settings.session_max_age_days)},
    )
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_max_age_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )
    logger.debug(f"Minted cart session {token}")
    return token


def load_cart(session_id: str, conn=None) -> Cart:
    rows = query(
        "SELECT * FROM cart_items WHERE session_id = :sid ORDER BY created_at ASC, id ASC",
        {"sid": session_id},
        conn=conn,
    )
    lines: List[CartLine] = []
    for row in rows:
        product = load_product(row["product_id"], conn=conn)
        if product is None:
            continue
        unit_price = float(row["unit_price"])
        size_name = row.get("selected_size_name") or None
        lines.append(
            CartLine(
                id=row["id"],
                product=product,
                quantity=row["quantity"],
                selected_size=ProductSize(name=size_name, price=unit_price) if size_name else None,
                unit_price=unit_price,
                line_total=round(unit_price * row["quantity"], 2),
            )
        )
    return Cart(
        items=lines,
        total_items=sum(line.quantity for line in lines),
        total_price=round(sum(line.line_total for line in lines), 2),
    )


def _upsert_cart_line(session_id: str, product_id: str, quantity: int, size_name: str, unit_price: float) -> None:
    if dialect_name() == "mysql":
        conflict = (
            "ON DUPLICATE KEY UPDATE quantity = quantity + VALUES(quantity), "
            "updated_at = VALUES(updated_at)"
        )
    else:
        conflict = (
            "ON CONFLICT (session_id, product_id, selected_size_name) DO UPDATE SET "
            "quantity = cart_items.quantity + excluded.quantity, updated_at = excluded.updated_at"
        )
    now = utcnow()
    execute(
        "INSERT INTO cart_items (id, session_id, product_id, quantity, selected_size_name, unit_price, created_at, updated_at) "
        "VALUES (:id, :sid, :pid, :quantity, :size, :price, :now, :now) " + conflict,
        {
            "id": new_id(),
            "sid": session_id,
            "pid": product_id,
            "quantity": quantity,
            "size": size_name,
            "price": unit_price,
            "now": now,
        },
    )


@app.get("/api/cart", response_model=Cart)
def get_cart(session_id: str = Depends(cart_session)):
    return load_cart(session_id)


@app.post("/api/cart", response_model=Cart)
def add_to_cart(item: CartAdd, session_id: str = Depends(cart_session)):
    product = load_product(item.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    size_name = ""
    unit_price = product.price
    if item.selected_size:
        size = product.find_size(item.selected_size.name)
        if size is None:
            raise HTTPException(status_code=400, detail=f"Unknown size '{item.selected_size.name}' for this product")
        size_name, unit_price = size.name, size.price
    _upsert_cart_line(session_id, product.id, item.quantity, size_name, unit_price)
    return load_cart(session_id)


@app.put("/api/cart", response_model=Cart)
def update_cart(item: CartUpdate, session_id: str = Depends(cart_session)):
    params = {"id": item.item_id, "sid": session_id}
    if item.quantity <= 0:
        affected = execute("DELETE FROM cart_items WHERE id = :id AND session_id = :sid", params)
    else:
        affected = execute(
            "UPDATE cart_items SET quantity = :quantity, updated_at = :now WHERE id = :id AND session_id = :sid",
            {**params, "quantity": item.quantity, "now": utcnow()},
        )
    if affected == 0:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return load_cart(session_id)


@app.delete("/api/cart")
def remove_from_cart(
    item_id: Optional[str] = Query(default=None, alias="itemId"),
    clear_all: bool = Query(default=False, alias="clearAll"),
    session_id: str = Depends(cart_session),
):
    if clear_all:
        cleared = execute("DELETE FROM cart_items WHERE session_id = :sid", {"sid": session_id})
        return {"cleared": cleared}
    if not item_id:
        raise HTTPException(status_code=400, detail="Provide itemId or clearAll=true")
    removed = execute(
        "DELETE FROM cart_items WHERE id = :id AND session_id = :sid",
        {"id": item_id, "sid": session_id},
    )
    return {"removed": removed > 0}


@app.get("/api/cart/whatsapp")
def cart_whatsapp(session_id: str = Depends(cart_session)):
    cart = load_cart(session_id)
    if not cart.items:
        raise HTTPException(status_code=400, detail="Cart is empty")
    message = cart_summary(cart.items, cart.total_price)
    return {"message": message, "url": whatsapp_link(settings.whatsapp_number, message)}


@app.post("/api/cart/checkout", status_code=201)
def checkout_cart(payload: CheckoutRequest, session_id: str = Depends(cart_session)):
    def place(conn) -> Optional[Order]:
        cart = load_cart(session_id, conn=conn)
        if not cart.items:
            return None
        lines = [
            {
                "product_id": line.product.id,
                "product_name": line.product.name,
                "quantity": line.quantity,
                "price": line.unit_price,
                "selected_size_name": line.selected_size.name if line.selected_size else None,
            }
            for line in cart.items
        ]
        customer = payload.model_dump()
        order_id = _insert_order(conn, customer, lines, cart.total_price, session_id=session_id)
        execute("DELETE FROM cart_items WHERE session_id = :sid", {"sid": session_id}, conn=conn)
        return load_order(order_id, conn=conn)

    order = transaction(place)
    if order is None:
        raise HTTPException(status_code=400, detail="Cart is empty")
    logger.info(f"Order {order.id} placed from cart ({len(order.items)} lines, ₹{order.total})")
    message = order_summary(order.items, order.total, order.id)
    return {
        "order": order,
        "message": message,
        "whatsappUrl": whatsapp_link(settings.whatsapp_number, message),
    }


# -----------------------------
# Orders
# -----------------------------

def _order_from_rows(row: Dict[str, Any], line_rows: List[Dict[str, Any]]) -> Order:
    items = [
        OrderLine(
            id=l["id"],
            product_id=l["product_id"],
            product_name=l["product_name"],
            quantity=l["quantity"],
            price=float(l["price"]),
            selected_size_name=l.get("selected_size_name") or None,
            line_total=round(float(l["price"]) * l["quantity"], 2),
        )
        for l in line_rows
    ]
    return Order(
        id=row["id"],
        items=items,
        customer_name=row["customer_name"],
        customer_phone=row["customer_phone"],
        customer_email=row.get("customer_email"),
        total=float(row["total"]),
        status=row["status"],
        created_at=as_datetime(row["created_at"]),
    )


def load_order(order_id: str, conn=None) -> Optional[Order]:
    row = get_document("orders", order_id, conn=conn)
    if not row:
        return None
    lines = query(
        "SELECT * FROM order_items WHERE order_id = :oid ORDER BY position ASC",
        {"oid": order_id},
        conn=conn,
    )
    return _order_from_rows(row, lines)


def _insert_order(conn, customer: Dict[str, Any], lines: List[Dict[str, Any]], total: float,
                  session_id: Optional[str] = None) -> str:
    order_id = create_document(
        "orders",
        {
            "session_id": session_id,
            "customer_name": customer["customer_name"],
            "customer_phone": customer["customer_phone"],
            "customer_email": customer.get("customer_email"),
            "total": total,
            "status": "pending",
        },
        conn=conn,
    )
    for position, line in enumerate(lines):
        create_document("order_items", {**line, "order_id": order_id, "position": position}, conn=conn)
    return order_id


@app.get("/api/orders")
def list_orders(
    status: Optional[OrderStatus] = Query(default=None),
    phone: Optional[str] = Query(default=None),
):
    where = " WHERE 1=1"
    params: Dict[str, Any] = {}
    if status:
        where += " AND status = :status"
        params["status"] = status
    if phone:
        where += " AND customer_phone = :phone"
        params["phone"] = phone

    orders = query("SELECT * FROM orders" + where + " ORDER BY created_at DESC", params)
    line_rows = query(
        "SELECT * FROM order_items WHERE order_id IN (SELECT id FROM orders" + where + ") "
        "ORDER BY position ASC",
        params,
    )
    by_order: Dict[str, List[Dict[str, Any]]] = {}
    for line in line_rows:
        by_order.setdefault(line["order_id"], []).append(line)
    return {"items": [_order_from_rows(o, by_order.get(o["id"], [])) for o in orders]}


@app.get("/api/orders/{order_id}", response_model=Order)
def get_order(order_id: str):
    order = load_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.post("/api/orders", response_model=Order, status_code=201)
def create_order(payload: OrderCreate):
    lines: List[Dict[str, Any]] = []
    for item in payload.items:
        product = load_product(item.product_id)
        if not product:
            raise HTTPException(status_code=400, detail=f"Unknown product '{item.product_id}'")
        price, size_name = product.price, None
        if item.selected_size:
            size = product.find_size(item.selected_size.name)
            if size is None:
                raise HTTPException(status_code=400, detail=f"Unknown size '{item.selected_size.name}' for {product.name}")
            price, size_name = size.price, size.name
        lines.append(
            {
                "product_id": product.id,
                "product_name": product.name,
                "quantity": item.quantity,
                "price": price,
                "selected_size_name": size_name,
            }
        )

    total = round(sum(l["price"] * l["quantity"] for l in lines), 2)
    if payload.total is not None and abs(payload.total - total) > 0.01:
        raise HTTPException(status_code=400, detail=f"Order total mismatch: expected {total}")

    customer = payload.model_dump(exclude={"items", "total"})
    order_id = transaction(lambda conn: _insert_order(conn, customer, lines, total))
    logger.info(f"Order {order_id} created ({len(lines)} lines, ₹{total})")
    return load_order(order_id)


@app.put("/api/orders/{order_id}", response_model=Order)
def update_order(order_id: str, payload: OrderUpdate):
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    changes["updated_at"] = utcnow()
    if update_document("orders", order_id, changes) == 0:
        raise HTTPException(status_code=404, detail="Order not found")
    if "status" in changes:
        logger.info(f"Order {order_id} status set to {changes['status']}")
    return load_order(order_id)


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str):
    def remove(conn) -> int:
        execute("DELETE FROM order_items WHERE order_id = :oid", {"oid": order_id}, conn=conn)
        return delete_document("orders", order_id, conn=conn)

    if transaction(remove) == 0:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"ok": True}


# -----------------------------
# Contact messages
# -----------------------------

def message_from_row(row: Dict[str, Any]) -> ContactMessage:
    return ContactMessage(**{**row, "is_read": bool(row["is_read"]), "created_at": as_datetime(row["created_at"])})


@app.get("/api/messages")
def list_messages(is_read: Optional[bool] = Query(default=None, alias="isRead")):
    filt = {} if is_read is None else {"is_read": is_read}
    return {"items": [message_from_row(r) for r in get_documents("contact_messages", filt)]}


@app.get("/api/messages/{message_id}", response_model=ContactMessage)
def get_message(message_id: str):
    row = get_document("contact_messages", message_id)
    if not row:
        raise HTTPException(status_code=404, detail="Message not found")
    return message_from_row(row)


@app.post("/api/messages", response_model=ContactMessage, status_code=201)
def create_message(payload: MessageCreate):
    mid = create_document("contact_messages", {**payload.model_dump(), "is_read": False})
    return message_from_row(get_document("contact_messages", mid))


@app.put("/api/messages/{message_id}", response_model=ContactMessage)
def update_message(message_id: str, payload: MessageUpdate):
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    if update_document("contact_messages", message_id, changes) == 0:
        raise HTTPException(status_code=404, detail="Message not found")
    return message_from_row(get_document("contact_messages", message_id))


@app.delete("/api/messages/{message_id}")
def delete_message(message_id: str):
    if delete_document("contact_messages", message_id) == 0:
        raise HTTPException(status_code=404, detail="Message not found")
    return {"ok": True}


# -----------------------------
# Banners & social posts
# -----------------------------

DISPLAY_ORDER = "display_order ASC, created_at DESC"


def _display_row(data: Dict[str, Any]) -> Dict[str, Any]:
    row = {k: v for k, v in data.items() if v is not None or k not in ("is_active", "order")}
    if "order" in row:
        row["display_order"] = row.pop("order")
    return row


def _display_fields(row: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(row)
    data["order"] = data.pop("display_order")
    data["is_active"] = bool(data["is_active"])
    data["created_at"] = as_datetime(data["created_at"])
    data.pop("updated_at", None)
    return data


def banner_from_row(row: Dict[str, Any]) -> PromotionalBanner:
    data = _display_fields(row)
    data["image"] = data.get("image") or ""
    data["title"] = data.get("title") or ""
    return PromotionalBanner(**data)


def social_post_from_row(row: Dict[str, Any]) -> SocialMediaPost:
    data = _display_fields(row)
    data["thumbnail"] = data.get("thumbnail") or ""
    data["title"] = data.get("title") or ""
    return SocialMediaPost(**data)


@app.get("/api/banners")
def list_banners(active: Optional[bool] = Query(default=None)):
    filt = {} if active is None else {"is_active": active}
    rows = get_documents("promotional_banners", filt, order_by=DISPLAY_ORDER)
    return {"items": [banner_from_row(r) for r in rows]}


@app.get("/api/banners/{banner_id}", response_model=PromotionalBanner)
def get_banner(banner_id: str):
    row = get_document("promotional_banners", banner_id)
    if not row:
        raise HTTPException(status_code=404, detail="Banner not found")
    return banner_from_row(row)


@app.post("/api/banners", response_model=PromotionalBanner, status_code=201)
def create_banner(payload: BannerCreate):
    bid = create_document("promotional_banners", _display_row(payload.model_dump()))
    return banner_from_row(get_document("promotional_banners", bid))


@app.put("/api/banners/{banner_id}", response_model=PromotionalBanner)
def update_banner(banner_id: str, payload: BannerUpdate):
    changes = _display_row(payload.model_dump(exclude_unset=True))
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    changes["updated_at"] = utcnow()
    if update_document("promotional_banners", banner_id, changes) == 0:
        raise HTTPException(status_code=404, detail="Banner not found")
    return banner_from_row(get_document("promotional_banners", banner_id))


@app.delete("/api/banners/{banner_id}")
def delete_banner(banner_id: str):
    if delete_document("promotional_banners", banner_id) == 0:
        raise HTTPException(status_code=404, detail="Banner not found")
    return {"ok": True}


@app.get("/api/social-media")
def list_social_posts(active: Optional[bool] = Query(default=None)):
    filt = {} if active is None else {"is_active": active}
    rows = get_documents("social_media_posts", filt, order_by=DISPLAY_ORDER)
    return {"items": [social_post_from_row(r) for r in rows]}


@app.get("/api/social-media/{post_id}", response_model=SocialMediaPost)
def get_social_post(post_id: str):
    row = get_document("social_media_posts", post_id)
    if not row:
        raise HTTPException(status_code=404, detail="Social media post not found")
    return social_post_from_row(row)


@app.post("/api/social-media", response_model=SocialMediaPost, status_code=201)
def create_social_post(payload: SocialPostCreate):
    pid = create_document("social_media_posts", _display_row(payload.model_dump()))
    return social_post_from_row(get_document("social_media_posts", pid))


@app.put("/api/social-media/{post_id}", response_model=SocialMediaPost)
def update_social_post(post_id: str, payload: SocialPostUpdate):
    changes = _display_row(payload.model_dump(exclude_unset=True))
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    changes["updated_at"] = utcnow()
    if update_document("social_media_posts", post_id, changes) == 0:
        raise HTTPException(status_code=404, detail="Social media post not found")
    return social_post_from_row(get_document("social_media_posts", post_id))


@app.delete("/api/social-media/{post_id}")
def delete_social_post(post_id: str):
    if delete_document("social_media_posts", post_id) == 0:
        raise HTTPException(status_code=404, detail="Social media post not found")
    return {"ok": True}


# -----------------------------
# Search & Gift Buddy
# -----------------------------

@app.get("/api/search")
def search_catalog(q: str = Query(default="")):
    return {"items": search_products(fetch_products(), q)}


@app.get("/api/search/suggestions")
def search_suggestions(q: str = Query(default="")):
    return {"suggestions": get_suggestions(fetch_products(), q)}


@app.post("/api/chat", response_model=ChatTurn)
def chat(payload: ChatRequest):
    catalog = Catalog(
        products=fetch_products(),
        categories=fetch_categories(),
        whatsapp_number=settings.whatsapp_number,
    )
    return step(payload.session, payload.event, catalog)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
