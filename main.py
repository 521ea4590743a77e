"""
Bubbly Crochet storefront REST API.

Catalog, checkout and reviews for shoppers; products, orders, settings and
journey resources for the store admin. Backed by MongoDB.
"""
import logging
import re
import time
import traceback
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import structlog
from bson.objectid import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import notifications
from auth import (
    admin_only,
    clear_auth_cookies,
    create_token,
    hash_password,
    protect,
    set_auth_cookie,
    verify_password,
)
from cache import JOURNEY_GROUPED_KEY, PRODUCTS_KEY, ResponseCache, get_cache
from config import ALLOWED_ORIGINS, ENVIRONMENT, LOG_LEVEL, PORT
from database import create_document, db, ensure_indexes, get_documents, now_utc, serialize_doc
from schemas import (
    JOURNEY_CATEGORIES,
    ChangePasswordBody,
    JourneyResource as JourneySchema,
    JourneyUpdateBody,
    LoginBody,
    Order as OrderSchema,
    OrderCreateBody,
    OrderItem,
    OrderStatus,
    Product as ProductSchema,
    ProductUpdateBody,
    ProfileUpdateBody,
    RegisterBody,
    ResetPasswordBody,
    Review as ReviewSchema,
    ReviewCreateBody,
    ReviewUpdateBody,
    Settings as SettingsSchema,
    StatusUpdateBody,
    User as UserSchema,
    can_transition,
    effective_price,
)

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if ENVIRONMENT == "production" else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, LOG_LEVEL.upper(), logging.INFO)),
)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes()
    except PyMongoError as e:
        logger.error("index_setup_failed", error=str(e))
    logger.info("startup", environment=ENVIRONMENT)
    yield


app = FastAPI(title="Bubbly Crochet API", lifespan=lifespan)
app.state.cache = ResponseCache()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# ----------------------- Utils -----------------------
def ensure_object_id(id_str: str) -> ObjectId:
    if not ObjectId.is_valid(id_str):
        raise HTTPException(status_code=400, detail="Invalid id format")
    return ObjectId(id_str)


def public_user(user: dict) -> dict:
    out = serialize_doc(user)
    out.pop("passwordHash", None)
    return out


def serialize_product(doc: dict) -> dict:
    out = serialize_doc(doc)
    out["effectivePrice"] = effective_price(doc.get("price", 0), doc.get("discount"))
    return out


SETTINGS_ID = "store"


def load_settings() -> dict:
    # Fixed _id: concurrent first reads all upsert the same document.
    defaults = SettingsSchema().model_dump()
    defaults["created_at"] = defaults["updated_at"] = now_utc()
    return db["settings"].find_one_and_update(
        {"_id": SETTINGS_ID},
        {"$setOnInsert": defaults},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


# ----------------------- Errors & logging -----------------------
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return JSONResponse(status_code=400, content={"message": "Invalid request"})
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = f"{loc}: {first['msg']}" if loc else first["msg"]
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_error(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=400, content={"message": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error("unhandled_error", path=request.url.path, error=str(exc))
    content = {"message": str(exc) or "Internal server error"}
    if ENVIRONMENT != "production":
        content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=content)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - start) * 1000, 1),
    )
    return response


# ----------------------- Health -----------------------
@app.get("/api/health")
def health():
    database = "connected"
    try:
        db.list_collection_names()
    except PyMongoError as e:
        database = f"error: {str(e)[:80]}"
    return {
        "success": True,
        "message": "Bubbly Crochet API is running",
        "timestamp": now_utc().isoformat(),
        "database": database,
    }


# ----------------------- Auth -----------------------
@app.post("/api/auth/register", status_code=201)
def register(body: RegisterBody, response: Response):
    email = body.email.strip().lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists")
    user = UserSchema(
        email=email,
        password_hash=hash_password(body.password),
        name=body.name,
        address=body.address,
        phone=body.phone,
        country=body.country,
        country_code=body.country_code,
        role="client",
    )
    user_id = create_document("user", user)
    token = create_token(user_id, "client")
    set_auth_cookie(response, token)
    notifications.notify_welcome(user_id, body.name, load_settings().get("store_name"))
    logger.info("user_registered", user_id=user_id)
    return {"success": True, "token": token, "user": public_user(db["user"].find_one({"_id": ObjectId(user_id)}))}


def _authenticate(body: LoginBody) -> dict:
    user = db["user"].find_one({"email": body.email.strip().lower()})
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        logger.warning("login_failed", email=body.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated")
    return user


@app.post("/api/auth/login")
def login(body: LoginBody, response: Response):
    user = _authenticate(body)
    token = create_token(str(user["_id"]), user.get("role", "client"))
    set_auth_cookie(response, token)
    return {"success": True, "token": token, "user": public_user(user)}


@app.post("/api/auth/admin/login")
def admin_login(body: LoginBody, response: Response):
    user = _authenticate(body)
    if user.get("role") != "admin":
        logger.warning("admin_login_denied", user_id=str(user["_id"]))
        raise HTTPException(status_code=403, detail="Access denied. Admin only")
    token = create_token(str(user["_id"]), "admin")
    set_auth_cookie(response, token, admin=True)
    return {"success": True, "token": token, "user": public_user(user)}


@app.post("/api/auth/logout")
def logout(response: Response):
    clear_auth_cookies(response)
    return {"success": True, "message": "Logged out"}


@app.get("/api/auth/me")
def me(user=Depends(protect)):
    return {"success": True, "user": public_user(user)}


@app.put("/api/auth/profile")
def update_profile(body: ProfileUpdateBody, user=Depends(protect)):
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = now_utc()
    updated = db["user"].find_one_and_update(
        {"_id": user["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return {"success": True, "user": public_user(updated)}


@app.put("/api/auth/change-password")
def change_password(body: ChangePasswordBody, user=Depends(protect)):
    if not verify_password(body.current_password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Current password is incorrect")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(body.new_password), "updated_at": now_utc()}},
    )
    logger.info("password_changed", user_id=user["id"])
    return {"success": True, "message": "Password updated"}


@app.delete("/api/auth/account")
def delete_account(response: Response, user=Depends(protect)):
    if user.get("role") == "admin":
        raise HTTPException(status_code=403, detail="Admin accounts cannot be deleted")
    # Orders stay behind as frozen snapshots; reviews and notifications go with the user.
    db["user"].delete_one({"_id": user["_id"]})
    removed_reviews = db["review"].delete_many({"user_id": user["id"]}).deleted_count
    notifications.delete_for(user["id"])
    clear_auth_cookies(response)
    logger.info("account_deleted", user_id=user["id"], reviews_removed=removed_reviews)
    return {"success": True, "message": "Account deleted"}


@app.post("/api/auth/reset-password-request")
def reset_password_request(body: ResetPasswordBody):
    # No mail transport is wired up; the request is only recorded.
    exists = db["user"].find_one({"email": body.email.strip().lower()}) is not None
    logger.info("password_reset_requested", email=body.email, known=exists)
    return {"success": True, "message": "If an account exists for this email, reset instructions have been sent"}


# ----------------------- Products -----------------------
@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    q: Optional[str] = None,
    in_stock: Optional[bool] = Query(None, alias="inStock"),
    cache: ResponseCache = Depends(get_cache),
):
    unfiltered = category is None and not q and in_stock is None
    if unfiltered:
        cached = cache.get(PRODUCTS_KEY)
        if cached is not None:
            return {"success": True, "count": len(cached), "products": cached}
    flt = {}
    if category:
        flt["category"] = category
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        flt["$or"] = [{"name": pattern}, {"description": pattern}]
    if in_stock is not None:
        flt["in_stock"] = in_stock
    products = [serialize_product(p) for p in get_documents("product", flt)]
    if unfiltered:
        cache.set(PRODUCTS_KEY, products)
    return {"success": True, "count": len(products), "products": products}


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    item = db["product"].find_one({"_id": ensure_object_id(product_id)})
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True, "product": serialize_product(item)}


@app.post("/api/products", status_code=201)
def create_product(body: ProductSchema, user=Depends(admin_only), cache: ResponseCache = Depends(get_cache)):
    pid = create_document("product", body)
    cache.invalidate(PRODUCTS_KEY)
    logger.info("product_created", product_id=pid)
    return {"success": True, "product": serialize_product(db["product"].find_one({"_id": ObjectId(pid)}))}


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, user=Depends(admin_only), cache: ResponseCache = Depends(get_cache)):
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = now_utc()
    updated = db["product"].find_one_and_update(
        {"_id": ensure_object_id(product_id)}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Product not found")
    cache.invalidate(PRODUCTS_KEY)
    return {"success": True, "product": serialize_product(updated)}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user=Depends(admin_only), cache: ResponseCache = Depends(get_cache)):
    res = db["product"].delete_one({"_id": ensure_object_id(product_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    cache.invalidate(PRODUCTS_KEY)
    logger.info("product_deleted", product_id=product_id)
    return {"success": True, "message": "Product deleted"}


# ----------------------- Orders -----------------------
def _order_line(line) -> OrderItem:
    prod = None
    if ObjectId.is_valid(line.product_id):
        prod = db["product"].find_one({"_id": ObjectId(line.product_id)})
    if not prod:
        raise HTTPException(status_code=400, detail=f"Product not found: {line.product_id}")
    if not prod.get("in_stock", True):
        raise HTTPException(status_code=400, detail=f"{prod['name']} is out of stock")
    return OrderItem(
        product_id=str(prod["_id"]),
        name=prod["name"],
        price=effective_price(prod["price"], prod.get("discount")),
        original_price=prod["price"],
        discount=prod.get("discount") or 0,
        quantity=line.quantity,
        shipping_cost=prod.get("shipping_cost", 0),
        days_to_make=prod.get("days_to_make", 3),
    )


@app.post("/api/orders", status_code=201)
def create_order(body: OrderCreateBody, user=Depends(protect)):
    items = [_order_line(line) for line in body.items]
    address = (body.shipping_address or user.get("address") or "").strip()
    if not address:
        raise HTTPException(status_code=400, detail="Shipping address is required")
    order = OrderSchema(
        user_id=user["id"],
        user_name=user["name"],
        contact_email=user["email"],
        shipping_address=address,
        items=items,
        total_amount=round(sum(i.price * i.quantity for i in items), 2),
        shipping_total=round(sum(i.shipping_cost * i.quantity for i in items), 2),
        special_request=body.special_request,
        estimated_completion_date=now_utc() + timedelta(days=max(i.days_to_make for i in items)),
    )
    order_id = create_document("order", order)
    logger.info("order_created", order_id=order_id, user_id=user["id"], total=order.total_amount)
    try:
        notifications.notify_order_placed(order_id, user)
    except PyMongoError as e:
        logger.error("order_notification_failed", order_id=order_id, error=str(e))
        raise
    return {"success": True, "order": serialize_doc(db["order"].find_one({"_id": ObjectId(order_id)}))}


@app.get("/api/orders/my-orders")
def my_orders(user=Depends(protect)):
    orders = get_documents("order", {"user_id": user["id"]})
    return {"success": True, "count": len(orders), "orders": serialize_doc(orders)}


@app.get("/api/orders")
def list_orders(status: Optional[OrderStatus] = None, user=Depends(admin_only)):
    flt = {"status": status.value} if status else {}
    orders = get_documents("order", flt)
    return {"success": True, "count": len(orders), "orders": serialize_doc(orders)}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user=Depends(protect)):
    order = db["order"].find_one({"_id": ensure_object_id(order_id)})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.get("user_id") != user["id"] and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not authorized")
    return {"success": True, "order": serialize_doc(order)}


@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, body: StatusUpdateBody, user=Depends(admin_only)):
    oid = ensure_object_id(order_id)
    order = db["order"].find_one({"_id": oid})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    current = order.get("status", OrderStatus.PENDING.value)
    if not can_transition(current, body.status):
        raise HTTPException(status_code=400, detail=f"Cannot change order status from {current} to {body.status}")
    updated = db["order"].find_one_and_update(
        {"_id": oid, "status": current},
        {"$set": {"status": body.status, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=409, detail="Order was modified concurrently, reload and retry")
    logger.info("order_status_changed", order_id=order_id, previous=current, status=body.status)
    notifications.notify_status_changed(order_id, order["user_id"], body.status)
    return {"success": True, "order": serialize_doc(updated)}


# ----------------------- Reviews -----------------------
@app.get("/api/reviews/product/{product_id}")
def product_reviews(product_id: str):
    reviews = get_documents("review", {"product_id": product_id})
    average = round(sum(r["rating"] for r in reviews) / len(reviews), 1) if reviews else 0
    return {"success": True, "count": len(reviews), "averageRating": average, "reviews": serialize_doc(reviews)}


@app.post("/api/reviews", status_code=201)
def create_review(body: ReviewCreateBody, user=Depends(protect)):
    product = db["product"].find_one({"_id": ensure_object_id(body.product_id)})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    already = "You have already reviewed this product"
    if db["review"].find_one({"product_id": body.product_id, "user_id": user["id"]}):
        raise HTTPException(status_code=400, detail=already)
    review = ReviewSchema(
        product_id=body.product_id,
        user_id=user["id"],
        user_name=user["name"],
        rating=body.rating,
        comment=body.comment,
    )
    try:
        rid = create_document("review", review)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail=already)
    notifications.notify_review(product["name"], body.rating, user["name"])
    return {"success": True, "review": serialize_doc(db["review"].find_one({"_id": ObjectId(rid)}))}


@app.put("/api/reviews/{review_id}")
def update_review(review_id: str, body: ReviewUpdateBody, user=Depends(protect)):
    rid = ensure_object_id(review_id)
    review = db["review"].find_one({"_id": rid})
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    if review["user_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Not authorized")
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = now_utc()
    updated = db["review"].find_one_and_update({"_id": rid}, {"$set": update}, return_document=ReturnDocument.AFTER)
    return {"success": True, "review": serialize_doc(updated)}


@app.delete("/api/reviews/{review_id}")
def delete_review(review_id: str, user=Depends(protect)):
    rid = ensure_object_id(review_id)
    review = db["review"].find_one({"_id": rid})
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    if review["user_id"] != user["id"] and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not authorized")
    db["review"].delete_one({"_id": rid})
    return {"success": True, "message": "Review deleted"}


# ----------------------- Settings -----------------------
@app.get("/api/settings")
def get_settings():
    return {"success": True, "settings": serialize_doc(load_settings())}


@app.put("/api/settings")
def update_settings(body: SettingsSchema, user=Depends(admin_only)):
    current = db["settings"].find_one({"_id": SETTINGS_ID}) or {}
    doc = body.model_dump()
    doc["created_at"] = current.get("created_at", now_utc())
    doc["updated_at"] = now_utc()
    db["settings"].replace_one({"_id": SETTINGS_ID}, doc, upsert=True)
    logger.info("settings_updated", user_id=user["id"])
    return {"success": True, "settings": serialize_doc(db["settings"].find_one({"_id": SETTINGS_ID}))}


# ----------------------- Journey -----------------------
@app.get("/api/journey")
def list_journey(category: Optional[str] = None):
    flt = {"category": category} if category else {}
    resources = get_documents("journeyresource", flt)
    return {"success": True, "count": len(resources), "data": serialize_doc(resources)}


@app.get("/api/journey/grouped")
def grouped_journey(cache: ResponseCache = Depends(get_cache)):
    cached = cache.get(JOURNEY_GROUPED_KEY)
    if cached is not None:
        return {"success": True, "data": cached, "cached": True}
    resources = serialize_doc(get_documents("journeyresource"))
    grouped = {c: [r for r in resources if r.get("category") == c] for c in JOURNEY_CATEGORIES}
    cache.set(JOURNEY_GROUPED_KEY, grouped)
    return {"success": True, "data": grouped, "cached": False}


@app.get("/api/journey/{resource_id}")
def get_journey(resource_id: str):
    resource = db["journeyresource"].find_one({"_id": ensure_object_id(resource_id)})
    if not resource:
        raise HTTPException(status_code=404, detail="Journey resource not found")
    return {"success": True, "data": serialize_doc(resource)}


@app.post("/api/journey", status_code=201)
def create_journey(body: JourneySchema, user=Depends(admin_only), cache: ResponseCache = Depends(get_cache)):
    rid = create_document("journeyresource", body)
    cache.invalidate(JOURNEY_GROUPED_KEY)
    return {
        "success": True,
        "message": "Journey resource created successfully",
        "data": serialize_doc(db["journeyresource"].find_one({"_id": ObjectId(rid)})),
    }


@app.put("/api/journey/{resource_id}")
def update_journey(resource_id: str, body: JourneyUpdateBody, user=Depends(admin_only), cache: ResponseCache = Depends(get_cache)):
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = now_utc()
    updated = db["journeyresource"].find_one_and_update(
        {"_id": ensure_object_id(resource_id)}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Journey resource not found")
    cache.invalidate(JOURNEY_GROUPED_KEY)
    return {"success": True, "message": "Journey resource updated successfully", "data": serialize_doc(updated)}


@app.delete("/api/journey/{resource_id}")
def delete_journey(resource_id: str, user=Depends(admin_only), cache: ResponseCache = Depends(get_cache)):
    res = db["journeyresource"].delete_one({"_id": ensure_object_id(resource_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Journey resource not found")
    cache.invalidate(JOURNEY_GROUPED_KEY)
    return {"success": True, "message": "Journey resource deleted successfully"}


# ----------------------- Notifications -----------------------
@app.get("/api/notifications")
def list_notifications(unread: bool = False, user=Depends(protect)):
    recipient = notifications.recipient_for(user)
    items = notifications.list_for(recipient, unread_only=unread)
    return {
        "success": True,
        "count": len(items),
        "unreadCount": notifications.unread_count(recipient),
        "notifications": serialize_doc(items),
    }


@app.put("/api/notifications/read-all")
def read_all_notifications(user=Depends(protect)):
    updated = notifications.mark_all_read(notifications.recipient_for(user))
    return {"success": True, "updated": updated}


@app.put("/api/notifications/{notification_id}/read")
def read_notification(notification_id: str, user=Depends(protect)):
    doc = notifications.mark_read(ensure_object_id(notification_id), notifications.recipient_for(user))
    if not doc:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "notification": serialize_doc(doc)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
