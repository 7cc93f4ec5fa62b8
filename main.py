from typing import List, Optional

import structlog
from bson import ObjectId
from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import PyMongoError

import accounts
import addresses
import cart
import catalog
import orders
from database import ensure_indexes, get_db, parse_object_id
from errors import ShopError
from logging_config import configure_logging
from schemas import MAX_QUANTITY, MIN_QUANTITY, Address, OrderStatus, Product
from security import TOKEN_COOKIE, CredentialVerifier, PasswordHasher, get_current_user_id, get_hasher, get_verifier
from settings import Settings, get_settings

logger = structlog.get_logger(__name__)

app = FastAPI(title="Shop API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request models
class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AddressRequest(BaseModel):
    pincode: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    road_name: str = Field(..., min_length=1)
    is_selected: bool = False


class CartAddRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=MIN_QUANTITY, le=MAX_QUANTITY)


class CategoryRequest(BaseModel):
    category: str = Field(..., min_length=1)


class ProductCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    description: str = Field(..., min_length=1)
    availability: bool = True
    category_id: str
    images: List[str]


class ProductUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = Field(None, min_length=1)
    availability: Optional[bool] = None
    category_id: Optional[str] = None
    images: Optional[List[str]] = None


class StatusRequest(BaseModel):
    status: OrderStatus


# Error handlers
@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request failed", path=request.url.path, error=exc.message, error_type=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(PyMongoError)
async def storage_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.error("storage failure", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"message": str(exc)})


@app.on_event("startup")
def startup():
    settings = get_settings()
    configure_logging(settings)
    try:
        ensure_indexes(get_db(settings))
    except PyMongoError as e:
        logger.error("index creation failed", error=str(e))


# Routes
@app.get("/")
def root():
    return {"message": "Welcome To E-Commerce API"}


@app.get("/test")
def test_database(settings: Settings = Depends(get_settings), db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": settings.database_name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


# Users
@app.post("/user/signup", status_code=201)
def signup(req: SignupRequest, db: Database = Depends(get_db), hasher: PasswordHasher = Depends(get_hasher)):
    user_id = accounts.signup(db, hasher, req.name, req.email, req.password, req.phone)
    return {"message": "User Registered Successfully", "id": user_id}


@app.post("/user/login")
def login(
    req: LoginRequest,
    response: Response,
    db: Database = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    verifier: CredentialVerifier = Depends(get_verifier),
    settings: Settings = Depends(get_settings),
):
    token, user = accounts.login(db, hasher, verifier, req.email, req.password)
    response.set_cookie(TOKEN_COOKIE, token, httponly=True, max_age=settings.token_ttl_seconds)
    return {"message": "Login Successful", "token": token, "userInfo": user}


@app.get("/user/details")
def user_details(db: Database = Depends(get_db), user_id: ObjectId = Depends(get_current_user_id)):
    return accounts.details(db, user_id)


@app.get("/user/address")
def user_addresses(db: Database = Depends(get_db), user_id: ObjectId = Depends(get_current_user_id)):
    return addresses.list_addresses(db, user_id)


@app.post("/user/address/add")
def add_address(
    req: AddressRequest,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user_id: ObjectId = Depends(get_current_user_id),
):
    address_id = addresses.add_address(db, user_id, Address(**req.model_dump()), settings.write_retries)
    return {"message": "User address saved successfully", "id": address_id}


@app.patch("/user/address/select/{address_id}")
def select_address(
    address_id: str,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user_id: ObjectId = Depends(get_current_user_id),
):
    addresses.select(db, user_id, parse_object_id(address_id, "Address"), settings.write_retries)
    return {"message": "Address selected successfully"}


# Cart
@app.get("/cart")
def get_cart(db: Database = Depends(get_db), user_id: ObjectId = Depends(get_current_user_id)):
    return cart.list_cart(db, user_id)


@app.post("/cart/add")
def add_to_cart(
    req: CartAddRequest,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user_id: ObjectId = Depends(get_current_user_id),
):
    product_id = parse_object_id(req.product_id, "Product")
    cart.add_to_cart(db, user_id, product_id, req.quantity, settings.write_retries)
    return {"message": "Product added to cart"}


@app.delete("/cart/remove/{product_id}")
def remove_from_cart(
    product_id: str,
    db: Database = Depends(get_db),
    user_id: ObjectId = Depends(get_current_user_id),
):
    cart.remove_from_cart(db, user_id, parse_object_id(product_id, "Product"))
    return {"message": f"Product with ID {product_id} removed from cart"}


@app.patch("/cart/increase/{product_id}")
def increase_quantity(
    product_id: str,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user_id: ObjectId = Depends(get_current_user_id),
):
    quantity = cart.increase_quantity(db, user_id, parse_object_id(product_id, "Product"), settings.write_retries)
    return {"message": f"Quantity updated for product with ID {product_id}", "quantity": quantity}


@app.patch("/cart/decrease/{product_id}")
def decrease_quantity(
    product_id: str,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user_id: ObjectId = Depends(get_current_user_id),
):
    quantity = cart.decrease_quantity(db, user_id, parse_object_id(product_id, "Product"), settings.write_retries)
    return {"message": f"Quantity updated for product with ID {product_id}", "quantity": quantity}


# Orders
@app.get("/order")
def list_orders(db: Database = Depends(get_db), user_id: ObjectId = Depends(get_current_user_id)):
    return orders.list_orders(db, user_id)


@app.get("/order/details/{order_id}")
def order_details(order_id: str, db: Database = Depends(get_db), user_id: ObjectId = Depends(get_current_user_id)):
    return orders.order_details(db, user_id, parse_object_id(order_id, "Order"))


@app.post("/order/place/{product_id}")
def place_order(
    product_id: str,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user_id: ObjectId = Depends(get_current_user_id),
):
    order = orders.place_order(db, user_id, parse_object_id(product_id, "Product in cart"), settings.write_retries)
    return {"message": "Order Placed Successfully", "order": order}


@app.patch("/order/return/{order_id}")
def return_order(order_id: str, db: Database = Depends(get_db), user_id: ObjectId = Depends(get_current_user_id)):
    order = orders.mark_returned(db, user_id, parse_object_id(order_id, "Order"))
    return {"message": "Order Marked as Returned Successfully", "order": order}


@app.delete("/order/cancel/{order_id}")
def cancel_order(order_id: str, db: Database = Depends(get_db), user_id: ObjectId = Depends(get_current_user_id)):
    order = orders.cancel(db, user_id, parse_object_id(order_id, "Order"))
    return {"message": "Order Cancelled Successfully", "order": order}


@app.patch("/order/status/{order_id}")
def update_order_status(
    order_id: str,
    req: StatusRequest,
    db: Database = Depends(get_db),
    user_id: ObjectId = Depends(get_current_user_id),
):
    order = orders.advance(db, user_id, parse_object_id(order_id, "Order"), OrderStatus(req.status))
    return {"message": "Order status updated", "order": order}


# Categories
@app.post("/category/add", status_code=201)
def add_category(req: CategoryRequest, db: Database = Depends(get_db)):
    category_id = catalog.add_category(db, req.category)
    return {"message": "Category added successfully", "id": category_id}


@app.get("/category")
def list_categories(db: Database = Depends(get_db)):
    return catalog.list_categories(db)


@app.patch("/category/change/{category_id}")
def change_category(category_id: str, req: CategoryRequest, db: Database = Depends(get_db)):
    catalog.rename_category(db, parse_object_id(category_id, "Category"), req.category)
    return {"message": "Category updated successfully"}


@app.delete("/category/remove/{category_id}")
def remove_category(category_id: str, db: Database = Depends(get_db)):
    catalog.remove_category(db, parse_object_id(category_id, "Category"))
    return {"message": "Category deleted successfully"}


# Products
@app.post("/product/add", status_code=201)
def add_product(req: ProductCreateRequest, db: Database = Depends(get_db)):
    fields = req.model_dump()
    fields["category_id"] = parse_object_id(req.category_id, "Category")
    product_id = catalog.add_product(db, Product(**fields))
    return {"message": "Product added successfully", "id": product_id}


@app.get("/product/category/{category_id}")
def products_by_category(category_id: str, db: Database = Depends(get_db)):
    return catalog.products_in_category(db, parse_object_id(category_id, "Category"))


@app.get("/product/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, parse_object_id(product_id, "Product"))


@app.patch("/product/change/{product_id}")
def update_product(product_id: str, req: ProductUpdateRequest, db: Database = Depends(get_db)):
    updates = {k: v for k, v in req.model_dump().items() if v is not None}
    if "category_id" in updates:
        updates["category_id"] = parse_object_id(updates["category_id"], "Category")
    catalog.update_product(db, parse_object_id(product_id, "Product"), updates)
    return {"message": "Product updated successfully"}


@app.delete("/product/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db)):
    catalog.remove_product(db, parse_object_id(product_id, "Product"))
    return {"message": "Product deleted successfully"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
