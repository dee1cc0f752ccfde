import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import cart, crud, models, orders, schemas
from .auth import create_access_token, user_id_from_token
from .config import Settings, get_settings
from .db import Database
from .errors import AuthError, ShopError, ValidationError, translate_db_error

logger = logging.getLogger(__name__)


# Dependency to get DB session per request

def get_db(request: Request):
    database: Database = request.app.state.database
    with database.session() as db:
        yield db


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def current_user_id(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> int:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthError("missing bearer token")
    token = authorization.split(None, 1)[1]
    return user_id_from_token(token, settings.jwt_secret)


def ok(**payload) -> dict:
    return {"success": True, **payload}


# -------------------- error envelopes --------------------

async def shop_error_handler(request: Request, exc: ShopError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc.__cause__ or exc)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        fields.append(".".join(loc) or err.get("type", "body"))
    message = "Missing or invalid fields: " + ", ".join(sorted(set(fields)))
    return JSONResponse(status_code=400, content={"success": False, "message": message})


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("%s %s hit a database error", request.method, request.url.path, exc_info=exc)
    error = translate_db_error(exc)
    return JSONResponse(status_code=error.status_code, content={"success": False, "message": error.message})


# -------------------- app factory --------------------

def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_database = app.state.database is None
        if owns_database:
            app.state.database = Database.from_settings(settings)
        app.state.database.create_all()
        with app.state.database.session() as db:
            crud.ensure_categories(db)
        yield
        if owns_database:
            app.state.database.dispose()
            app.state.database = None

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    register_routes(app)
    return app


def register_routes(app: FastAPI):

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # -------------------- accounts --------------------

    @app.post("/signup", status_code=201)
    def signup(payload: schemas.SignupRequest, db: Session = Depends(get_db)):
        crud.create_user(db, payload)
        return ok(message="Registration successful")

    @app.post("/login")
    def login(payload: schemas.LoginRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
        user = crud.authenticate(db, payload.email, payload.password)
        token = create_access_token(user.id, user.email, settings.jwt_secret, settings.jwt_exp_seconds)
        return ok(
            message="Login successful",
            user=schemas.UserRead.model_validate(user).model_dump(),
            access_token=token,
            token_type="bearer",
        )

    @app.put("/account/password")
    def change_password(
        payload: schemas.PasswordChange,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        crud.change_password(db, user_id, payload)
        return ok(message="Password updated")

    @app.delete("/account")
    def delete_account(
        payload: schemas.AccountDelete,
        user_id: int = Depends(current_user_id),
        db: Session = Depends(get_db),
    ):
        crud.delete_user(db, user_id, payload.password)
        return ok(message="Account deleted")

    # -------------------- catalog --------------------

    @app.get("/api/categories")
    def get_categories(db: Session = Depends(get_db)):
        categories = crud.list_categories(db)
        return ok(categories=[schemas.CategoryRead.model_validate(c).model_dump() for c in categories])

    @app.get("/api/products", response_model=List[schemas.ProductRead])
    def get_products(
        category_id: Optional[int] = Query(default=None, alias="categoryId", ge=1),
        search: Optional[str] = Query(default=None, max_length=100),
        db: Session = Depends(get_db),
    ):
        return crud.list_products(db, category_id=category_id, search=search)

    @app.get("/api/products/{product_id}")
    def get_product(product_id: int, db: Session = Depends(get_db)):
        product = crud.get_product(db, product_id)
        return ok(product=schemas.ProductRead.model_validate(product).model_dump(mode="json"))

    @app.post("/api/products", status_code=201)
    def create_product(
        request: Request,
        title: str = Form(...),
        price: Decimal = Form(...),
        description: str = Form(""),
        category: Optional[str] = Form(None),
        is_new: bool = Form(False, alias="isNew"),
        images: Optional[List[UploadFile]] = File(default=None),
        db: Session = Depends(get_db),
    ):
        limit = request.app.state.settings.max_product_images
        uploads = [image for image in images or [] if image.filename]
        if len(uploads) > limit:
            raise ValidationError(f"At most {limit} images per product")
        try:
            product = schemas.ProductCreate(
                title=title, description=description, price=price, category=category or None, is_new=is_new
            )
        except PydanticValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise ValidationError("Missing or invalid fields: " + ", ".join(fields)) from e
        created = crud.create_product(db, product, [image.file.read() for image in uploads])
        return ok(message="Product and images added successfully", product_id=created.id)

    @app.delete("/api/products/{product_id}")
    def delete_product(product_id: int, db: Session = Depends(get_db)):
        crud.delete_product(db, product_id)
        return ok(message="Product deleted")

    @app.delete("/api/categories/{category}/products/{product_id}")
    def delete_category_product(category: models.CategoryKey, product_id: int, db: Session = Depends(get_db)):
        crud.delete_product(db, product_id, category=category)
        return ok(message="Product deleted")

    # -------------------- cart --------------------

    @app.post("/cart/add")
    def add_to_cart(payload: schemas.CartAddRequest, db: Session = Depends(get_db)):
        line = cart.add_to_cart(db, payload)
        return ok(message="Item added to cart", item=schemas.CartLineRead.model_validate(line).model_dump(mode="json"))

    @app.get("/cart/{user_id}")
    def get_cart(user_id: int, db: Session = Depends(get_db)):
        lines = cart.get_cart(db, user_id)
        return ok(cart=[schemas.CartLineRead.model_validate(line).model_dump(mode="json") for line in lines])

    @app.put("/cart/{user_id}/{item_id}")
    def update_cart_item(user_id: int, item_id: int, payload: schemas.CartQuantityUpdate, db: Session = Depends(get_db)):
        line = cart.set_quantity(db, user_id, item_id, payload.quantity)
        return ok(message="Cart updated", item=schemas.CartLineRead.model_validate(line).model_dump(mode="json"))

    @app.delete("/cart/{user_id}/{item_id}")
    def remove_cart_item(user_id: int, item_id: int, db: Session = Depends(get_db)):
        cart.remove_from_cart(db, user_id, item_id)
        return ok(message="Item removed from cart")

    # -------------------- orders --------------------

    @app.post("/order/place", status_code=201)
    def place_cart_order(payload: schemas.OrderPlacement, db: Session = Depends(get_db)):
        order = orders.place_order(db, payload)
        return ok(message="Order placed successfully", order_id=order.id)

    @app.post("/api/orders", status_code=201)
    def place_product_order(payload: schemas.ProductOrderRequest, db: Session = Depends(get_db)):
        order = orders.place_order(db, orders.placement_for_product(payload))
        return ok(message="Order placed successfully", order_id=order.id)

    @app.get("/api/orders")
    def get_orders(user_id: Optional[int] = Query(default=None, ge=1), db: Session = Depends(get_db)):
        found = orders.list_orders(db, user_id=user_id)
        return ok(orders=[schemas.OrderRead.model_validate(o).model_dump(mode="json") for o in found])

    @app.get("/api/orders/{order_id}")
    def get_order(order_id: int, db: Session = Depends(get_db)):
        order = orders.get_order(db, order_id)
        return ok(order=schemas.OrderRead.model_validate(order).model_dump(mode="json"))

    @app.patch("/api/orders/{order_id}/status")
    def update_order_status(order_id: int, payload: schemas.OrderStatusUpdate, db: Session = Depends(get_db)):
        order = orders.update_order_status(db, order_id, payload.status)
        return ok(order=schemas.OrderRead.model_validate(order).model_dump(mode="json"))

    @app.delete("/api/orders/{order_id}")
    def delete_order(order_id: int, db: Session = Depends(get_db)):
        orders.delete_order(db, order_id)
        return ok(message="Order deleted", deleted=order_id)


app = create_app()
