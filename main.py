from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

from assets import AssetManager
from catalog import CatalogStore, parse_variant_input
from config import Settings
from coupons import CouponStore
from database import ADMINS, connect, ensure_indexes
from errors import InvalidCredentials, MissingFields, PersistenceError, StoreError, ValidationError
from logging_config import get_logger, setup_logging
from orders import OrderSequencer, OrderStore, utc_now
from schemas import AdminLoginIn, ApplyCouponIn, CouponIn, CouponUpdate, OrderIn, OrderStatusIn, ProductFields

log = get_logger(__name__)

router = APIRouter()


# ---------- Dependencies ----------

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    db = request.app.state.db
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def get_assets(request: Request) -> AssetManager:
    return request.app.state.assets


def get_catalog(db: Database = Depends(get_db), settings: Settings = Depends(get_settings)) -> CatalogStore:
    return CatalogStore(db, settings.update_missing_product)


def get_coupons(db: Database = Depends(get_db)) -> CouponStore:
    return CouponStore(db)


def get_orders(request: Request, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)) -> OrderStore:
    sequencer = OrderSequencer(db, clock=request.app.state.clock)
    return OrderStore(db, sequencer, max_attempts=settings.order_id_max_attempts)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


def product_form(
    prod_name: Optional[str] = Form(None),
    prod_qty: Optional[str] = Form(None),
    new_price: Optional[str] = Form(None),
    old_price: Optional[str] = Form(None),
    prod_description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    subCategories: Optional[str] = Form(None),
    color_variations: Optional[str] = Form(None),
    other_variations: Optional[str] = Form(None),
) -> ProductFields:
    """Builds ProductFields from the multipart form sent by the admin UI."""
    try:
        return ProductFields(
            prod_name=_blank_to_none(prod_name),
            prod_qty=_blank_to_none(prod_qty),
            new_price=_blank_to_none(new_price),
            old_price=_blank_to_none(old_price),
            prod_description=prod_description,
            category=_blank_to_none(category),
            sub_category=parse_variant_input(subCategories),
            color_variations=parse_variant_input(color_variations),
            other_variations=parse_variant_input(other_variations),
        )
    except PydanticValidationError as e:
        bad = ", ".join(str(err["loc"][0]) for err in e.errors())
        raise ValidationError(f"Invalid product fields: {bad}")


def image_url(request: Request, settings: Settings, filename: Optional[str]) -> Optional[str]:
    if not filename:
        return None
    base = settings.public_base_url or str(request.base_url)
    return f"{base.rstrip('/')}/uploads/{filename}"


def _save_upload(assets: AssetManager, upload: Optional[UploadFile]) -> Optional[str]:
    if upload is None or not upload.filename:
        return None
    try:
        return assets.save(upload.filename, upload.file)
    except OSError as e:
        log.error("Could not store uploaded image %r: %s", upload.filename, e)
        raise PersistenceError("Failed to store image")


# ---------- Basic Routes ----------

@router.get("/")
def read_root():
    return {"message": "Storefront Admin Backend Running"}


@router.get("/test")
def test_database(request: Request):
    db = request.app.state.db
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "connection_status": "Not Connected",
        "collections": [],
    }
    if db is None:
        response["database"] = "⚠️  Available but not initialized"
        return response

    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


@router.post("/admin_login")
def admin_login(payload: AdminLoginIn, db: Database = Depends(get_db)):
    if not payload.admin_name or not payload.admin_pw:
        raise ValidationError("Missing admin_name or admin_pw")

    try:
        record = db[ADMINS].find_one(
            {"admin_name": payload.admin_name, "admin_pw": payload.admin_pw},
            {"_id": 0, "admin_pw": 0},
        )
    except PyMongoError:
        log.exception("Error during admin login query")
        raise PersistenceError("Database query failed")

    if record is None:
        log.warning("Failed admin login for %r", payload.admin_name)
        raise InvalidCredentials()
    return {"message": "Login Successful", "data": [record]}


# ---------- Product Routes ----------

@router.get("/api/prod_details")
def list_products(
    request: Request,
    catalog: CatalogStore = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
):
    products = catalog.list_all()
    for product in products:
        product["prod_image"] = image_url(request, settings, product.get("prod_image"))
    return products


@router.post("/api/add_product", status_code=201)
def add_product(
    fields: ProductFields = Depends(product_form),
    prod_image: Optional[UploadFile] = File(None),
    catalog: CatalogStore = Depends(get_catalog),
    assets: AssetManager = Depends(get_assets),
):
    image = _save_upload(assets, prod_image)
    try:
        prod_id = catalog.add(fields, image)
    except StoreError:
        assets.reclaim(image)
        raise
    return {"message": "Product added successfully", "productId": prod_id}


@router.put("/api/update_product/{prod_id}")
def update_product(
    prod_id: int,
    background_tasks: BackgroundTasks,
    fields: ProductFields = Depends(product_form),
    prod_image: Optional[UploadFile] = File(None),
    catalog: CatalogStore = Depends(get_catalog),
    assets: AssetManager = Depends(get_assets),
):
    image = _save_upload(assets, prod_image)
    try:
        result = catalog.update(prod_id, fields, image)
    except StoreError:
        assets.reclaim(image)
        raise

    if image and not result.matched:
        # Nothing references the fresh upload
        background_tasks.add_task(assets.reclaim, image)
    elif result.previous_image:
        background_tasks.add_task(assets.reclaim, result.previous_image)
    return {"message": "Product updated successfully", "matched": result.matched}


@router.delete("/api/delete_product/{prod_id}")
def delete_product(
    prod_id: int,
    background_tasks: BackgroundTasks,
    catalog: CatalogStore = Depends(get_catalog),
    assets: AssetManager = Depends(get_assets),
):
    removed = catalog.delete(prod_id)
    if removed.get("prod_image"):
        background_tasks.add_task(assets.reclaim, removed["prod_image"])
    return {"message": "Product deleted successfully"}


@router.get("/api/search")
def search_products(q: Optional[str] = None, catalog: CatalogStore = Depends(get_catalog)):
    if not q:
        raise ValidationError("Bad Request: Missing search query")
    return catalog.search(q)


@router.get("/api/products")
def products_by_category(
    category: Optional[str] = None,
    sub_category: Optional[str] = None,
    catalog: CatalogStore = Depends(get_catalog),
):
    return catalog.list_by_category(category, sub_category)


# ---------- Coupon Routes ----------

@router.get("/api/coupon_details")
def list_coupons(coupons: CouponStore = Depends(get_coupons)):
    return coupons.list()


@router.post("/api/coupon_details")
def add_coupon(coupon: CouponIn, coupons: CouponStore = Depends(get_coupons)):
    coupon_id = coupons.add(coupon)
    return {"message": "Coupon added successfully", "coupon_id": coupon_id}


@router.post("/api/apply_coupon")
def apply_coupon(payload: ApplyCouponIn, coupons: CouponStore = Depends(get_coupons)):
    coupon = coupons.apply_by_code(payload.coupon_code)
    return {"success": True, **coupon}


@router.put("/api/update_coupon/{coupon_id}")
def update_coupon(coupon_id: int, changes: CouponUpdate, coupons: CouponStore = Depends(get_coupons)):
    affected = coupons.update(coupon_id, changes)
    return {"message": "Coupon updated successfully", "affectedRows": affected}


@router.delete("/api/delete_coupon/{coupon_id}")
def delete_coupon(coupon_id: int, coupons: CouponStore = Depends(get_coupons)):
    affected = coupons.delete(coupon_id)
    return {"message": "Coupon deleted successfully", "affectedRows": affected}


# ---------- Order Routes ----------

@router.post("/api/place_order")
def place_order(order: OrderIn, orders: OrderStore = Depends(get_orders)):
    order_id = orders.place(order)
    return {"message": "Order placed successfully", "orderID": order_id}


@router.get("/api/order_details")
def list_orders(orders: OrderStore = Depends(get_orders)):
    return orders.list()


@router.put("/api/order_details/{order_id}")
def update_order_status(order_id: str, payload: OrderStatusIn, orders: OrderStore = Depends(get_orders)):
    orders.update_status(order_id, payload.order_status)
    return {"message": "Order status updated successfully"}


# ---------- Error Mapping ----------

async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.body()))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    missing = [str(err["loc"][-1]) for err in exc.errors() if err.get("type") == "missing"]
    if missing:
        error = MissingFields(missing)
    else:
        error = ValidationError("Invalid request")
    log.warning("%s %s rejected: %s", request.method, request.url.path, error.message)
    return JSONResponse(
        status_code=error.status_code,
        content={**error.body(), "details": jsonable_encoder(exc.errors(), custom_encoder={Exception: str})},
    )


# ---------- App Factory ----------

def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Builds the API application.

    Args:
        settings (Settings | None): Configuration; read from the environment when omitted.
        db (Database | None): MongoDB handle; connected from settings when omitted.
        clock (Callable | None): "now" provider for order dates; UTC server time by default.
    """
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    if db is None:
        db = connect(settings.database_url, settings.database_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.db is not None:
            try:
                ensure_indexes(app.state.db)
            except PyMongoError as e:
                # Without the unique orderID index nothing stops duplicate order ids
                log.critical("Could not ensure indexes, refusing to start: %s", e)
                raise
        log.info("Storefront admin backend started.")
        yield

    app = FastAPI(title="Storefront Admin API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.db = db
    app.state.clock = clock or utc_now
    app.state.assets = AssetManager(settings.upload_dir)

    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")
    return app


if __name__ == "__main__":
    import uvicorn
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
