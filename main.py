import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pymongo import MongoClient

from catalog import CatalogService
from config import Settings, load_settings
from database import connect, ensure_indexes
from errors import install_exception_handlers
from logging_config import configure_logging
from routers import auth, products, public, stores
from security import ResetMailer, ensure_admin_user, log_reset_mail
from uploads import AssetStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    mongo_client: Optional[MongoClient] = None,
    send_reset_mail: Optional[ResetMailer] = None,
) -> FastAPI:
    """Build the application. Serve with ``uvicorn main:create_app --factory``."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    db = connect(settings, mongo_client)
    assets = AssetStore(settings.upload_dir, settings.uploads_url, settings.max_upload_bytes)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_indexes(db)
        if settings.admin_username and settings.admin_password:
            ensure_admin_user(db, settings.admin_username, settings.admin_password, email=settings.admin_email)
        logger.info("Coupon catalog API started (env=%s, db=%s)", settings.env, settings.database_name)
        yield
        db.client.close()
        logger.info("Coupon catalog API stopped")

    app = FastAPI(title="Coupon Catalog API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.assets = assets
    app.state.send_reset_mail = send_reset_mail or log_reset_mail
    app.state.catalog = CatalogService(
        db,
        assets,
        store_delete_policy=settings.store_delete_policy,
        max_product_images=settings.max_product_images,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    install_exception_handlers(app, debug=settings.is_development)

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(stores.router, prefix="/api/stores", tags=["stores"])
    app.include_router(products.router, prefix="/api/products", tags=["products"])
    app.include_router(public.router, prefix="/api/public", tags=["public"])
    app.mount(assets.url_prefix, StaticFiles(directory=str(assets.upload_dir)), name="uploads")

    @app.get("/")
    def root():
        return {"message": "Coupon Catalog API"}

    @app.get("/test")
    def test_database(request: Request):
        response = {
            "backend": "Running",
            "database": "Not Available",
            "database_name": settings.database_name,
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            collections = request.app.state.db.list_collection_names()
            response["collections"] = collections[:10]
            response["database"] = "Connected & Working"
            response["connection_status"] = "Connected"
        except Exception as e:
            logger.warning("Database diagnostics failed: %s", e)
            response["database"] = f"Connected but Error: {str(e)[:50]}"
        return response

    return app


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
