"""
Store and product catalog operations.

Every mutation runs inside ``AssetStore.track()`` so files written for a
request are removed again if the request fails, and replaced assets are only
removed once the document write went through.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TypeVar, Union

import pydantic
from bson import ObjectId
from fastapi import Request
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from slugify import slugify as slugify_text

from database import create_document, get_documents, oid_to_str, parse_object_id
from errors import ConflictError, NotFoundError, ValidationError
from schemas import DEFAULT_LOGO, Product, ProductUpdate, Store, StoreUpdate, today_midnight
from uploads import AssetStore, Upload

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=pydantic.BaseModel)

STORE_REQUIRED = ("name", "description")
PRODUCT_REQUIRED = ("name", "description", "price", "stock", "discountCode", "shopNowUrl")
INTERACTIONS = {
    "copy": {"totalUses": 1, "todayUses": 1},
    "shop": {"totalUses": 1, "todayUses": 1},
    "like": {"likes": 1},
    "dislike": {"dislikes": 1},
}
STORE_SUMMARY = {"name": 1, "logo": 1, "slug": 1, "topDealHeadline": 1}
PUBLIC_STORE_SUMMARY = {"name": 1, "slug": 1, "logo": 1}
PUBLIC_PRODUCT_FIELDS = dict.fromkeys(
    (
        "name", "slug", "images", "description", "price", "discountedPrice", "store",
        "category", "todayUses", "lastDailyReset",
    ),
    1,
)


# ----------------------------- Asset updates ------------------------------
@dataclass(frozen=True)
class Keep:
    """Leave the current asset(s) alone."""


@dataclass(frozen=True)
class Clear:
    """Remove the current asset(s)."""


@dataclass(frozen=True)
class Replace:
    files: Sequence[Upload] = field(default_factory=tuple)


AssetUpdate = Union[Keep, Clear, Replace]


def resolve_asset_update(files: Optional[Iterable[Optional[Upload]]], clear: bool = False) -> AssetUpdate:
    uploads = [f for f in (files or []) if f is not None and f.filename]
    if uploads:
        return Replace(tuple(uploads))
    if clear:
        return Clear()
    return Keep()


# -------------------------------- Helpers ---------------------------------
def slugify(text: str) -> str:
    slug = re.sub(r"\s+", "-", text.strip().lower())
    return re.sub(r"[^\w-]+", "", slug)


def product_slug(name: str) -> str:
    return slugify_text(name)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


def _validate(model: Type[M], data: Dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        problems = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err["loc"])
            problems.append(f"{loc}: {err['msg']}" if loc else err["msg"])
        raise ValidationError("Validation failed: " + ", ".join(problems))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CatalogService:
    def __init__(self, db: Database, assets: AssetStore, store_delete_policy: str = "keep", max_product_images: int = 5):
        self.db = db
        self.assets = assets
        self.store_delete_policy = store_delete_policy
        self.max_product_images = max_product_images

    # ------------------------------ Stores --------------------------------
    def get_stores(self) -> List[Dict[str, Any]]:
        return [oid_to_str(s) for s in get_documents(self.db, "store")]

    def get_public_stores(self) -> List[Dict[str, Any]]:
        projection = {"name": 1, "slug": 1, "logo": 1, "tagline": 1}
        return [oid_to_str(s) for s in self.db.store.find({}, projection).sort("name", 1)]

    def get_store_by_id(self, store_id: str) -> Dict[str, Any]:
        store = self.db.store.find_one({"_id": parse_object_id(store_id, "Store")})
        if store is None:
            raise NotFoundError("Store not found")
        return oid_to_str(store)

    def get_store_by_slug(self, slug: str) -> Dict[str, Any]:
        store = self.db.store.find_one({"slug": slug})
        if store is None:
            raise NotFoundError("Store not found")
        return oid_to_str(store)

    def _check_store_conflict(self, name: Optional[str], slug: Optional[str], exclude: Optional[ObjectId] = None):
        clauses = []
        if name is not None:
            clauses.append({"name": name})
        if slug is not None:
            clauses.append({"slug": slug})
        if not clauses:
            return
        query: Dict[str, Any] = {"$or": clauses}
        if exclude is not None:
            query["_id"] = {"$ne": exclude}
        existing = self.db.store.find_one(query, {"name": 1, "slug": 1})
        if existing is not None:
            what = "name" if name is not None and existing.get("name") == name else "slug"
            raise ConflictError(f"Store with this {what} already exists. Please choose a different {what}.")

    def create_store(self, fields: Dict[str, Any], logo: Optional[Upload] = None) -> Dict[str, Any]:
        with self.assets.track() as batch:
            logo_path = batch.save(logo, "logo") if logo is not None else DEFAULT_LOGO
            data = _clean(fields)
            if any(_is_blank(data.get(f)) for f in STORE_REQUIRED):
                raise ValidationError("Please include a name and description for the store")
            slug = data.get("slug")
            data["slug"] = slugify(data["name"] if _is_blank(slug) else slug)
            data["logo"] = logo_path
            store = _validate(Store, data)

            self._check_store_conflict(store.name, store.slug)
            try:
                store_id = create_document(self.db, "store", store)
            except DuplicateKeyError:
                raise ConflictError("Store with this name or slug already exists.")
        logger.info("Created store %s (%s)", store.name, store_id)
        return self.get_store_by_id(store_id)

    def update_store(self, store_id: str, fields: Dict[str, Any], logo: AssetUpdate = Keep()) -> Dict[str, Any]:
        with self.assets.track() as batch:
            new_logo = batch.save(logo.files[0], "logo") if isinstance(logo, Replace) else None
            oid = parse_object_id(store_id, "Store")
            current = self.db.store.find_one({"_id": oid})
            if current is None:
                raise NotFoundError("Store not found")

            data = _clean(fields)
            if _is_blank(data.get("slug")):
                data.pop("slug", None)
            else:
                data["slug"] = slugify(data["slug"])
                if not data["slug"]:
                    raise ValidationError("Validation failed: slug must contain letters or digits")
            changes = _validate(StoreUpdate, data).model_dump(by_alias=True, exclude_unset=True)
            self._check_store_conflict(changes.get("name"), changes.get("slug"), exclude=oid)

            old_logo = current.get("logo") or DEFAULT_LOGO
            if isinstance(logo, Replace):
                changes["logo"] = new_logo
                batch.retire([old_logo])
            elif isinstance(logo, Clear):
                changes["logo"] = DEFAULT_LOGO
                batch.retire([old_logo])

            changes["updatedAt"] = datetime.now(timezone.utc)
            try:
                self.db.store.update_one({"_id": oid}, {"$set": changes})
            except DuplicateKeyError:
                raise ConflictError("Store with this name or slug already exists.")
        logger.info("Updated store %s: %s", store_id, sorted(changes))
        return self.get_store_by_id(store_id)

    def delete_store(self, store_id: str) -> Dict[str, Any]:
        oid = parse_object_id(store_id, "Store")
        store = self.db.store.find_one({"_id": oid})
        if store is None:
            raise NotFoundError("Store not found")

        if self.store_delete_policy == "restrict":
            count = self.db.product.count_documents({"store": oid})
            if count:
                raise ConflictError(f"Store still has {count} product(s). Delete or move them first.")
        elif self.store_delete_policy == "cascade":
            for product in self.db.product.find({"store": oid}, {"images": 1}):
                self.assets.delete_many(product.get("images") or [])
            removed = self.db.product.delete_many({"store": oid}).deleted_count
            logger.info("Cascade removed %d product(s) of store %s", removed, store_id)

        self.assets.delete(store.get("logo") or DEFAULT_LOGO)
        self.db.store.delete_one({"_id": oid})
        logger.info("Deleted store %s (%s)", store.get("name"), store_id)
        return {"message": "Store removed successfully"}

    # ----------------------------- Products -------------------------------
    def _apply_daily_reset(self, product: Dict[str, Any]) -> Dict[str, Any]:
        today = today_midnight()
        last = product.get("lastDailyReset")
        if last is not None and _as_utc(last).date() == today.date():
            return product
        logger.info("Resetting todayUses for product: %s (ID: %s)", product.get("name"), product["_id"])
        self.db.product.update_one(
            {"_id": product["_id"]}, {"$set": {"todayUses": 0, "lastDailyReset": today}}
        )
        product["todayUses"] = 0
        product["lastDailyReset"] = today
        return product

    def _expand(
        self, products: List[Dict[str, Any]], store_fields: Dict[str, int] = STORE_SUMMARY
    ) -> List[Dict[str, Any]]:
        """Reset daily counters and replace each store id with a store summary."""
        store_ids = list({p["store"] for p in products if isinstance(p.get("store"), ObjectId)})
        stores = {}
        if store_ids:
            stores = {s["_id"]: s for s in self.db.store.find({"_id": {"$in": store_ids}}, store_fields)}
        out = []
        for product in products:
            self._apply_daily_reset(product)
            doc = oid_to_str(product)
            # a deleted store leaves a dangling reference behind
            store = stores.get(product.get("store"))
            doc["store"] = oid_to_str(store) if store is not None else None
            out.append(doc)
        return out

    def _require_store(self, store_id: Any, message: str = "Store not found.") -> ObjectId:
        try:
            oid = parse_object_id(store_id, "Store")
        except NotFoundError:
            raise NotFoundError(message)
        if self.db.store.find_one({"_id": oid}, {"_id": 1}) is None:
            raise NotFoundError(message)
        return oid

    def get_products(self) -> List[Dict[str, Any]]:
        return self._expand(get_documents(self.db, "product"))

    def get_public_products(self) -> List[Dict[str, Any]]:
        products = list(self.db.product.find({}, PUBLIC_PRODUCT_FIELDS))
        return self._expand(products, PUBLIC_STORE_SUMMARY)

    def get_products_by_store(self, store_id: str) -> List[Dict[str, Any]]:
        oid = parse_object_id(store_id, "Store")
        products = list(self.db.product.find({"store": oid}))
        if not products:
            self._require_store(oid)
        return self._expand(products)

    def get_product_by_id(self, product_id: str) -> Dict[str, Any]:
        product = self.db.product.find_one({"_id": parse_object_id(product_id, "Product")})
        if product is None:
            raise NotFoundError("Product not found")
        return self._expand([product])[0]

    def get_top_deals(self, limit: int = 10) -> List[Dict[str, Any]]:
        cursor = (
            self.db.product.find({"isActive": True})
            .sort([("totalUses", DESCENDING), ("createdAt", DESCENDING)])
            .limit(limit)
        )
        return self._expand(list(cursor))

    def _check_image_count(self, files: Sequence[Upload]):
        if len(files) > self.max_product_images:
            raise ValidationError(f"A product can have at most {self.max_product_images} images")

    def create_product(self, store_id: str, fields: Dict[str, Any], images: Sequence[Upload] = ()) -> Dict[str, Any]:
        with self.assets.track() as batch:
            self._check_image_count(images)
            paths = batch.save_all(images, "images")
            data = _clean(fields)
            missing = [f for f in PRODUCT_REQUIRED if _is_blank(data.get(f))]
            if missing:
                raise ValidationError(
                    "Please provide name, description, price, stock, discountCode, and shopNowUrl "
                    f"for the product (missing: {', '.join(missing)})."
                )
            store_oid = self._require_store(store_id)
            # optional numbers arrive as "" from HTML forms
            data = {k: v for k, v in data.items() if not _is_blank(v)}
            data.update(images=paths, store=str(store_oid), slug=product_slug(data["name"]))
            product = _validate(Product, data)

            doc = product.model_dump(by_alias=True, exclude_none=True)
            doc["store"] = store_oid
            product_id = create_document(self.db, "product", doc)
        logger.info("Created product %s (%s) for store %s", product.name, product_id, store_id)
        return self.get_product_by_id(product_id)

    def update_product(self, product_id: str, fields: Dict[str, Any], images: AssetUpdate = Keep()) -> Dict[str, Any]:
        with self.assets.track() as batch:
            new_paths: List[str] = []
            if isinstance(images, Replace):
                self._check_image_count(images.files)
                new_paths = batch.save_all(images.files, "images")
            oid = parse_object_id(product_id, "Product")
            current = self.db.product.find_one({"_id": oid})
            if current is None:
                raise NotFoundError("Product not found")

            data = {k: v for k, v in _clean(fields).items() if not _is_blank(v)}
            changes = _validate(ProductUpdate, data).model_dump(by_alias=True, exclude_unset=True)
            if "name" in changes:
                changes["slug"] = product_slug(changes["name"])
            if "store" in changes:
                changes["store"] = self._require_store(changes["store"], "New store not found.")

            old_images = list(current.get("images") or [])
            if isinstance(images, Replace):
                changes["images"] = new_paths
                batch.retire(old_images)
            elif isinstance(images, Clear):
                changes["images"] = []
                batch.retire(old_images)

            changes["updatedAt"] = datetime.now(timezone.utc)
            self.db.product.update_one({"_id": oid}, {"$set": changes})
        logger.info("Updated product %s: %s", product_id, sorted(changes))
        return self.get_product_by_id(product_id)

    def delete_product(self, product_id: str) -> Dict[str, Any]:
        oid = parse_object_id(product_id, "Product")
        product = self.db.product.find_one({"_id": oid})
        if product is None:
            raise NotFoundError("Product not found")
        self.assets.delete_many(product.get("images") or [])
        self.db.product.delete_one({"_id": oid})
        logger.info("Deleted product %s (%s)", product.get("name"), product_id)
        return {"message": "Product removed successfully"}

    def interact_product(self, product_id: str, action: str) -> Dict[str, Any]:
        increments = INTERACTIONS.get(action)
        if increments is None:
            raise ValidationError("Invalid interaction action")
        oid = parse_object_id(product_id, "Product")
        product = self.db.product.find_one({"_id": oid})
        if product is None:
            raise NotFoundError("Product not found")
        self._apply_daily_reset(product)

        product = self.db.product.find_one_and_update(
            {"_id": oid}, {"$inc": increments}, return_document=ReturnDocument.AFTER
        )
        if product is None:
            raise NotFoundError("Product not found")
        likes, dislikes = product.get("likes", 0), product.get("dislikes", 0)
        if action in ("like", "dislike") and likes + dislikes > 0:
            rate = round(likes / (likes + dislikes) * 100)
            self.db.product.update_one({"_id": oid}, {"$set": {"successRate": rate}})
        logger.info("Product %s: %s", product_id, action)
        return self.get_product_by_id(product_id)


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog
