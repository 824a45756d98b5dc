from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from catalog import CatalogService, get_catalog, resolve_asset_update
from schemas import InteractionRequest
from security import require_admin

router = APIRouter()


# -----------------------------
# Public endpoints
# -----------------------------
@router.get("/top-deals")
def top_deals(limit: int = Query(default=10, ge=1, le=50), catalog: CatalogService = Depends(get_catalog)):
    deals = catalog.get_top_deals(limit)
    return {"success": True, "data": deals, "message": "Top deals fetched successfully"}


@router.get("/stores/{store_id}/products")
def list_store_products(store_id: str, catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_products_by_store(store_id)


@router.post("/{product_id}/interact")
def interact(product_id: str, payload: InteractionRequest, catalog: CatalogService = Depends(get_catalog)):
    product = catalog.interact_product(product_id, payload.action)
    return {"success": True, "message": f"{payload.action} successful", "data": product}


@router.get("/{product_id}")
def get_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_product_by_id(product_id)


# -----------------------------
# Admin endpoints (CRUD)
# -----------------------------
@router.get("", dependencies=[Depends(require_admin)])
def list_products(catalog: CatalogService = Depends(get_catalog)):
    products = catalog.get_products()
    return {"success": True, "count": len(products), "data": products}


@router.post(
    "/stores/{store_id}/products",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_product(
    store_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    discounted_price: Optional[str] = Form(None, alias="discountedPrice"),
    category: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    is_active: Optional[str] = Form(None, alias="isActive"),
    discount_code: Optional[str] = Form(None, alias="discountCode"),
    shop_now_url: Optional[str] = Form(None, alias="shopNowUrl"),
    success_rate: Optional[str] = Form(None, alias="successRate"),
    total_uses: Optional[str] = Form(None, alias="totalUses"),
    today_uses: Optional[str] = Form(None, alias="todayUses"),
    images: Optional[List[UploadFile]] = File(None),
    catalog: CatalogService = Depends(get_catalog),
):
    fields = {
        "name": name,
        "description": description,
        "price": price,
        "discountedPrice": discounted_price,
        "category": category,
        "stock": stock,
        "isActive": is_active,
        "discountCode": discount_code,
        "shopNowUrl": shop_now_url,
        "successRate": success_rate,
        "totalUses": total_uses,
        "todayUses": today_uses,
    }
    uploads = [f for f in images or [] if f.filename]
    return catalog.create_product(store_id, fields, uploads)


@router.put("/{product_id}", dependencies=[Depends(require_admin)])
def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    discounted_price: Optional[str] = Form(None, alias="discountedPrice"),
    category: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    is_active: Optional[str] = Form(None, alias="isActive"),
    discount_code: Optional[str] = Form(None, alias="discountCode"),
    shop_now_url: Optional[str] = Form(None, alias="shopNowUrl"),
    store: Optional[str] = Form(None),
    success_rate: Optional[str] = Form(None, alias="successRate"),
    total_uses: Optional[str] = Form(None, alias="totalUses"),
    today_uses: Optional[str] = Form(None, alias="todayUses"),
    likes: Optional[str] = Form(None),
    dislikes: Optional[str] = Form(None),
    clear_images: bool = Form(False, alias="clearImages"),
    images: Optional[List[UploadFile]] = File(None),
    catalog: CatalogService = Depends(get_catalog),
):
    fields = {
        "name": name,
        "description": description,
        "price": price,
        "discountedPrice": discounted_price,
        "category": category,
        "stock": stock,
        "isActive": is_active,
        "discountCode": discount_code,
        "shopNowUrl": shop_now_url,
        "store": store,
        "successRate": success_rate,
        "totalUses": total_uses,
        "todayUses": today_uses,
        "likes": likes,
        "dislikes": dislikes,
    }
    return catalog.update_product(product_id, fields, resolve_asset_update(images, clear_images))


@router.delete("/{product_id}", dependencies=[Depends(require_admin)])
def delete_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    return catalog.delete_product(product_id)
