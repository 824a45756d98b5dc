from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from catalog import CatalogService, get_catalog, resolve_asset_update
from security import require_admin

router = APIRouter()


# -----------------------------
# Public endpoints
# -----------------------------
@router.get("/public")
def list_public_stores(catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_public_stores()


@router.get("/by-slug/{slug}")
def get_store_by_slug(slug: str, catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_store_by_slug(slug)


# -----------------------------
# Admin endpoints (CRUD)
# -----------------------------
@router.get("", dependencies=[Depends(require_admin)])
def list_stores(catalog: CatalogService = Depends(get_catalog)):
    stores = catalog.get_stores()
    return {"success": True, "count": len(stores), "data": stores}


@router.get("/{store_id}", dependencies=[Depends(require_admin)])
def get_store(store_id: str, catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_store_by_id(store_id)


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def create_store(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    slug: Optional[str] = Form(None),
    top_deal_headline: Optional[str] = Form(None, alias="topDealHeadline"),
    tagline: Optional[str] = Form(None),
    main_url: Optional[str] = Form(None, alias="mainUrl"),
    logo: Optional[UploadFile] = File(None),
    catalog: CatalogService = Depends(get_catalog),
):
    fields = {
        "name": name,
        "description": description,
        "slug": slug,
        "topDealHeadline": top_deal_headline,
        "tagline": tagline,
        "mainUrl": main_url,
    }
    upload = logo if logo is not None and logo.filename else None
    return catalog.create_store(fields, upload)


@router.put("/{store_id}", dependencies=[Depends(require_admin)])
def update_store(
    store_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    slug: Optional[str] = Form(None),
    top_deal_headline: Optional[str] = Form(None, alias="topDealHeadline"),
    tagline: Optional[str] = Form(None),
    main_url: Optional[str] = Form(None, alias="mainUrl"),
    clear_logo: bool = Form(False, alias="clearLogo"),
    logo: Optional[UploadFile] = File(None),
    catalog: CatalogService = Depends(get_catalog),
):
    fields = {
        "name": name,
        "description": description,
        "slug": slug,
        "topDealHeadline": top_deal_headline,
        "tagline": tagline,
        "mainUrl": main_url,
    }
    return catalog.update_store(store_id, fields, resolve_asset_update([logo], clear_logo))


@router.delete("/{store_id}", dependencies=[Depends(require_admin)])
def delete_store(store_id: str, catalog: CatalogService = Depends(get_catalog)):
    return catalog.delete_store(store_id)
