from fastapi import APIRouter, Depends

from catalog import CatalogService, get_catalog

router = APIRouter()


@router.get("/products")
def list_public_products(catalog: CatalogService = Depends(get_catalog)):
    products = catalog.get_public_products()
    return {"success": True, "count": len(products), "data": products}
