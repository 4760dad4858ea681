from fastapi import APIRouter, Depends, Query

from pdv.core.errors import PdvError

from .deps import get_terminal, http_error

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/search")
def search(q: str = Query(..., min_length=1), limit: int = Query(20, ge=1, le=100), t=Depends(get_terminal)):
    return [p.model_dump(mode="json") for p in t.search_products(q, limit)]


@router.post("/cache/refresh")
def refresh_cache(t=Depends(get_terminal)):
    try:
        return {"products": t.products.refresh(t.store)}
    except PdvError as exc:
        raise http_error(exc)
