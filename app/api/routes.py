# app/api/routes.py
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
from .. import crud, schemas
from ..db import get_db
from ..exceptions import InvalidInput
from ..ledger import PriceLedger
from ..repository import total_pages
from ..search.engine import SearchEngine, record_view
from ..services import ListingService
from ..tracking import ViewTracker
from ..search.cache import SearchCache
from .deps import get_listing_service, get_search_cache, get_search_engine, get_session_factory

router = APIRouter()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _csv(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _csv_ints(name: str, value: str | None) -> list[int] | None:
    parts = _csv(value)
    if parts is None:
        return None
    try:
        return [int(p) for p in parts]
    except ValueError:
        raise InvalidInput(f"{name} must be a comma-separated list of integers")


def _validation_failed(e: ValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False, include_input=False))


def _require_user(x_user_id: int | None) -> int:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def track_view_task(session_factory, listing_id: int, viewed_at: datetime, viewer_id: int | None,
                    session_id: str | None, ip_address: str | None):
    db = session_factory()
    try:
        record_view(db, listing_id, viewed_at, viewer_id=viewer_id, session_id=session_id, ip_address=ip_address)
    finally:
        db.close()


@router.get("/health")
def health(cache: SearchCache = Depends(get_search_cache)):
    return {"status": "ok", "cache": "up" if cache.healthy() else "down"}


@router.get("/listings", response_model=schemas.SearchResultPage)
def search_listings(
    brand_id: int | None = Query(None),
    model_id: int | None = Query(None),
    category_id: int | None = Query(None),
    min_price: float | None = Query(None),
    max_price: float | None = Query(None),
    min_year: int | None = Query(None),
    max_year: int | None = Query(None),
    min_mileage: int | None = Query(None),
    max_mileage: int | None = Query(None),
    min_rating: float | None = Query(None),
    fuel_type: str | None = Query(None, description="comma-separated"),
    transmission: str | None = Query(None, description="comma-separated"),
    condition_rating: str | None = Query(None, description="comma-separated"),
    city_id: int | None = Query(None),
    province_id: int | None = Query(None),
    region_id: int | None = Query(None),
    latitude: float | None = Query(None),
    longitude: float | None = Query(None),
    radius: float | None = Query(None, description="km"),
    features: str | None = Query(None, description="comma-separated feature ids"),
    financing_available: bool = False,
    trade_in_accepted: bool = False,
    warranty_remaining: bool = False,
    casa_maintained: bool = False,
    seller_verified: bool = False,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "relevance",
    include_images: bool = True,
    include_features: bool = False,
    include_seller: bool = True,
    engine: SearchEngine = Depends(get_search_engine),
):
    try:
        filters = schemas.FilterSpec(
            brand_id=brand_id,
            model_id=model_id,
            category_id=category_id,
            min_price=min_price,
            max_price=max_price,
            min_year=min_year,
            max_year=max_year,
            min_mileage=min_mileage,
            max_mileage=max_mileage,
            min_rating=min_rating,
            fuel_type=_csv(fuel_type),
            transmission=_csv(transmission),
            condition_rating=_csv(condition_rating),
            city_id=city_id,
            province_id=province_id,
            region_id=region_id,
            latitude=latitude,
            longitude=longitude,
            radius=radius,
            features=_csv_ints("features", features),
            financing_available=financing_available,
            trade_in_accepted=trade_in_accepted,
            warranty_remaining=warranty_remaining,
            casa_maintained=casa_maintained,
            seller_verified=seller_verified,
        )
        options = schemas.SearchOptions(
            page=page,
            limit=limit,
            sort_by=sort_by,
            include_images=include_images,
            include_features=include_features,
            include_seller=include_seller,
        )
    except ValidationError as e:
        raise _validation_failed(e)
    return engine.search(filters, options)


@router.get("/listings/featured", response_model=schemas.SearchResultPage)
def featured_listings(limit: int = Query(10, ge=1, le=50), engine: SearchEngine = Depends(get_search_engine)):
    return engine.featured(limit)


@router.get("/brands/{brand_id}/listings", response_model=schemas.SearchResultPage)
def brand_listings(
    brand_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    engine: SearchEngine = Depends(get_search_engine),
):
    return engine.by_brand(brand_id, page, limit)


@router.get("/listings/{listing_id}", response_model=schemas.ListingOut)
def get_listing(
    listing_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    session_id: str | None = Query(None),
    x_user_id: int | None = Header(None),
    engine: SearchEngine = Depends(get_search_engine),
    session_factory=Depends(get_session_factory),
):
    listing = engine.get_by_id(listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    ip_address = request.client.host if request.client else None
    background_tasks.add_task(track_view_task, session_factory, listing_id, _now(), x_user_id, session_id, ip_address)
    return listing


@router.post("/listings", response_model=schemas.ListingOut, status_code=201)
def create_listing(
    payload: schemas.ListingCreate,
    x_user_id: int | None = Header(None),
    service: ListingService = Depends(get_listing_service),
):
    return service.create_listing(payload, _require_user(x_user_id), _now())


@router.patch("/listings/{listing_id}", response_model=schemas.ListingOut)
def update_listing(
    listing_id: int,
    payload: schemas.ListingUpdate,
    x_user_id: int | None = Header(None),
    service: ListingService = Depends(get_listing_service),
):
    return service.update_listing(listing_id, payload, x_user_id, _now())


@router.delete("/listings/{listing_id}")
def delete_listing(listing_id: int, service: ListingService = Depends(get_listing_service)):
    service.soft_delete(listing_id, _now())
    return {"status": "deleted"}


@router.post("/listings/{listing_id}/approve", response_model=schemas.ListingOut)
def approve_listing(
    listing_id: int,
    x_user_id: int | None = Header(None),
    service: ListingService = Depends(get_listing_service),
):
    return service.approve(listing_id, x_user_id, _now())


@router.post("/listings/{listing_id}/reject", response_model=schemas.ListingOut)
def reject_listing(
    listing_id: int,
    payload: schemas.RejectRequest,
    service: ListingService = Depends(get_listing_service),
):
    return service.reject(listing_id, payload.reason, _now())


@router.post("/listings/{listing_id}/suspend", response_model=schemas.ListingOut)
def suspend_listing(listing_id: int, service: ListingService = Depends(get_listing_service)):
    return service.suspend(listing_id, _now())


@router.post("/listings/{listing_id}/sold", response_model=schemas.ListingOut)
def mark_listing_sold(listing_id: int, service: ListingService = Depends(get_listing_service)):
    return service.mark_sold(listing_id, _now())


@router.get("/listings/{listing_id}/price-history", response_model=schemas.PriceHistoryPage)
def price_history(
    listing_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    records, total = PriceLedger(db).history(listing_id, page, limit)
    return schemas.PriceHistoryPage(
        history=[schemas.PriceChangeOut.model_validate(r) for r in records],
        total=total,
        page=page,
        total_pages=total_pages(total, limit),
    )


@router.get("/listings/{listing_id}/price-stats", response_model=schemas.PriceStatistics)
def price_statistics(listing_id: int, db: Session = Depends(get_db)):
    stats = PriceLedger(db).statistics(listing_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return stats


@router.get("/listings/{listing_id}/view-stats", response_model=schemas.ViewStats)
def view_statistics(listing_id: int, days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)):
    if crud.get_listing(db, listing_id, include_inactive=True) is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return ViewTracker(db).stats(listing_id, _now() - timedelta(days=days))
