# app/repository.py
"""Executes compiled search plans and assembles enriched listing results."""
import math
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func, inspect, true
from sqlalchemy.orm import Session

from .models import Feature, Listing, ListingFeature, ListingImage, Seller
from .schemas import FeatureOut, ImageOut, ListingOut, SearchOptions, SearchResultPage, SellerOut
from .search.compiler import CompiledQuery
from .search.render import distance_expression, render_order_by, render_where

READY = "ready"


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def _columns(listing: Listing) -> dict:
    return {attr.key: getattr(listing, attr.key) for attr in inspect(listing).mapper.column_attrs}


class ListingRepository:
    def __init__(self, db: Session):
        self.db = db

    def search(self, compiled: CompiledQuery, page: int, limit: int) -> Tuple[List[Tuple[Listing, Optional[float]]], int]:
        """Return one page of (listing, distance) rows and the exact total match count."""
        where = render_where(compiled)

        counted = func.count(func.distinct(Listing.id)) if compiled.grouping_required else func.count(Listing.id)
        total = self.db.scalar(select(counted).select_from(Listing).where(*where)) or 0

        distance = distance_expression(compiled)
        if distance is not None:
            label = distance.label("distance")
            stmt = select(Listing, label)
        else:
            label = None
            stmt = select(Listing)
        stmt = (
            stmt.where(*where)
            .order_by(*render_order_by(compiled, label))
            .limit(limit)
            .offset((page - 1) * limit)
        )
        if label is not None:
            rows = [(row[0], row[1]) for row in self.db.execute(stmt)]
        else:
            rows = [(listing, None) for listing in self.db.scalars(stmt)]
        return rows, total

    def page(self, compiled: CompiledQuery, options: SearchOptions) -> SearchResultPage:
        rows, total = self.search(compiled, options.page, options.limit)
        return SearchResultPage(
            listings=self.enrich(rows, options.include_images, options.include_features, options.include_seller),
            total=total,
            page=options.page,
            limit=options.limit,
            total_pages=total_pages(total, options.limit),
        )

    def enrich(self, rows: Iterable[Tuple[Listing, Optional[float]]], include_images: bool = True,
               include_features: bool = False, include_seller: bool = True) -> List[ListingOut]:
        rows = list(rows)
        ids = [listing.id for listing, _ in rows]
        images = self.images_for(ids) if include_images else {}
        features = self.features_for(ids) if include_features else {}
        sellers = self.sellers_for({listing.seller_id for listing, _ in rows}) if include_seller else {}

        results = []
        for listing, distance in rows:
            data = _columns(listing)
            data["distance"] = distance
            data["images"] = images.get(listing.id, [])
            data["features"] = features.get(listing.id, [])
            data["seller"] = sellers.get(listing.seller_id)
            results.append(ListingOut.model_validate(data))
        return results

    def get_with_details(self, listing_id: int) -> Optional[ListingOut]:
        listing = self.db.scalar(
            select(Listing).where(Listing.id == listing_id, Listing.is_active == true())
        )
        if listing is None:
            return None
        return self.enrich([(listing, None)], include_images=True, include_features=True, include_seller=True)[0]

    def images_for(self, listing_ids: List[int]) -> Dict[int, List[ImageOut]]:
        grouped = defaultdict(list)
        if not listing_ids:
            return grouped
        stmt = (
            select(ListingImage)
            .where(ListingImage.listing_id.in_(listing_ids), ListingImage.processing_status == READY)
            .order_by(ListingImage.is_primary.desc(), ListingImage.display_order.asc(),
                      ListingImage.created_at.asc(), ListingImage.id.asc())
        )
        for image in self.db.scalars(stmt):
            grouped[image.listing_id].append(ImageOut.model_validate(image))
        return grouped

    def features_for(self, listing_ids: List[int]) -> Dict[int, List[FeatureOut]]:
        grouped = defaultdict(list)
        if not listing_ids:
            return grouped
        stmt = (
            select(ListingFeature.listing_id, Feature)
            .join(Feature, Feature.id == ListingFeature.feature_id)
            .where(ListingFeature.listing_id.in_(listing_ids))
            .order_by(Feature.category, Feature.name)
        )
        for listing_id, feature in self.db.execute(stmt):
            grouped[listing_id].append(FeatureOut.model_validate(feature))
        return grouped

    def sellers_for(self, seller_ids: Iterable[int]) -> Dict[int, SellerOut]:
        seller_ids = list(seller_ids)
        if not seller_ids:
            return {}
        sellers = self.db.scalars(select(Seller).where(Seller.id.in_(seller_ids)))
        return {
            s.id: SellerOut(
                id=s.id,
                name=" ".join(part for part in (s.first_name, s.last_name) if part),
                rating=s.average_rating or 0,
                verified=bool(s.identity_verified),
            )
            for s in sellers
        }
