import json
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from app.database.queries.business_queries import BusinessQueries
from app.models.business import BusinessPhoto, BusinessWithRelations, Category, Review
from app.models.schemas import NearbyBusiness
from app.search.filters import ScanFilter
from app.search.geo import km_to_miles, miles_to_km

logger = logging.getLogger(__name__)

# Most recent reviews attached to a hydrated business
REVIEWS_PER_BUSINESS = 10


class BusinessStore:
    """Read-only access to published businesses over the aiomysql pool.

    Store errors are not caught here; the search service turns them into
    SearchBackendError / SearchTimeoutError.
    """

    def __init__(self, db_pool):
        self.db_pool = db_pool

    async def search_businesses(
        self,
        search_term: str,
        location: Optional[str] = None,
        category: Optional[str] = None,
        max_results: int = 20,
        bounds: Optional[Tuple[float, float, float, float]] = None,
    ) -> List[Dict]:
        async with self.db_pool.acquire() as conn:
            rows = await BusinessQueries.search_businesses(
                conn, search_term, location=location, category=category, bounds=bounds, max_results=max_results
            )
        return [{"id": row["id"], "relevance_rank": rank} for rank, row in enumerate(rows)]

    async def get_businesses_by_ids(self, business_ids: List[str]) -> List[BusinessWithRelations]:
        """One round trip per relation, never one per business"""
        ids = list(dict.fromkeys(business_ids))
        if not ids:
            return []

        async with self.db_pool.acquire() as conn:
            rows = await BusinessQueries.get_businesses_by_ids(conn, ids)
            category_rows = await BusinessQueries.get_categories_for(conn, ids)
            photo_rows = await BusinessQueries.get_photos_for(conn, ids)
            review_rows = await BusinessQueries.get_reviews_for(conn, ids)

        categories = defaultdict(list)
        for row in category_rows:
            categories[row["business_id"]].append(Category(id=str(row["id"]), name=row["name"], slug=row["slug"]))

        photos = defaultdict(list)
        for row in photo_rows:
            photos[row["business_id"]].append(BusinessPhoto(
                id=str(row["id"]),
                url=row["url"],
                alt_text=row.get("alt_text"),
                is_primary=bool(row.get("is_primary")),
            ))

        reviews = defaultdict(list)
        for row in review_rows:
            if len(reviews[row["business_id"]]) < REVIEWS_PER_BUSINESS:
                reviews[row["business_id"]].append(Review(
                    id=str(row["id"]),
                    rating=float(row["rating"]),
                    text=row.get("text"),
                    created_at=row.get("created_at"),
                    user_name=row.get("user_name"),
                ))

        businesses = []
        for row in rows:
            business = self._parse_db_row(row, categories[row["id"]], photos[row["id"]], reviews[row["id"]])
            if business:
                businesses.append(business)
        return businesses

    async def get_published_businesses(
        self,
        scan_filter: Optional[ScanFilter] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> List[BusinessWithRelations]:
        conditions, params = self._scan_conditions(scan_filter or ScanFilter())
        async with self.db_pool.acquire() as conn:
            ids = await BusinessQueries.get_published_business_ids(conn, conditions, params, limit, offset)
        logger.debug(f"Published scan matched {len(ids)} businesses")
        by_id = {b.id: b for b in await self.get_businesses_by_ids(ids)}
        return [by_id[i] for i in ids if i in by_id]

    async def get_nearby_businesses(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        limit: int = 20,
    ) -> List[NearbyBusiness]:
        async with self.db_pool.acquire() as conn:
            rows = await BusinessQueries.get_nearby_businesses(
                conn, latitude, longitude, km_to_miles(radius_km), limit
            )
        distances = {row["id"]: float(row["distance_miles"]) for row in rows}
        by_id = {b.id: b for b in await self.get_businesses_by_ids(list(distances))}
        return [
            NearbyBusiness(
                **by_id[i].model_dump(),
                distance_miles=miles,
                distance_km=miles_to_km(miles),
            )
            for i, miles in distances.items()
            if i in by_id
        ]

    async def get_recent_review_counts(
        self,
        since: datetime,
        location: Optional[str] = None,
        limit: int = 500,
    ) -> Dict[str, int]:
        async with self.db_pool.acquire() as conn:
            return await BusinessQueries.get_recent_review_counts(conn, since, location, limit)

    async def get_recent_review_counts_for(self, business_ids: List[str], since: datetime) -> Dict[str, int]:
        """Counts for exactly these businesses, whatever their verification state"""
        ids = list(dict.fromkeys(business_ids))
        if not ids:
            return {}
        async with self.db_pool.acquire() as conn:
            return await BusinessQueries.get_review_counts_for(conn, ids, since)

    async def get_category_by_slug(self, slug: str) -> Optional[Category]:
        async with self.db_pool.acquire() as conn:
            row = await BusinessQueries.get_category_by_slug(conn, slug)
        if not row:
            return None
        return Category(id=str(row["id"]), name=row["name"], slug=row["slug"])

    async def get_zip_coordinates(self, zip_code: str) -> Optional[Tuple[float, float]]:
        async with self.db_pool.acquire() as conn:
            row = await BusinessQueries.get_zip_coordinates(conn, zip_code)
        if not row:
            return None
        return float(row["latitude"]), float(row["longitude"])

    @staticmethod
    def _scan_conditions(scan_filter: ScanFilter) -> Tuple[List[str], List]:
        """SQL for the store-side part of the filter pipeline"""
        conditions, params = [], []

        if scan_filter.verified is not None:
            conditions.append("b.verified = %s")
            params.append(scan_filter.verified)
        if scan_filter.featured is not None:
            conditions.append("b.featured = %s")
            params.append(scan_filter.featured)
        if scan_filter.min_rating is not None:
            conditions.append("b.rating >= %s")
            params.append(scan_filter.min_rating)
        if scan_filter.price_tiers:
            conditions.append(f"b.price_tier IN ({','.join(['%s'] * len(scan_filter.price_tiers))})")
            params.extend(scan_filter.price_tiers)
        if scan_filter.category_slug:
            conditions.append(
                "EXISTS (SELECT 1 FROM business_categories bc JOIN categories c ON c.id = bc.category_id"
                " WHERE bc.business_id = b.id AND c.slug = %s)"
            )
            params.append(scan_filter.category_slug)
        if scan_filter.bounds is not None:
            north, south, east, west = scan_filter.bounds
            conditions.append("b.latitude BETWEEN %s AND %s")
            params.extend([south, north])
            if west <= east:
                conditions.append("b.longitude BETWEEN %s AND %s")
                params.extend([west, east])
            else:
                conditions.append("(b.longitude >= %s OR b.longitude <= %s)")
                params.extend([west, east])
        if scan_filter.location_text:
            like = f"%{scan_filter.location_text}%"
            conditions.append("(b.city LIKE %s OR b.state LIKE %s OR b.address LIKE %s OR b.zip LIKE %s)")
            params.extend([like, like, like, like])
        if scan_filter.name_text:
            conditions.append("b.name LIKE %s")
            params.append(f"%{scan_filter.name_text}%")

        return conditions, params

    def _parse_db_row(self, row: Dict, categories, photos, reviews) -> Optional[BusinessWithRelations]:
        """Parse database row to BusinessWithRelations"""
        try:
            hours = row.get("hours") or {}
            if isinstance(hours, (str, bytes)):
                hours = json.loads(hours)

            mapped_data = {
                "id": str(row["id"]),
                "name": (row.get("name") or "").strip(),
                "description": (row.get("description") or "").strip(),
                "status": row.get("status") or "draft",
                "location": {
                    "address": row.get("address"),
                    "city": row.get("city"),
                    "state": row.get("state"),
                    "zip": row.get("zip"),
                    "latitude": row.get("latitude"),
                    "longitude": row.get("longitude"),
                },
                "rating": float(row.get("rating") or 0),
                "review_count": int(row.get("review_count") or 0),
                "categories": categories,
                "price_tier": row.get("price_tier"),
                "hours": hours,
                "verified": bool(row.get("verified")),
                "featured": bool(row.get("featured")),
                "sponsored": bool(row.get("sponsored")),
                "photos": [photo.url for photo in photos],
                "photo_details": photos,
                "reviews": reviews,
                "service_area_radius": row.get("service_area_radius"),
                "created_at": row.get("created_at"),
                "timezone": row.get("timezone"),
            }

            return BusinessWithRelations(**mapped_data)

        except Exception as e:
            logger.warning(f"Failed to parse business row {row.get('id')}: {e}")
            return None
