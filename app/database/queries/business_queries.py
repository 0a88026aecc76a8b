from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import aiomysql

BUSINESS_COLUMNS = """
    b.id, b.name, b.description, b.status,
    b.address, b.city, b.state, b.zip, b.latitude, b.longitude,
    b.rating, b.review_count, b.price_tier, b.hours,
    b.verified, b.featured, b.sponsored, b.service_area_radius,
    b.timezone, b.created_at
"""

# Great-circle distance in miles from (%s, %s) to the row, same formula as app.search.geo
HAVERSINE_MILES = """
    3959 * 2 * ASIN(SQRT(
        POWER(SIN(RADIANS(b.latitude - %s) / 2), 2)
        + COS(RADIANS(%s)) * COS(RADIANS(b.latitude))
        * POWER(SIN(RADIANS(b.longitude - %s) / 2), 2)
    ))
"""


def _placeholders(values: Sequence) -> str:
    return ','.join(['%s'] * len(values))


class BusinessQueries:
    @staticmethod
    async def search_businesses(
        conn: aiomysql.Connection,
        search_term: str,
        location: Optional[str] = None,
        category: Optional[str] = None,
        bounds: Optional[Tuple[float, float, float, float]] = None,
        max_results: int = 20
    ) -> List[dict]:
        """Full-text search returning ids in relevance order"""
        async with conn.cursor(aiomysql.DictCursor) as cur:
            query = """
                SELECT b.id,
                       MATCH(b.name, b.description) AGAINST (%s IN NATURAL LANGUAGE MODE) AS relevance
                FROM businesses b
                WHERE b.status = 'published'
                  AND MATCH(b.name, b.description) AGAINST (%s IN NATURAL LANGUAGE MODE)
            """
            params = [search_term, search_term]

            if location:
                like = f"%{location}%"
                query += " AND (b.city LIKE %s OR b.state LIKE %s OR b.address LIKE %s OR b.zip LIKE %s)"
                params.extend([like, like, like, like])

            if bounds is not None:
                north, south, east, west = bounds
                query += " AND b.latitude BETWEEN %s AND %s"
                params.extend([south, north])
                if west <= east:
                    query += " AND b.longitude BETWEEN %s AND %s"
                else:
                    query += " AND (b.longitude >= %s OR b.longitude <= %s)"
                params.extend([west, east])

            if category:
                query += """
                  AND EXISTS (
                      SELECT 1 FROM business_categories bc
                      JOIN categories c ON c.id = bc.category_id
                      WHERE bc.business_id = b.id AND c.slug = %s
                  )
                """
                params.append(category)

            query += " ORDER BY relevance DESC, b.id ASC LIMIT %s"
            params.append(max_results)

            await cur.execute(query, params)
            return await cur.fetchall()

    @staticmethod
    async def get_businesses_by_ids(conn: aiomysql.Connection, business_ids: List[str]) -> List[dict]:
        if not business_ids:
            return []
        async with conn.cursor(aiomysql.DictCursor) as cur:
            query = f"SELECT {BUSINESS_COLUMNS} FROM businesses b WHERE b.id IN ({_placeholders(business_ids)})"
            await cur.execute(query, list(business_ids))
            return await cur.fetchall()

    @staticmethod
    async def get_categories_for(conn: aiomysql.Connection, business_ids: List[str]) -> List[dict]:
        if not business_ids:
            return []
        async with conn.cursor(aiomysql.DictCursor) as cur:
            query = f"""
                SELECT bc.business_id, c.id, c.name, c.slug
                FROM business_categories bc
                JOIN categories c ON c.id = bc.category_id
                WHERE bc.business_id IN ({_placeholders(business_ids)})
                ORDER BY bc.business_id, bc.position, c.id
            """
            await cur.execute(query, list(business_ids))
            return await cur.fetchall()

    @staticmethod
    async def get_photos_for(conn: aiomysql.Connection, business_ids: List[str]) -> List[dict]:
        if not business_ids:
            return []
        async with conn.cursor(aiomysql.DictCursor) as cur:
            query = f"""
                SELECT id, business_id, url, alt_text, is_primary
                FROM business_photos
                WHERE business_id IN ({_placeholders(business_ids)})
                ORDER BY business_id, is_primary DESC, position, id
            """
            await cur.execute(query, list(business_ids))
            return await cur.fetchall()

    @staticmethod
    async def get_reviews_for(conn: aiomysql.Connection, business_ids: List[str]) -> List[dict]:
        if not business_ids:
            return []
        async with conn.cursor(aiomysql.DictCursor) as cur:
            query = f"""
                SELECT id, business_id, rating, text, user_name, created_at
                FROM reviews
                WHERE business_id IN ({_placeholders(business_ids)})
                ORDER BY business_id, created_at DESC, id
            """
            await cur.execute(query, list(business_ids))
            return await cur.fetchall()

    @staticmethod
    async def get_published_business_ids(
        conn: aiomysql.Connection,
        conditions: List[str],
        params: List,
        limit: int,
        offset: int = 0
    ) -> List[str]:
        """Ids of published businesses matching extra SQL conditions, default order"""
        async with conn.cursor(aiomysql.DictCursor) as cur:
            query = "SELECT b.id FROM businesses b WHERE b.status = 'published'"
            if conditions:
                query += " AND " + " AND ".join(conditions)
            query += " ORDER BY b.featured DESC, b.rating DESC, b.review_count DESC, b.id ASC LIMIT %s OFFSET %s"
            await cur.execute(query, list(params) + [limit, offset])
            return [row['id'] for row in await cur.fetchall()]

    @staticmethod
    async def get_nearby_businesses(
        conn: aiomysql.Connection,
        latitude: float,
        longitude: float,
        radius_miles: float,
        limit: int
    ) -> List[dict]:
        """Published businesses within radius, nearest first"""
        async with conn.cursor(aiomysql.DictCursor) as cur:
            query = f"""
                SELECT b.id, {HAVERSINE_MILES} AS distance_miles
                FROM businesses b
                WHERE b.status = 'published'
                  AND b.latitude IS NOT NULL AND b.longitude IS NOT NULL
                HAVING distance_miles <= %s
                ORDER BY distance_miles ASC, b.id ASC
                LIMIT %s
            """
            await cur.execute(query, (latitude, latitude, longitude, radius_miles, limit))
            return await cur.fetchall()

    @staticmethod
    async def get_recent_review_counts(
        conn: aiomysql.Connection,
        since: datetime,
        location: Optional[str] = None,
        limit: int = 500
    ) -> Dict[str, int]:
        """Review counts per published, verified business since a point in time"""
        async with conn.cursor(aiomysql.DictCursor) as cur:
            query = """
                SELECT r.business_id, COUNT(*) AS recent_reviews
                FROM reviews r
                JOIN businesses b ON b.id = r.business_id
                WHERE b.status = 'published' AND b.verified = TRUE AND r.created_at >= %s
            """
            params = [since]
            if location:
                like = f"%{location}%"
                query += " AND (b.city LIKE %s OR b.state LIKE %s OR b.address LIKE %s OR b.zip LIKE %s)"
                params.extend([like, like, like, like])
            query += " GROUP BY r.business_id ORDER BY recent_reviews DESC, r.business_id ASC LIMIT %s"
            params.append(limit)
            await cur.execute(query, params)
            return {row['business_id']: int(row['recent_reviews']) for row in await cur.fetchall()}

    @staticmethod
    async def get_review_counts_for(
        conn: aiomysql.Connection,
        business_ids: List[str],
        since: datetime
    ) -> Dict[str, int]:
        """Review counts since a point in time for the given businesses only"""
        if not business_ids:
            return {}
        async with conn.cursor(aiomysql.DictCursor) as cur:
            query = f"""
                SELECT r.business_id, COUNT(*) AS recent_reviews
                FROM reviews r
                WHERE r.business_id IN ({_placeholders(business_ids)}) AND r.created_at >= %s
                GROUP BY r.business_id
            """
            await cur.execute(query, list(business_ids) + [since])
            return {row['business_id']: int(row['recent_reviews']) for row in await cur.fetchall()}

    @staticmethod
    async def get_category_by_slug(conn: aiomysql.Connection, slug: str) -> Optional[dict]:
        async with conn.cursor(aiomysql.DictCursor) as cur:
            await cur.execute("SELECT id, name, slug FROM categories WHERE slug = %s", (slug,))
            return await cur.fetchone()

    @staticmethod
    async def get_zip_coordinates(conn: aiomysql.Connection, zip_code: str) -> Optional[dict]:
        async with conn.cursor(aiomysql.DictCursor) as cur:
            await cur.execute("SELECT latitude, longitude FROM zip_codes WHERE zip = %s", (zip_code,))
            return await cur.fetchone()
