from datetime import datetime, timezone

import pytest

from app.core.exceptions import InvalidCoordinate, InvalidQueryError
from app.models.schemas import BoundingBox, GeoPoint, SearchFilters, SearchQuery
from app.search import geo
from app.search.filters import FilterContext, FilterPipeline, normalize_text
from app.search.location import ResolvedLocation, resolve_offline
from conftest import SF, make_business, north_of

MONDAY_NOON = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def pipeline():
    return FilterPipeline(default_radius_miles=35.0, default_timezone="UTC")


def ids(businesses):
    return [b.id for b in businesses]


def test_only_published_businesses_pass(pipeline):
    businesses = [
        make_business("a"),
        make_business("b", status="draft"),
        make_business("c", status="suspended"),
    ]
    assert ids(pipeline.apply(businesses, SearchQuery())) == ["a"]


def test_empty_query_is_pass_through(pipeline):
    businesses = [make_business(str(i)) for i in range(5)]
    assert ids(pipeline.apply(businesses, SearchQuery())) == ids(businesses)


def test_rating_is_at_least_threshold(pipeline):
    businesses = [make_business("a", rating=4.0), make_business("b", rating=3.99), make_business("c", rating=5.0)]
    query = SearchQuery(filters={"minRating": 4})
    assert ids(pipeline.apply(businesses, query)) == ["a", "c"]


def test_multiple_checked_thresholds_use_the_lowest(pipeline):
    businesses = [make_business("a", rating=3.2), make_business("b", rating=2.5), make_business("c", rating=4.8)]
    query = SearchQuery(filters={"minRating": [4, 3]})
    assert query.filters.min_rating == 3
    assert ids(pipeline.apply(businesses, query)) == ["a", "c"]


def test_price_tiers(pipeline):
    businesses = [make_business("a", price_tier=1), make_business("b", price_tier=3), make_business("c", price_tier=None)]
    query = SearchQuery(filters={"priceTiers": [1, 2]})
    assert ids(pipeline.apply(businesses, query)) == ["a"]


def test_verified_and_featured_flags(pipeline):
    businesses = [
        make_business("a", verified=True, featured=True),
        make_business("b", verified=False, featured=True),
        make_business("c", verified=True, featured=False),
    ]
    query = SearchQuery(filters=SearchFilters(verified=True, featured=True))
    assert ids(pipeline.apply(businesses, query)) == ["a"]


def test_open_now(pipeline):
    businesses = [
        make_business("open", hours={"monday": {"open": "09:00", "close": "17:00"}}),
        make_business("closed", hours={"monday": "closed"}),
        make_business("no-hours"),
    ]
    query = SearchQuery(filters={"openNow": True})
    context = FilterContext(now=MONDAY_NOON)
    assert ids(pipeline.apply(businesses, query, context)) == ["open"]


def test_category(pipeline):
    businesses = [make_business("a", categories=["pizza"]), make_business("b", categories=["plumbing"])]
    assert ids(pipeline.apply(businesses, SearchQuery(categorySlug="Pizza"))) == ["a"]


def test_free_text_fallback_matches_normalized_name(pipeline):
    businesses = [
        make_business("a", name="Joe's Pizza!"),
        make_business("b", name="Pizza-Palace"),
        make_business("c", name="Burger Barn"),
    ]
    assert ids(pipeline.apply(businesses, SearchQuery(freeText="JOES pizza"))) == ["a"]
    assert normalize_text("  Joe's   Pizza! ") == "joes pizza"


def test_free_text_is_skipped_after_backend_search(pipeline):
    businesses = [make_business("a", name="Burger Barn")]
    context = FilterContext(text_prefiltered=True)
    assert ids(pipeline.apply(businesses, SearchQuery(freeText="pizza"), context)) == ["a"]


def test_radius_filter_boundary(pipeline):
    near = make_business("near", *north_of(SF, 5))
    edge = make_business("edge", *north_of(SF, 10))
    far = make_business("far", *north_of(SF, 10.001))
    radius = geo.distance(*SF, edge.location.latitude, edge.location.longitude)
    query = SearchQuery(location=GeoPoint(lat=SF[0], lng=SF[1], radius_miles=radius))
    assert ids(pipeline.apply([near, edge, far], query)) == ["near", "edge"]


def test_point_without_radius_uses_default(pipeline):
    inside = make_business("inside", *north_of(SF, 34))
    outside = make_business("outside", *north_of(SF, 36))
    query = SearchQuery(location={"lat": SF[0], "lng": SF[1]})
    assert ids(pipeline.apply([inside, outside], query)) == ["inside"]


def test_businesses_without_coordinates_fail_geo_filter(pipeline):
    nowhere = make_business("nowhere", location={"city": "San Francisco"})
    query = SearchQuery(location=GeoPoint(lat=SF[0], lng=SF[1]))
    assert pipeline.apply([nowhere], query) == []


def test_bounding_box(pipeline):
    inside = make_business("inside", 37.5, -122.0)
    outside = make_business("outside", 38.5, -122.0)
    query = SearchQuery(location={"north": 38.0, "south": 37.0, "east": -121.0, "west": -123.0})
    assert isinstance(query.location, BoundingBox)
    assert ids(pipeline.apply([inside, outside], query)) == ["inside"]


def test_bounding_box_across_antimeridian(pipeline):
    fiji = make_business("fiji", -17.7, 178.0)
    samoa = make_business("samoa", -13.8, -172.0)
    perth = make_business("perth", -31.9, 115.8)
    query = SearchQuery(location={"north": 0.0, "south": -20.0, "east": -170.0, "west": 170.0})
    assert ids(pipeline.apply([fiji, samoa, perth], query)) == ["fiji", "samoa"]


def test_malformed_bounding_box_raises(pipeline):
    query = SearchQuery(location={"north": 37.0, "south": 38.0, "east": -121.0, "west": -123.0})
    with pytest.raises(InvalidQueryError):
        pipeline.apply([make_business("a")], query)


def test_negative_radius_raises(pipeline):
    query = SearchQuery(location=GeoPoint(lat=SF[0], lng=SF[1], radius_miles=-5))
    with pytest.raises(InvalidQueryError):
        pipeline.apply([make_business("a")], query)


def test_out_of_range_point_raises(pipeline):
    query = SearchQuery(location=GeoPoint(lat=123.0, lng=0.0))
    with pytest.raises(InvalidCoordinate):
        pipeline.apply([make_business("a")], query)


@pytest.mark.parametrize("filters", [{"minRating": 6}, {"priceTiers": [0]}, {"priceTiers": [5]}])
def test_out_of_range_filter_values_raise(pipeline, filters):
    with pytest.raises(InvalidQueryError):
        pipeline.apply([make_business("a")], SearchQuery(filters=filters))


def test_text_location_matches_address_fields(pipeline):
    businesses = [
        make_business("sf"),
        make_business("oak", location={"city": "Oakland", "state": "CA", "zip": "94607"}),
    ]
    assert ids(pipeline.apply(businesses, SearchQuery(location="oakland"))) == ["oak"]
    assert ids(pipeline.apply(businesses, SearchQuery(location="CA"))) == ["sf", "oak"]


def test_lat_lng_text_is_a_point(pipeline):
    near = make_business("near", *north_of(SF, 1))
    far = make_business("far", *north_of(SF, 50))
    assert ids(pipeline.apply([near, far], SearchQuery(location="37.77, -122.41"))) == ["near"]


def test_filters_are_conjunctive(pipeline):
    businesses = [
        make_business("all", rating=4.5, price_tier=1, hours={"monday": {"open": "00:00", "close": "23:59"}}),
        make_business("cheap-low", rating=3.0, price_tier=1, hours={"monday": {"open": "00:00", "close": "23:59"}}),
        make_business("pricey", rating=4.5, price_tier=4, hours={"monday": {"open": "00:00", "close": "23:59"}}),
        make_business("shut", rating=4.5, price_tier=1, hours={"monday": "closed"}),
        make_business("far", *north_of(SF, 100), rating=4.5, price_tier=1,
                      hours={"monday": {"open": "00:00", "close": "23:59"}}),
    ]
    query = SearchQuery(
        location=GeoPoint(lat=SF[0], lng=SF[1], radius_miles=20),
        filters={"minRating": 4, "priceTiers": [1], "openNow": True},
    )
    location = resolve_offline(query.location, 35.0)
    result = ids(pipeline.apply(businesses, query, FilterContext(location=location, now=MONDAY_NOON)))

    predicates = pipeline.predicates(query, FilterContext(location=location, now=MONDAY_NOON))
    expected = [b.id for b in businesses if all(p(b) for _, p in predicates)]
    assert result == expected == ["all"]


def test_predicate_order_is_fixed(pipeline):
    query = SearchQuery(
        freeText="pizza",
        location="oakland",
        categorySlug="pizza",
        filters={"minRating": 4, "openNow": True, "priceTiers": [1], "verified": True, "featured": False},
    )
    names = [name for name, _ in pipeline.predicates(query)]
    assert names == ["status", "verified", "featured", "rating", "open_now", "price_tier", "category", "free_text", "geo"]


def test_scan_filter_mirrors_pipeline(pipeline):
    query = SearchQuery(
        freeText="Pizza",
        categorySlug="pizza",
        filters={"minRating": 4, "priceTiers": [2, 1], "verified": True},
    )
    context = FilterContext(location=ResolvedLocation(point=SF, radius_miles=10))
    scan = pipeline.to_scan_filter(query, context)

    assert scan.min_rating == 4
    assert scan.price_tiers == [1, 2]
    assert scan.verified is True
    assert scan.category_slug == "pizza"
    assert scan.name_text == "pizza"
    north, south, east, west = scan.bounds
    assert south < SF[0] < north and west < SF[1] < east
