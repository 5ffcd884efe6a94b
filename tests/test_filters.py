"""
Tests for the spatial and temporal filters.
"""

from datetime import date, datetime, timezone

import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import box

from services.core.catalog import Catalog
from services.processing.spatial_filter import filter_spatial, get_intersection, normalize_extent
from services.processing.temporal_filter import (
    expand_period,
    filter_temporal,
    normalize_temporal_range,
    parse_datetime_input,
)


def _two_tiles(feature_factory):
    return Catalog.from_document(
        {
            "type": "FeatureCollection",
            "features": [
                feature_factory("/t/a.laz", 547000, 5724000),
                feature_factory("/t/b.laz", 548000, 5724000),
            ],
        }
    )


class TestSpatialFilter:
    """Test filtering by extent."""

    def test_point_extent(self, feature_factory):
        result = filter_spatial(_two_tiles(feature_factory), (547500, 5724500))
        assert result.hrefs == ["/t/a.laz"]

    def test_bbox_extent_spanning_both(self, feature_factory):
        result = filter_spatial(_two_tiles(feature_factory), [547500, 5724500, 548500, 5724600])
        assert result.hrefs == ["/t/a.laz", "/t/b.laz"]

    def test_shared_boundary_counts(self, feature_factory):
        result = filter_spatial(_two_tiles(feature_factory), (548000, 5724500))
        assert len(result) == 2

    def test_no_match(self, feature_factory):
        assert filter_spatial(_two_tiles(feature_factory), (0, 0)) is None

    def test_geometry_and_geojson(self, feature_factory):
        catalog = _two_tiles(feature_factory)
        polygon = box(548100, 5724100, 548200, 5724200)
        assert filter_spatial(catalog, polygon).hrefs == ["/t/b.laz"]
        geojson = {"type": "Point", "coordinates": [547100, 5724100]}
        assert filter_spatial(catalog, geojson).hrefs == ["/t/a.laz"]

    def test_reprojected_extent(self, feature_factory):
        catalog = _two_tiles(feature_factory)
        frame = gpd.GeoDataFrame(geometry=[box(547400, 5724400, 547600, 5724600)], crs="EPSG:25832")
        frame = frame.to_crs(epsg=4326)
        assert filter_spatial(catalog, frame).hrefs == ["/t/a.laz"]

    def test_numpy_extents(self, feature_factory):
        catalog = _two_tiles(feature_factory)
        assert filter_spatial(catalog, np.array([547500.0, 5724500.0])).hrefs == ["/t/a.laz"]
        bbox = np.array([[547500.0, 5724500.0], [548500.0, 5724600.0]])
        assert len(filter_spatial(catalog, bbox)) == 2

    def test_invalid_extents(self):
        with pytest.raises(ValueError):
            normalize_extent([1, 2, 3])
        with pytest.raises(ValueError):
            normalize_extent([10, 10, 0, 0])
        with pytest.raises(ValueError):
            normalize_extent("somewhere")

    def test_none_passes_through(self):
        assert filter_spatial(None, (0, 0)) is None


class TestIntersection:
    """Test tile intersection between two catalogs."""

    def test_intersects_and_equals(self, feature_factory):
        first = _two_tiles(feature_factory)
        second = Catalog.from_document(
            {
                "type": "FeatureCollection",
                "features": [
                    feature_factory("/u/a.laz", 547000, 5724000),
                    feature_factory("/u/c.laz", 547500, 5725500, size=100),
                ],
            }
        )
        result = get_intersection(first, second)
        assert result == {"first": ["a.laz", "b.laz"], "second": ["a.laz"]}
        equal = get_intersection(first, second, mode="equals", full_names=True)
        assert equal == {"first": ["/t/a.laz"], "second": ["/u/a.laz"]}

    def test_invalid_mode(self, feature_factory):
        with pytest.raises(ValueError):
            get_intersection(_two_tiles(feature_factory), _two_tiles(feature_factory), mode="touches")

    def test_empty_input(self, feature_factory):
        assert get_intersection(None, _two_tiles(feature_factory)) is None


class TestTemporalParsing:
    """Test expansion of truncated datetimes."""

    def test_year(self):
        assert expand_period("2024") == (
            datetime(2024, 1, 1, tzinfo=timezone.utc),
            datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
        )
        assert expand_period(2024) == expand_period("2024")

    def test_month_including_leap_february(self):
        start, end = expand_period("2024-02")
        assert start == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 2, 29, 23, 59, 59, tzinfo=timezone.utc)

    def test_day_and_date(self):
        assert expand_period("2024-03-27") == expand_period(date(2024, 3, 27))
        assert parse_datetime_input("2024-03-27", "end").hour == 23

    def test_full_instant(self):
        start, end = expand_period("2024-03-27T09:15:00Z")
        assert start == end == datetime(2024, 3, 27, 9, 15, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["2024-13", "24", "March 2024", "2024-02-30", 3.5])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            expand_period(value)

    def test_end_before_start(self):
        with pytest.raises(ValueError):
            normalize_temporal_range("2024", "2023")

    def test_range_from_start_only(self):
        start, end = normalize_temporal_range("2024-03")
        assert (start.month, end.month, end.day) == (3, 3, 31)


class TestTemporalFilter:
    """Test filtering by datetime interval."""

    def test_filter_year(self, sample_catalog):
        result = filter_temporal(sample_catalog, "2024")
        assert len(result) == 4
        assert {e.datetime.year for e in result} == {2024}

    def test_inclusive_range(self, sample_catalog):
        result = filter_temporal(sample_catalog, "2021-03-15", "2024-03-27")
        assert len(result) == 8

    def test_no_match(self, sample_catalog):
        assert filter_temporal(sample_catalog, "2022") is None

    def test_missing_datetimes_are_excluded(self, feature_factory):
        catalog = Catalog.from_document(
            {
                "type": "FeatureCollection",
                "features": [
                    feature_factory("/t/a.laz", 0, 0),
                    feature_factory("/t/b.laz", 0, 0, datetime=None),
                ],
            }
        )
        assert filter_temporal(catalog, "2024").hrefs == ["/t/a.laz"]

    def test_fractional_second_at_end_of_year(self, feature_factory):
        catalog = Catalog.from_document(
            {
                "type": "FeatureCollection",
                "features": [feature_factory("/t/a.laz", 0, 0, datetime="2024-12-31T23:59:59.600Z")],
            }
        )
        assert filter_temporal(catalog, "2024").hrefs == ["/t/a.laz"]

    def test_none_passes_through(self):
        assert filter_temporal(None, "2024") is None


def test_year_equals_explicit_range(sample_catalog):
    assert filter_temporal(sample_catalog, "2024") == filter_temporal(
        sample_catalog, "2024-01-01T00:00:00", "2024-12-31T23:59:59"
    )
