"""
Tests for multi-temporal classification and temporal selection.
"""

from unittest.mock import patch

import pytest

from services.core.catalog import Catalog
from services.core.multitemporal import TileKey, classify, multitemporal_table
from services.core.selection import (
    filter_first,
    filter_latest,
    filter_multitemporal,
    select_by_count,
    select_first,
    select_latest,
    select_nth,
)


def _catalog(features):
    return Catalog.from_document({"type": "FeatureCollection", "features": list(features)})


class TestClassify:
    """Test grouping entries by tile."""

    def test_groups_two_surveys(self, sample_catalog):
        groups = classify(sample_catalog)
        assert [g.tile for g in groups] == [
            TileKey(547, 5724), TileKey(547, 5725), TileKey(548, 5724), TileKey(548, 5725)
        ]
        assert all(g.observations == 2 and g.is_multitemporal for g in groups)
        # sorted by acquisition datetime within each tile
        assert [e.datetime.year for e in groups[0].entries] == [2021, 2024]

    def test_tile_label(self):
        assert TileKey(547, 5724).label == "547_5724"

    def test_mixed_crs_is_fatal(self, feature_factory):
        catalog = _catalog(
            [
                feature_factory("/t/a.laz", 547000, 5724000, epsg=25832),
                feature_factory("/t/b.laz", 347000, 5724000, epsg=25833),
            ]
        )
        with pytest.raises(ValueError, match="25832, 25833"):
            classify(catalog)

    def test_partial_tiles(self, feature_factory):
        catalog = _catalog(
            [
                feature_factory("/t/full.laz", 547000, 5724000),
                feature_factory("/t/part.laz", 547000, 5724000, size=400),
            ]
        )
        assert len(classify(catalog, entire_tiles_only=True)[0].entries) == 1
        groups = classify(catalog, entire_tiles_only=False)
        assert groups[0].observations == 2

    def test_snapping_groups_slightly_offset_tiles(self, feature_factory):
        shifted = feature_factory("/t/b.laz", 547000, 5724000)
        shifted["properties"]["proj:bbox"] = [547000.4, 5723999.7, 548000.2, 5725000.0]
        catalog = _catalog([feature_factory("/t/a.laz", 547000, 5724000), shifted])
        assert classify(catalog, tolerance=1)[0].observations == 2
        assert classify(catalog, tolerance=0)[0].observations == 1

    def test_equal_datetimes_break_ties_by_href(self, feature_factory):
        catalog = _catalog(
            [
                feature_factory("/t/z.laz", 547000, 5724000, datetime="2024-01-01T00:00:00Z"),
                feature_factory("/t/a.laz", 547000, 5724000, datetime="2024-01-01T00:00:00Z"),
            ]
        )
        assert [e.filename for e in classify(catalog)[0].entries] == ["a.laz", "z.laz"]

    def test_entries_without_datetime_are_excluded(self, feature_factory):
        catalog = _catalog(
            [
                feature_factory("/t/a.laz", 547000, 5724000),
                feature_factory("/t/b.laz", 547000, 5724000, datetime=None),
            ]
        )
        assert classify(catalog)[0].observations == 1

    def test_none_passes_through(self):
        assert classify(None) is None


class TestMultitemporalTable:
    """Test the per-entry table."""

    def test_rows(self, sample_catalog):
        rows = multitemporal_table(classify(sample_catalog))
        assert len(rows) == 8
        assert rows[0] == {
            "filename": "3dm_32_547_5724_1_ni_2021.laz",
            "tile": "547_5724",
            "datetime": "2021-03-15T10:30:00Z",
            "multitemporal": True,
            "observations": 2,
        }

    def test_multitemporal_only(self, sample_catalog, feature_factory):
        extra = feature_factory("/t/single.laz", 600000, 5800000)
        catalog = _catalog([e.to_feature() for e in sample_catalog] + [extra])
        rows = multitemporal_table(classify(catalog), multitemporal_only=True)
        assert "single.laz" not in [r["filename"] for r in rows]


class TestSelection:
    """Test selecting acquisitions per tile."""

    def test_first_and_latest(self, sample_catalog):
        groups = classify(sample_catalog)
        assert {e.datetime.year for e in select_first(groups)} == {2021}
        assert {e.datetime.year for e in select_latest(groups)} == {2024}
        assert len(select_first(groups)) == 4

    def test_nth(self, sample_catalog):
        groups = classify(sample_catalog)
        assert {e.datetime.year for e in select_nth(groups, 2)} == {2024}
        assert {e.datetime.year for e in select_nth(groups, -2)} == {2021}
        assert select_nth(groups, 3) is None

    def test_rank_zero(self, sample_catalog):
        with pytest.raises(ValueError):
            select_nth(classify(sample_catalog), 0)

    def test_by_count(self, sample_catalog, feature_factory):
        extra = feature_factory("/t/single.laz", 600000, 5800000)
        groups = classify(_catalog([e.to_feature() for e in sample_catalog] + [extra]))
        assert len(select_by_count(groups)) == 8
        assert select_by_count(groups, 1).hrefs == ["/t/single.laz"]
        assert select_by_count(groups, 3) is None

    def test_empty_groups(self):
        assert select_first([]) is None
        assert select_by_count(None) is None


class TestFilterChain:
    """Test the resolve, classify and select wrappers."""

    def test_filter_first_preserves_catalog_order(self, sample_document):
        result = filter_first(sample_document)
        # 2024 entries come first in the document, 2021 ones are selected
        assert [e.datetime.year for e in result] == [2021] * 4
        assert result.hrefs == [f["assets"]["data"]["href"] for f in sample_document["features"][4:]]

    def test_filter_latest(self, sample_vpc):
        result = filter_latest(sample_vpc, verbose=False)
        assert {e.datetime.year for e in result} == {2024}

    def test_filter_multitemporal(self, sample_document, single_survey_document):
        assert len(filter_multitemporal(sample_document)) == 8
        assert filter_multitemporal(single_survey_document) is None
        assert len(filter_multitemporal(single_survey_document, n=1)) == 4

    def test_multitemporal_only(self, sample_document, feature_factory):
        sample_document["features"].append(feature_factory("/t/single.laz", 600000, 5800000))
        result = filter_first(sample_document, multitemporal_only=True)
        assert "/t/single.laz" not in result.hrefs
        assert "/t/single.laz" in filter_first(sample_document).hrefs

    def test_no_matching_tiles(self, feature_factory):
        document = {
            "type": "FeatureCollection",
            "features": [feature_factory("/t/part.laz", 547000, 5724000, size=400)],
        }
        assert filter_first(document) is None

    def test_unresolvable_input(self):
        with patch("services.core.selection.resolve", return_value=None):
            assert filter_latest("anything") is None


def test_single_observation_first_equals_latest(single_survey_document):
    groups = classify(Catalog.from_document(single_survey_document))
    assert select_first(groups) == select_latest(groups)
    assert len(select_first(groups)) == 4


def test_count_filters_partition_catalog(sample_document, feature_factory):
    sample_document["features"].append(feature_factory("/t/single.laz", 600000, 5800000))
    groups = classify(Catalog.from_document(sample_document))
    counts = sorted({g.observations for g in groups})
    hrefs = [h for n in counts for h in select_by_count(groups, n).hrefs]
    assert sorted(hrefs) == sorted(f["assets"]["data"]["href"] for f in sample_document["features"])
