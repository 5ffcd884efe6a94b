"""
Tests for reference dates, STAC export, extents, config and reporting.
"""

import json
from datetime import datetime, timezone

import pytest

from services.core.catalog import Catalog, DatetimeSource
from services.core.extent import reference_year, spatial_extent, temporal_extent
from services.data.reference_dates import assign_reference_dates, load_reference_dates
from services.data.stac_export import export_stac_collection
from services.utils.config import CATALOG_PARAMS, load_params, load_params_from_env
from services.visualization.summary_reporter import SummaryReporter


def _write_csv(path, text):
    path.write_text(text)
    return path


class TestReferenceDates:
    """Test the reference date table."""

    def test_load(self, temp_dir):
        path = _write_csv(temp_dir / "dates.csv", "minx,miny,date\n547,5724,2023-04-01\n547,5724,2019-05-02\n")
        table = load_reference_dates(path)
        assert [d.year for d in table[(547000.0, 5724000.0)]] == [2019, 2023]

    @pytest.mark.parametrize(
        "content", ["x,y,date\n1,2,2020-01-01\n", "minx,miny,date\n547,5724,yesterday\n", "minx,miny,date\n,5724,2020-01-01\n"]
    )
    def test_malformed(self, temp_dir, content):
        with pytest.raises(ValueError):
            load_reference_dates(_write_csv(temp_dir / "bad.csv", content))

    def test_assign(self, temp_dir, feature_factory):
        catalog = Catalog.from_document(
            {
                "type": "FeatureCollection",
                "features": [
                    feature_factory("/t/a.laz", 547000, 5724000, datetime="2024-01-10T00:00:00Z", source="header"),
                    feature_factory("/t/b.laz", 548000, 5724000, datetime="2024-01-10T00:00:00Z", source="header"),
                    feature_factory("/t/c.laz", 547000, 5724000, datetime="2018-01-10T00:00:00Z", source="data"),
                ],
            }
        )
        csv_path = _write_csv(
            temp_dir / "dates.csv",
            "minx,miny,date\n547,5724,2019-05-02\n547,5724,2023-04-01\n547,5724,2024-06-01\n",
        )

        updated = assign_reference_dates(catalog, csv_path)

        a, b, c = updated.entries
        assert a.datetime == datetime(2023, 4, 1, tzinfo=timezone.utc)
        assert a.datetime_source == DatetimeSource.CSV
        assert b.datetime_source == DatetimeSource.HEADER
        assert c.datetime.year == 2018

    def test_none_passes_through(self, temp_dir):
        assert assign_reference_dates(None, temp_dir / "unused.csv") is None


class TestExtent:
    """Test spatial and temporal extents."""

    def test_spatial_combined(self, sample_catalog):
        assert spatial_extent(sample_catalog, per_file=False) == [
            {"xmin": 547000.0, "ymin": 5724000.0, "xmax": 549000.0, "ymax": 5726000.0}
        ]

    def test_spatial_geodataframe(self, sample_catalog):
        frame = spatial_extent(sample_catalog, as_geodataframe=True)
        assert len(frame) == 8
        assert frame.crs.to_epsg() == 25832

    def test_temporal(self, sample_catalog):
        assert temporal_extent(sample_catalog, per_file=False) == [
            {"start": "2021-03-15T10:30:00Z", "end": "2024-03-27T09:15:00Z"}
        ]
        rows = temporal_extent(sample_catalog, as_reference_year=True)
        assert {r["date"] for r in rows} == {2021, 2024}
        assert rows[0]["from"] == "data"

    def test_reference_year(self):
        assert reference_year(datetime(2014, 12, 3)) == 2015
        assert reference_year(datetime(2014, 11, 30)) == 2015
        assert reference_year(datetime(2014, 10, 31)) == 2014


class TestStacExport:
    """Test the static STAC collection."""

    def test_export(self, temp_dir, sample_catalog):
        path = export_stac_collection(sample_catalog, temp_dir / "stac", collection_id="tiles")
        with open(path) as f:
            collection = json.load(f)
        assert collection["id"] == "tiles"
        assert collection["type"] == "Collection"
        item_links = [link for link in collection["links"] if link["rel"] == "item"]
        assert len(item_links) == 8
        west, south, east, north = collection["extent"]["spatial"]["bbox"][0]
        assert 9 < west < east < 10 and 51 < south < north < 52

    def test_nothing_to_export(self, temp_dir, feature_factory):
        catalog = Catalog.from_document(
            {"type": "FeatureCollection", "features": [feature_factory("/t/a.laz", 0, 0, datetime=None)]}
        )
        assert export_stac_collection(catalog, temp_dir / "stac") is None


class TestConfig:
    """Test parameter loading."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LIDAR_CATALOG_TOLERANCE", raising=False)
        assert load_params()["tolerance"] == CATALOG_PARAMS["tolerance"]

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LIDAR_CATALOG_TOLERANCE", "5")
        monkeypatch.setenv("LIDAR_CATALOG_ENTIRE_TILES_ONLY", "false")
        params = load_params()
        assert params["tolerance"] == 5
        assert params["entire_tiles_only"] is False
        assert load_params(tolerance=2)["tolerance"] == 2

    def test_invalid_environment_value(self, monkeypatch):
        monkeypatch.setenv("LIDAR_CATALOG_CELL_SIZE", "large")
        with pytest.raises(ValueError):
            load_params_from_env()

    def test_unknown_override(self):
        with pytest.raises(ValueError):
            load_params(colour="red")


class TestSummaryReporter:
    """Test the JSON catalog report."""

    def test_report(self, temp_dir, sample_catalog):
        path = SummaryReporter(temp_dir).create_summary_report(sample_catalog)
        with open(path) as f:
            report = json.load(f)
        assert report["entries"] == 8
        assert report["tiling"]["valid_tiles"] == 8
        assert report["multitemporal"]["multitemporal_tiles"] == 4
        assert report["multitemporal"]["observations_histogram"] == {"2": 4}
        assert report["datetime_sources"] == {"data": 8}
