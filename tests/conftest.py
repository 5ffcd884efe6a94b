"""
Pytest configuration and fixtures for the lidar catalog test suite.
"""

import json
import shutil
import sys
import tempfile
from pathlib import Path

import pytest

# Ensure repository root is on the Python path
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

SAMPLE_EPSG = 25832
SAMPLE_TILES = [(547, 5724), (548, 5724), (547, 5725), (548, 5725)]
SAMPLE_DATES = {2021: "2021-03-15T10:30:00Z", 2024: "2024-03-27T09:15:00Z"}


def make_feature(
    href,
    xmin,
    ymin,
    size=1000,
    datetime="2024-03-27T09:15:00Z",
    epsg=SAMPLE_EPSG,
    source="data",
):
    """A minimal catalog feature for one tile."""
    xmax, ymax = xmin + size, ymin + size
    properties = {
        "proj:epsg": epsg,
        "proj:bbox": [xmin, ymin, xmax, ymax],
    }
    if datetime is not None:
        properties["datetime"] = datetime
    if source is not None:
        properties["lidar:datetime_source"] = source
    return {
        "type": "Feature",
        "stac_version": "1.0.0",
        "id": Path(href).stem,
        "geometry": None,
        "bbox": [xmin, ymin, 0, xmax, ymax, 100],
        "properties": properties,
        "assets": {"data": {"href": href, "roles": ["data"]}},
    }


def make_document(features):
    return {"type": "FeatureCollection", "features": list(features)}


def sample_href(year, x, y):
    return f"/data/lidar/{year}/3dm_32_{x}_{y}_1_ni_{year}.laz"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def feature_factory():
    return make_feature


@pytest.fixture
def sample_document():
    """Four 1 km tiles, each surveyed in 2021 and 2024 (2024 listed first)."""
    features = []
    for year in (2024, 2021):
        for x, y in SAMPLE_TILES:
            features.append(
                make_feature(sample_href(year, x, y), x * 1000, y * 1000, datetime=SAMPLE_DATES[year])
            )
    return make_document(features)


@pytest.fixture
def sample_catalog(sample_document):
    from services.core.catalog import Catalog

    return Catalog.from_document(sample_document)


@pytest.fixture
def single_survey_document():
    """The 2024 survey only."""
    return make_document(
        make_feature(sample_href(2024, x, y), x * 1000, y * 1000, datetime=SAMPLE_DATES[2024])
        for x, y in SAMPLE_TILES
    )


@pytest.fixture
def sample_vpc(temp_dir, sample_document):
    """The sample document written to a .vpc file."""
    path = temp_dir / "tiles.vpc"
    with open(path, "w") as f:
        json.dump(sample_document, f)
    return path
