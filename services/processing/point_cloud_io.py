#!/usr/bin/env python3
"""
Point Cloud I/O Module

Reads LAS/LAZ/COPC file headers and turns them into catalog (VPC) features:
native bbox, EPSG code, acquisition datetime and storage href. Only headers
and a small sample of GPS timestamps are read, never the full point data.
"""

import logging
import os
from concurrent.futures import ProcessPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

try:
    import laspy
except ImportError:
    print("ERROR: laspy not found. Install with: pip install laspy lazrs")
    raise

from services.core.catalog import DATETIME_SOURCE_KEY, DatetimeSource, format_datetime
from services.processing.coordinate_transformer import CoordinateTransformer

logger = logging.getLogger(__name__)

POINT_CLOUD_EXTENSIONS = (".las", ".laz", ".copc")
GPS_EPOCH = datetime(1980, 1, 6, tzinfo=timezone.utc)
# Adjusted standard GPS time is GPS seconds minus one billion
ADJUSTED_GPS_OFFSET = 1e9
# GPS time runs ahead of UTC by one second per leap second since the epoch
LEAP_SECONDS = [
    datetime(1981, 7, 1, tzinfo=timezone.utc),
    datetime(1982, 7, 1, tzinfo=timezone.utc),
    datetime(1983, 7, 1, tzinfo=timezone.utc),
    datetime(1985, 7, 1, tzinfo=timezone.utc),
    datetime(1988, 1, 1, tzinfo=timezone.utc),
    datetime(1990, 1, 1, tzinfo=timezone.utc),
    datetime(1991, 1, 1, tzinfo=timezone.utc),
    datetime(1992, 7, 1, tzinfo=timezone.utc),
    datetime(1993, 7, 1, tzinfo=timezone.utc),
    datetime(1994, 7, 1, tzinfo=timezone.utc),
    datetime(1996, 1, 1, tzinfo=timezone.utc),
    datetime(1997, 7, 1, tzinfo=timezone.utc),
    datetime(1999, 1, 1, tzinfo=timezone.utc),
    datetime(2006, 1, 1, tzinfo=timezone.utc),
    datetime(2009, 1, 1, tzinfo=timezone.utc),
    datetime(2012, 7, 1, tzinfo=timezone.utc),
    datetime(2015, 7, 1, tzinfo=timezone.utc),
    datetime(2017, 1, 1, tzinfo=timezone.utc),
]
GPS_SAMPLE_SIZE = 10_000

STAC_EXTENSIONS = [
    "https://stac-extensions.github.io/pointcloud/v1.0.0/schema.json",
    "https://stac-extensions.github.io/projection/v1.1.0/schema.json",
]


def is_point_cloud_file(path) -> bool:
    return str(path).lower().endswith(POINT_CLOUD_EXTENSIONS)


def gps_to_utc(gps_seconds: float) -> datetime:
    """Convert seconds since the GPS epoch to a UTC datetime."""
    gps = GPS_EPOCH + timedelta(seconds=gps_seconds)
    offset = sum(1 for leap in LEAP_SECONDS if gps >= leap)
    return gps - timedelta(seconds=offset)


def _tile_id(path: Path) -> str:
    name = path.name
    for suffix in (".copc.laz", ".laz", ".las", ".copc"):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return path.stem


def _polygon(bbox: Sequence[float]) -> Dict[str, Any]:
    xmin, ymin, xmax, ymax = bbox
    return {
        "type": "Polygon",
        "coordinates": [
            [[xmin, ymin], [xmax, ymin], [xmax, ymax], [xmin, ymax], [xmin, ymin]]
        ],
    }


class PointCloudIO:
    """Handles point cloud header reads."""

    @staticmethod
    def read_acquisition_datetime(reader) -> Tuple[Optional[datetime], Optional[DatetimeSource]]:
        """
        Derive the acquisition datetime from an open laspy reader.

        Files encoding adjusted standard GPS time (LAS 1.3+) yield the earliest
        timestamp of the first points. Others fall back to the header creation
        date, which is the processing date rather than the acquisition date.
        """
        header = reader.header
        gps_type = header.global_encoding.gps_time_type
        is_standard_gps = getattr(gps_type, "value", gps_type) == 1
        has_gps = "gps_time" in header.point_format.dimension_names

        if is_standard_gps and has_gps and header.point_count > 0:
            points = reader.read_points(min(header.point_count, GPS_SAMPLE_SIZE))
            gps_time = np.asarray(points.gps_time)
            gps_time = gps_time[gps_time > 0]
            if gps_time.size:
                seconds = float(np.min(gps_time)) + ADJUSTED_GPS_OFFSET
                return gps_to_utc(seconds), DatetimeSource.DATA

        if header.creation_date is not None:
            created = header.creation_date
            return (
                datetime(created.year, created.month, created.day, tzinfo=timezone.utc),
                DatetimeSource.HEADER,
            )
        return None, None

    @staticmethod
    def read_feature(file_path) -> Dict[str, Any]:
        """
        Build one catalog feature from a point cloud file header.

        Args:
            file_path: Path to LAS/LAZ/COPC file

        Returns:
            STAC-like feature with native ``proj:bbox`` and ``proj:epsg``
        """
        file_path = Path(file_path).resolve()
        if not file_path.exists():
            raise FileNotFoundError(f"Point cloud file not found: {file_path}")

        try:
            with laspy.open(str(file_path)) as reader:
                header = reader.header
                xmin, ymin, zmin = (float(v) for v in header.mins)
                xmax, ymax, zmax = (float(v) for v in header.maxs)
                crs = header.parse_crs()
                epsg = crs.to_epsg() if crs is not None else None
                acquired, source = PointCloudIO.read_acquisition_datetime(reader)
                point_count = int(header.point_count)
        except Exception as e:
            raise RuntimeError(f"Failed to read point cloud header {file_path}: {e}")

        native_bbox = [xmin, ymin, xmax, ymax]
        if epsg is not None:
            lonmin, latmin, lonmax, latmax = CoordinateTransformer.transform_bbox(
                native_bbox, epsg, 4326
            )
        else:
            logger.warning(f"No EPSG code found in header of {file_path.name}")
            lonmin, latmin, lonmax, latmax = native_bbox

        properties = {
            "datetime": format_datetime(acquired) if acquired else None,
            "pc:count": point_count,
            "pc:type": "lidar",
            "pc:encoding": "binary" if file_path.suffix.lower() == ".las" else "LASzip",
            "proj:epsg": epsg,
            "proj:bbox": native_bbox,
            "proj:geometry": _polygon(native_bbox),
        }
        if source is not None:
            properties[DATETIME_SOURCE_KEY] = source.value

        return {
            "type": "Feature",
            "stac_version": "1.0.0",
            "stac_extensions": STAC_EXTENSIONS,
            "id": _tile_id(file_path),
            "geometry": _polygon([lonmin, latmin, lonmax, latmax]),
            "bbox": [lonmin, latmin, zmin, lonmax, latmax, zmax],
            "properties": properties,
            "links": [],
            "assets": {"data": {"href": str(file_path), "roles": ["data"]}},
        }


def _read_feature_safe(file_path: str) -> Tuple[str, Optional[Dict], Optional[str]]:
    try:
        return file_path, PointCloudIO.read_feature(file_path), None
    except Exception as e:
        return file_path, None, str(e)


class PointCloudEngine:
    """Produces catalog documents for a batch of point cloud files."""

    def __init__(self, pool_threshold: int = 20, max_workers: Optional[int] = None):
        """
        Initialize the engine.

        Args:
            pool_threshold: File count above which headers are read in a process pool
            max_workers: Pool size (default: half of the logical cores)
        """
        self.pool_threshold = pool_threshold
        self.max_workers = max_workers or max(1, (os.cpu_count() or 2) // 2)

    def build_catalog_document(self, files: Sequence) -> Dict[str, Any]:
        """
        Read all files and return one FeatureCollection document.

        Unreadable files are logged and left out of the document.
        """
        files = [str(f) for f in files]
        logger.info(f"Reading headers of {len(files)} point cloud files")

        if len(files) > self.pool_threshold:
            logger.info(f"Using process pool with {self.max_workers} workers")
            with ProcessPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(_read_feature_safe, files))
        else:
            results = [_read_feature_safe(f) for f in files]

        features: List[Dict] = []
        error_count = 0
        for path, feature, error in results:
            if feature is None:
                error_count += 1
                logger.error(f"Could not read {path}: {error}")
                continue
            features.append(feature)

        if error_count:
            logger.warning(f"{error_count} of {len(files)} files could not be read")

        return {"type": "FeatureCollection", "features": features}
