#!/usr/bin/env python3
"""
Spatial Filter

Filters a catalog to tiles whose footprint intersects an extent. The extent
can be a point ``(x, y)``, a bbox ``(xmin, ymin, xmax, ymax)`` (sequence or numpy array), a shapely
geometry, a GeoJSON geometry mapping, or a GeoDataFrame/GeoSeries.
"""

import logging
import numbers
from typing import Any, Dict, List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
from shapely.geometry import Point, box, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from services.core.catalog import Catalog
from services.processing.coordinate_transformer import CoordinateTransformer

logger = logging.getLogger(__name__)


def normalize_extent(extent: Any, crs: Optional[int] = None) -> Tuple[BaseGeometry, Optional[int]]:
    """
    Normalize an extent into a single shapely geometry and its EPSG code.

    GeoDataFrames and GeoSeries carry their own CRS, which takes precedence
    over ``crs``.

    Raises:
        ValueError: If the extent has an unsupported shape or type
    """
    if isinstance(extent, (gpd.GeoDataFrame, gpd.GeoSeries)):
        geometry = unary_union(list(extent.geometry if isinstance(extent, gpd.GeoDataFrame) else extent))
        epsg = extent.crs.to_epsg() if extent.crs is not None else crs
        return geometry, epsg

    if isinstance(extent, BaseGeometry):
        return extent, crs

    if isinstance(extent, dict) and "type" in extent:
        return shape(extent), crs

    if isinstance(extent, np.ndarray):
        extent = extent.ravel().tolist()

    if isinstance(extent, (list, tuple)) and all(isinstance(v, numbers.Real) for v in extent):
        if len(extent) == 2:
            return Point(*extent), crs
        if len(extent) == 4:
            xmin, ymin, xmax, ymax = extent
            if xmin > xmax or ymin > ymax:
                raise ValueError(f"Invalid bbox extent (min greater than max): {extent}")
            return box(xmin, ymin, xmax, ymax), crs
        raise ValueError("Numeric extent must be length 2 (x, y) or 4 (xmin, ymin, xmax, ymax)")

    raise ValueError(
        f"Unsupported extent type {type(extent).__name__}. "
        "Use a numeric point/bbox, a shapely geometry, GeoJSON or a GeoDataFrame."
    )


def filter_spatial(
    catalog: Optional[Catalog],
    extent: Any,
    extent_crs: Optional[int] = None,
    use_geometry: bool = False,
    verbose: bool = True,
) -> Optional[Catalog]:
    """
    Keep entries whose footprint intersects the extent.

    Args:
        catalog: Resolved catalog
        extent: Point, bbox, geometry or GeoDataFrame to filter by
        extent_crs: EPSG code of the extent; defaults to the catalog's CRS
        use_geometry: Test the native footprint polygon instead of the bbox where available
        verbose: Log a summary of the filtering

    Returns:
        The filtered catalog in input order, or None if nothing intersects
    """
    if catalog is None:
        return None
    if len(catalog) == 0:
        logger.warning("No features in catalog to filter")
        return None

    geometry, source_epsg = normalize_extent(extent, extent_crs)

    # the extent is reprojected once per CRS present in the catalog
    projected: Dict[Optional[int], BaseGeometry] = {}
    kept = []
    for entry in catalog:
        if entry.epsg not in projected:
            if source_epsg is None or entry.epsg is None:
                projected[entry.epsg] = geometry
            else:
                projected[entry.epsg] = CoordinateTransformer.transform_geometry(
                    geometry, source_epsg, entry.epsg
                )
        if entry.footprint(use_geometry).intersects(projected[entry.epsg]):
            kept.append(entry)

    if not kept:
        logger.warning("No features intersect the specified extent")
        return None

    result = catalog.with_entries(kept)
    if verbose:
        logger.info("Filter spatial extent")
        logger.info(f"  {len(catalog)} LASfiles")
        logger.info(f"  {len(result)} LASfiles retained")
    return result


def get_intersection(
    first: Optional[Catalog],
    second: Optional[Catalog],
    mode: str = "intersects",
    full_names: bool = False,
) -> Optional[Dict[str, List[str]]]:
    """
    Find tiles of each catalog that intersect (or equal) a tile of the other.

    Both catalogs are compared in the CRS of the first.

    Returns:
        ``{"first": [...], "second": [...]}`` filenames, or None if either input is empty
    """
    if mode not in ("intersects", "equals"):
        raise ValueError(f"mode must be 'intersects' or 'equals', got {mode!r}")
    if not first or not second:
        logger.warning("No LAS/LAZ/COPC files found.")
        return None

    target_epsg = first.entries[0].epsg

    def footprints(catalog: Catalog) -> List[BaseGeometry]:
        shapes = []
        for entry in catalog:
            geom = entry.footprint()
            if target_epsg is not None and entry.epsg is not None:
                geom = CoordinateTransformer.transform_geometry(geom, entry.epsg, target_epsg)
            shapes.append(geom)
        return shapes

    def predicate(a: BaseGeometry, b: BaseGeometry) -> bool:
        return a.intersects(b) if mode == "intersects" else a.equals(b)

    first_shapes, second_shapes = footprints(first), footprints(second)

    def matches(entries, shapes: Sequence, others: Sequence) -> List[str]:
        return [
            entry.href if full_names else entry.filename
            for entry, geom in zip(entries, shapes)
            if any(predicate(geom, other) for other in others)
        ]

    return {
        "first": matches(first.entries, first_shapes, second_shapes),
        "second": matches(second.entries, second_shapes, first_shapes),
    }
