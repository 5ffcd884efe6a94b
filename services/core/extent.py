#!/usr/bin/env python3
"""
Catalog Extents

Spatial and temporal extent summaries of a catalog, per file or combined.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Union

import geopandas as gpd
from shapely.geometry import box

from services.core.catalog import Catalog, format_datetime

logger = logging.getLogger(__name__)

# Acquisitions late in the year belong to the next reference year
REFERENCE_YEAR_MONTHS = (11, 12)


def reference_year(value: datetime) -> int:
    """Survey reference year of an acquisition datetime."""
    return value.year + (1 if value.month in REFERENCE_YEAR_MONTHS else 0)


def spatial_extent(
    catalog: Optional[Catalog],
    per_file: bool = True,
    full_names: bool = False,
    as_geodataframe: bool = False,
    verbose: bool = True,
) -> Union[List[Dict], gpd.GeoDataFrame, None]:
    """
    Native bbox of every entry, or the combined bbox of the catalog.

    Rows hold ``xmin``, ``ymin``, ``xmax``, ``ymax`` (and ``filename`` per file).
    With ``as_geodataframe`` the rows become a GeoDataFrame of bbox polygons
    in the catalog's CRS.
    """
    if catalog is None:
        return None
    if len(catalog) == 0:
        logger.warning("No features in catalog")
        return None

    rows = [
        {
            "filename": entry.href if full_names else entry.filename,
            "xmin": entry.bbox[0],
            "ymin": entry.bbox[1],
            "xmax": entry.bbox[2],
            "ymax": entry.bbox[3],
        }
        for entry in catalog
    ]
    overall = {
        "xmin": min(r["xmin"] for r in rows),
        "ymin": min(r["ymin"] for r in rows),
        "xmax": max(r["xmax"] for r in rows),
        "ymax": max(r["ymax"] for r in rows),
    }
    epsg = catalog.entries[0].epsg

    if verbose:
        logger.info("Get spatial extent")
        logger.info(f"  {len(catalog)} LASfiles")
        crs_note = f"; EPSG:{epsg}" if epsg is not None else ""
        logger.info(
            "  Overall extent: {xmin:.2f}, {ymin:.2f}, {xmax:.2f}, {ymax:.2f}".format(**overall)
            + f"  (xmin, ymin, xmax, ymax{crs_note})"
        )

    if not per_file:
        rows = [overall]

    if as_geodataframe:
        geometry = [box(r["xmin"], r["ymin"], r["xmax"], r["ymax"]) for r in rows]
        crs = f"EPSG:{epsg}" if epsg is not None else None
        return gpd.GeoDataFrame(rows, geometry=geometry, crs=crs)
    return rows


def temporal_extent(
    catalog: Optional[Catalog],
    per_file: bool = True,
    full_names: bool = False,
    as_reference_year: bool = False,
    verbose: bool = True,
) -> Optional[List[Dict]]:
    """
    Acquisition datetimes per file, or the combined ``start``/``end`` range.

    With ``as_reference_year`` datetimes are replaced by reference years
    (November and December acquisitions count towards the following year).
    Entries without a datetime are skipped with a warning.
    """
    if catalog is None:
        return None

    dated = [e for e in catalog if e.datetime is not None]
    missing = len(catalog) - len(dated)
    if missing:
        logger.warning(f"{missing} file(s) missing valid date")
    if not dated:
        logger.warning("No files with valid dates")
        return None

    if as_reference_year:
        values = [reference_year(e.datetime) for e in dated]
        render = str
    else:
        values = [e.datetime for e in dated]
        render = format_datetime

    start, end = min(values), max(values)
    if verbose:
        logger.info("Get temporal extent")
        logger.info(f"  {len(dated)} LASfiles")
        if start == end:
            logger.info(f"  Temporal extent: {render(start)}")
        else:
            logger.info(f"  Temporal extent: {render(start)} to {render(end)}")

    output = (lambda v: v) if as_reference_year else format_datetime
    if not per_file:
        return [{"start": output(start), "end": output(end)}]

    return [
        {
            "filename": entry.href if full_names else entry.filename,
            "date": output(value),
            "from": entry.datetime_source.value if entry.datetime_source else None,
        }
        for entry, value in zip(dated, values)
    ]
