"""
Tile file naming checks.

Canonical tile names follow the ADV schema
``prefix_utmzone_minx_miny_tilesize_region_year[.copc].ext``, for example
``3dm_32_547_5724_1_ni_2024.laz``. Coordinates and tile size are kilometres.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from services.core.catalog import Catalog, Entry
from services.core.grid import snap_bbox
from services.core.multitemporal import require_single_epsg
from services.data.region_lookup import RegionLookup
from services.utils.config import CATALOG_PARAMS

logger = logging.getLogger(__name__)

KILOMETRE = 1000

# EPSG codes of UTM-based systems whose last two digits are the zone
_UTM_EPSG_RANGES = (
    (25828, 25838),  # ETRS89 / UTM
    (32601, 32660),  # WGS 84 / UTM north
    (32701, 32760),  # WGS 84 / UTM south
    (26901, 26923),  # NAD83 / UTM
)
# ETRS89 / UTM with zone-prefixed eastings
_ZONE_PREFIXED = {4647: 32, 5650: 33}


@dataclass(frozen=True)
class NameCheck:
    actual: str
    expected: str
    matches: bool


def utm_zone_from_epsg(epsg: Optional[int]) -> Optional[int]:
    """UTM zone number of a projected EPSG code, or None if it is not UTM."""
    if epsg is None:
        return None
    epsg = int(epsg)
    if epsg in _ZONE_PREFIXED:
        return _ZONE_PREFIXED[epsg]
    for low, high in _UTM_EPSG_RANGES:
        if low <= epsg <= high:
            return epsg % 100
    return None


def _split_extension(filename: str):
    name = filename.lower()
    is_copc = ".copc." in name or name.endswith(".copc")
    ext = Path(filename).suffix.lstrip(".").lower() or "laz"
    if ext == "copc":
        ext = "laz"
    return is_copc, ext


def expected_name(
    entry: Entry,
    prefix: Optional[str] = None,
    utm_zone: Optional[int] = None,
    region: Optional[str] = None,
    year: Optional[int] = None,
    is_copc: Optional[bool] = None,
    region_lookup: Optional[RegionLookup] = None,
    cell_size=1000,
    tolerance=1,
    ext: Optional[str] = None,
) -> str:
    """
    Canonical filename of an entry.

    Args:
        entry: Catalog entry
        prefix: Naming prefix (default from config, "3dm")
        utm_zone: UTM zone; derived from the entry's EPSG code if omitted
        region: Two-letter region code; looked up from the bbox if omitted
        year: Acquisition year; taken from the entry's datetime if omitted
        is_copc: Whether to add ``.copc``; detected from the current filename if omitted
        region_lookup: Lookup used when ``region`` is omitted
        cell_size: Grid cell size used to snap the bbox
        tolerance: Snapping tolerance
        ext: File extension; taken from the current filename if omitted

    Raises:
        ValueError: If zone or year cannot be determined
    """
    prefix = prefix or CATALOG_PARAMS["naming_prefix"]

    if utm_zone is None:
        utm_zone = utm_zone_from_epsg(entry.epsg)
        if utm_zone is None:
            raise ValueError(f"Cannot derive UTM zone from EPSG:{entry.epsg}; pass utm_zone")

    if year is None:
        if entry.datetime is None:
            raise ValueError(f"Entry {entry.filename} has no datetime; pass year")
        year = entry.datetime.year

    if region is None:
        region = (region_lookup or RegionLookup()).lookup(entry.bbox, entry.epsg)

    detected_copc, detected_ext = _split_extension(entry.filename)
    if is_copc is None:
        is_copc = detected_copc
    ext = (ext or detected_ext).lstrip(".")

    xmin, ymin, xmax, _ = snap_bbox(entry.bbox, cell_size, tolerance)
    minx = int(xmin // KILOMETRE)
    miny = int(ymin // KILOMETRE)
    tilesize = max(1, int(round((xmax - xmin) / KILOMETRE)))

    name = f"{prefix}_{utm_zone}_{minx}_{miny}_{tilesize}_{region}_{year}"
    if is_copc:
        name += ".copc"
    return f"{name}.{ext}"


def check_names(
    catalog: Optional[Catalog],
    prefix: Optional[str] = None,
    utm_zone: Optional[int] = None,
    region: Optional[str] = None,
    year: Optional[int] = None,
    region_lookup: Optional[RegionLookup] = None,
    cell_size=1000,
    tolerance=1,
    full_names: bool = False,
) -> Optional[List[NameCheck]]:
    """
    Compare each entry's filename with its canonical name.

    Entries without a datetime are skipped unless ``year`` is given.

    Raises:
        ValueError: If the catalog mixes EPSG codes
    """
    if catalog is None:
        return None

    epsg = require_single_epsg(catalog)
    if utm_zone is None:
        utm_zone = utm_zone_from_epsg(epsg)
        if utm_zone is None:
            raise ValueError(f"Cannot derive UTM zone from EPSG:{epsg}; pass utm_zone")

    if region is None and region_lookup is None:
        region_lookup = RegionLookup()

    results = []
    for entry in catalog:
        if year is None and entry.datetime is None:
            logger.warning(f"Skipping {entry.filename}: no datetime to derive the year from")
            continue
        expected = expected_name(
            entry,
            prefix=prefix,
            utm_zone=utm_zone,
            region=region,
            year=year,
            region_lookup=region_lookup,
            cell_size=cell_size,
            tolerance=tolerance,
        )
        actual = entry.filename
        matches = actual == expected
        if full_names:
            actual = entry.href
            expected = str(Path(entry.href).parent / expected)
        results.append(NameCheck(actual=actual, expected=expected, matches=matches))

    wrong = sum(1 for r in results if not r.matches)
    if wrong:
        logger.info(f"{wrong} of {len(results)} files do not follow the naming schema")
    return results
