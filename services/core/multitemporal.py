#!/usr/bin/env python3
"""
Multi-temporal Classification

Groups catalog entries by the grid tile they cover and counts how often each
tile was surveyed. Tiles observed more than once are multi-temporal.
"""

import logging
from datetime import datetime
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from services.core.catalog import Catalog, Entry, format_datetime
from services.core.grid import validate_tile

logger = logging.getLogger(__name__)

Number = Union[int, float]


@dataclass(frozen=True, order=True)
class TileKey:
    """Snapped lower-left tile corner in cell units (kilometres for 1000 m cells)."""

    x: Number
    y: Number

    @property
    def label(self) -> str:
        return f"{self.x}_{self.y}"


@dataclass(frozen=True)
class TileGroup:
    tile: TileKey
    entries: Tuple[Entry, ...]  # sorted by datetime, then href

    @property
    def observations(self) -> int:
        return len(self.entries)

    @property
    def is_multitemporal(self) -> bool:
        return self.observations > 1


def _cell_units(value: Number, cell_size: Number) -> Number:
    if value % cell_size == 0:
        return int(value // cell_size)
    return value / cell_size


def require_single_epsg(catalog: Catalog) -> Optional[int]:
    """
    Return the catalog's EPSG code.

    Raises:
        ValueError: If entries use more than one EPSG code
    """
    codes = catalog.epsg_codes
    if len(codes) > 1:
        listed = ", ".join(str(c) for c in codes)
        raise ValueError(
            f"Multiple CRS detected: {listed}. All entries must share one EPSG code."
        )
    return codes[0] if codes else None


def _sort_key(entry: Entry) -> Tuple[datetime, str]:
    return entry.datetime, entry.href


def classify(
    catalog: Optional[Catalog],
    cell_size: Number = 1000,
    tolerance: Number = 1,
    entire_tiles_only: bool = True,
) -> Optional[List[TileGroup]]:
    """
    Group catalog entries by grid tile.

    Args:
        catalog: Resolved catalog
        cell_size: Tile size in CRS units
        tolerance: Snapping tolerance in CRS units (0 disables snapping)
        entire_tiles_only: Drop entries that are not exactly one aligned grid cell.
            With False, partial tiles are grouped by their snapped lower-left
            corner, which need not correspond to a real regular grid.

    Returns:
        Tile groups ordered by tile key, or None if there is no catalog

    Raises:
        ValueError: If the catalog mixes EPSG codes
    """
    if catalog is None:
        return None

    require_single_epsg(catalog)

    groups: Dict[TileKey, List[Entry]] = {}
    dropped = 0
    undated = 0
    for entry in catalog:
        result = validate_tile(entry.bbox, cell_size, tolerance)
        if entire_tiles_only and not result.valid:
            dropped += 1
            continue
        if entry.datetime is None:
            undated += 1
            continue
        xmin, ymin = result.bbox[0], result.bbox[1]
        key = TileKey(_cell_units(xmin, cell_size), _cell_units(ymin, cell_size))
        groups.setdefault(key, []).append(entry)

    if dropped:
        logger.info(f"{dropped} entries are not entire {cell_size} tiles and were skipped")
    if undated:
        logger.warning(f"{undated} entries missing datetime, excluded from classification")

    return [
        TileGroup(tile=key, entries=tuple(sorted(members, key=_sort_key)))
        for key, members in sorted(groups.items())
    ]


def multitemporal_table(
    groups: Optional[List[TileGroup]],
    full_names: bool = False,
    multitemporal_only: bool = False,
) -> Optional[List[Dict]]:
    """
    Flatten tile groups into one row per entry.

    Rows hold ``filename``, ``tile``, ``datetime``, ``multitemporal`` and ``observations``.
    """
    if groups is None:
        return None

    rows = []
    for group in groups:
        if multitemporal_only and not group.is_multitemporal:
            continue
        for entry in group.entries:
            rows.append(
                {
                    "filename": entry.href if full_names else entry.filename,
                    "tile": group.tile.label,
                    "datetime": format_datetime(entry.datetime),
                    "multitemporal": group.is_multitemporal,
                    "observations": group.observations,
                }
            )
    return rows
