#!/usr/bin/env python3
"""
Grid Snapping and Tile Validation

Tiles of a regular survey grid should have corners on exact multiples of the
cell size. Reprojection and header rounding leave coordinates a fraction of
a unit off the grid, so corners within ``tolerance`` of a grid line are
snapped onto it before checking size and alignment. Coordinates further away
are kept (truncated to integers) so genuine misalignment is still reported.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from services.core.catalog import BBox, Catalog

logger = logging.getLogger(__name__)

Number = Union[int, float]


@dataclass(frozen=True)
class TileValidity:
    size_ok: bool
    grid_ok: bool
    valid: bool
    bbox: Tuple[Number, Number, Number, Number]  # snapped


def _check_cell_size(cell_size: Number) -> None:
    if cell_size is None or cell_size <= 0:
        raise ValueError(f"cell_size must be positive, got {cell_size}")


def snap(coordinate: float, cell_size: Number = 1000, tolerance: Number = 1) -> int:
    """
    Snap a coordinate to the nearest grid line if it lies within tolerance.

    Args:
        coordinate: Coordinate value in CRS units
        cell_size: Grid spacing
        tolerance: Maximum distance to a grid line that is still snapped

    Returns:
        The grid line as an integer, or the coordinate truncated to an integer
    """
    _check_cell_size(cell_size)
    nearest = round(coordinate / cell_size) * cell_size
    if abs(coordinate - nearest) <= tolerance:
        return int(nearest)
    return int(coordinate)


def snap_bbox(bbox: BBox, cell_size: Number = 1000, tolerance: Number = 1) -> Tuple[Number, ...]:
    """Snap all four bbox components. A tolerance of 0 disables snapping."""
    _check_cell_size(cell_size)
    if tolerance < 0:
        raise ValueError(f"tolerance must not be negative, got {tolerance}")
    if tolerance == 0:
        return tuple(bbox)
    return tuple(snap(c, cell_size, tolerance) for c in bbox)


def validate_tile(bbox: BBox, cell_size: Number = 1000, tolerance: Number = 1) -> TileValidity:
    """
    Check whether a bbox is one full grid cell aligned to the grid.

    Example:
        >>> validate_tile((0, 0, 1000, 1000)).valid
        True
    """
    xmin, ymin, xmax, ymax = snapped = snap_bbox(bbox, cell_size, tolerance)

    size_ok = (xmax - xmin) == cell_size and (ymax - ymin) == cell_size
    grid_ok = all(c % cell_size == 0 for c in snapped)

    return TileValidity(
        size_ok=bool(size_ok),
        grid_ok=bool(grid_ok),
        valid=bool(size_ok and grid_ok),
        bbox=snapped,
    )


def check_tiling(
    catalog: Optional[Catalog],
    cell_size: Number = 1000,
    tolerance: Number = 1,
    full_names: bool = False,
) -> Optional[List[Dict]]:
    """
    Validate every entry of a catalog against the tiling grid.

    Returns:
        One row per entry with ``filename``, ``size_ok``, ``grid_ok`` and ``valid``,
        or None if there is no catalog
    """
    if catalog is None:
        return None

    rows = []
    for entry in catalog:
        result = validate_tile(entry.bbox, cell_size, tolerance)
        rows.append(
            {
                "filename": entry.href if full_names else entry.filename,
                "size_ok": result.size_ok,
                "grid_ok": result.grid_ok,
                "valid": result.valid,
            }
        )

    invalid = sum(1 for r in rows if not r["valid"])
    if invalid:
        logger.info(f"{invalid} of {len(rows)} tiles do not match the {cell_size} grid")
    return rows
