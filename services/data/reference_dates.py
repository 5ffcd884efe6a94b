#!/usr/bin/env python3
"""
Reference Acquisition Dates

Files without GPS timestamps only carry the processing date in their header.
A survey operator's reference table (CSV with ``minx``, ``miny`` in
kilometres and ``date`` as YYYY-MM-DD) lists the actual acquisition dates
per tile; the latest of those not after the processing date is taken as the
acquisition date.
"""

import csv
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from services.core.catalog import Catalog, DatetimeSource
from services.core.grid import snap_bbox

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("minx", "miny", "date")

TileCorner = Tuple[float, float]


def load_reference_dates(csv_path) -> Dict[TileCorner, List[date]]:
    """
    Read the reference table keyed by tile corner in CRS units.

    Returns:
        Mapping of ``(minx * 1000, miny * 1000)`` to the sorted acquisition dates

    Raises:
        FileNotFoundError: If the CSV does not exist
        ValueError: If a required column is missing or a row cannot be parsed
    """
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"Reference date table not found: {path}")

    table: Dict[TileCorner, List[date]] = {}
    with open(path, newline="") as f:
        reader = csv.DictReader(f)
        missing = [c for c in REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(
                f"Reference date table {path} is missing column(s): {', '.join(missing)}"
            )
        for line, row in enumerate(reader, start=2):
            try:
                corner = (float(row["minx"]) * 1000, float(row["miny"]) * 1000)
                acquired = date.fromisoformat(row["date"].strip())
            except (TypeError, ValueError, AttributeError):
                raise ValueError(f"Malformed row {line} in reference date table {path}: {row}")
            table.setdefault(corner, []).append(acquired)

    for dates in table.values():
        dates.sort()
    logger.debug(f"Loaded reference dates for {len(table)} tiles from {path}")
    return table


def assign_reference_dates(
    catalog: Optional[Catalog],
    csv_path,
    cell_size=1000,
    tolerance=1,
) -> Optional[Catalog]:
    """
    Replace header-derived datetimes with reference acquisition dates.

    Entries whose datetime comes from the header are matched by their snapped
    lower-left corner. Matched entries get the latest reference date that is
    not later than the header date and provenance ``csv``; all other entries
    are returned unchanged.
    """
    if catalog is None:
        return None

    table = load_reference_dates(csv_path)
    updated = []
    replaced = 0
    for entry in catalog:
        if entry.datetime_source != DatetimeSource.HEADER or entry.datetime is None:
            updated.append(entry)
            continue

        xmin, ymin = snap_bbox(entry.bbox, cell_size, tolerance)[:2]
        processed = entry.datetime.date()
        candidates = [d for d in table.get((float(xmin), float(ymin)), []) if d <= processed]
        if not candidates:
            updated.append(entry)
            continue

        acquired = datetime.combine(candidates[-1], datetime.min.time(), tzinfo=timezone.utc)
        updated.append(entry.with_datetime(acquired, DatetimeSource.CSV))
        replaced += 1

    header_only = sum(1 for e in updated if e.datetime_source == DatetimeSource.HEADER)
    logger.info(f"Assigned reference dates to {replaced} entries")
    if header_only:
        logger.info(f"{header_only} entries keep their header (processing) date")
    return catalog.with_entries(updated)
