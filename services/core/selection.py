#!/usr/bin/env python3
"""
Temporal Selection

Selects acquisitions per tile from classified tile groups: the earliest, the
latest, the n-th observation, or every observation of tiles surveyed exactly
``n`` times. Ties on equal datetimes are broken by href.

The ``filter_*`` functions run the whole chain (resolve, classify, select) on
raw inputs and return a catalog in the resolved catalog's order.
"""

import logging
from typing import Iterable, List, Optional

from services.core.catalog import Catalog, Entry
from services.core.multitemporal import TileGroup, classify
from services.core.resolver import resolve

logger = logging.getLogger(__name__)


def _to_catalog(entries: Iterable[Entry]) -> Optional[Catalog]:
    entries = list(entries)
    if not entries:
        return None
    return Catalog.from_entries(entries)


def select_nth(groups: Optional[List[TileGroup]], rank: int) -> Optional[Catalog]:
    """
    Keep the ``rank``-th observation of every tile.

    Args:
        groups: Classified tile groups
        rank: 1-based rank in acquisition order; negative ranks count from the
            latest (-1 is the latest). Tiles with fewer observations are dropped.
    """
    if not groups:
        logger.warning("No tile groups to select from")
        return None
    if rank == 0:
        raise ValueError("rank is 1-based; use 1 for the first or -1 for the latest observation")

    index = rank - 1 if rank > 0 else rank
    selected = [
        group.entries[index]
        for group in groups
        if -group.observations <= index < group.observations
    ]
    if not selected:
        logger.warning(f"No tile has an observation of rank {rank}")
    return _to_catalog(selected)


def select_first(groups: Optional[List[TileGroup]]) -> Optional[Catalog]:
    """Keep the earliest observation of every tile."""
    return select_nth(groups, 1)


def select_latest(groups: Optional[List[TileGroup]]) -> Optional[Catalog]:
    """Keep the latest observation of every tile."""
    return select_nth(groups, -1)


def select_by_count(groups: Optional[List[TileGroup]], n: Optional[int] = None) -> Optional[Catalog]:
    """
    Keep all observations of tiles observed exactly ``n`` times.

    ``n=None`` keeps multi-temporal tiles (two or more observations), ``n=1``
    mono-temporal tiles only. The result can hold several entries per tile;
    chain with select_first/select_latest for one acquisition per tile.
    """
    if not groups:
        logger.warning("No tile groups to select from")
        return None

    if n is None:
        matching = [g for g in groups if g.is_multitemporal]
    else:
        matching = [g for g in groups if g.observations == n]

    if not matching:
        wanted = "multi-temporal" if n is None else f"{n} observation(s)"
        logger.warning(f"No tiles with {wanted} found")
        return None
    return _to_catalog(entry for group in matching for entry in group.entries)


def _filter_chain(
    inputs,
    selector,
    label: str,
    entire_tiles_only: bool,
    tolerance,
    cell_size,
    multitemporal_only: bool,
    verbose: bool,
) -> Optional[Catalog]:
    catalog = resolve(inputs)
    if catalog is None:
        return None
    if len(catalog) == 0:
        logger.warning("No features in catalog to filter")
        return None

    groups = classify(
        catalog,
        cell_size=cell_size,
        tolerance=tolerance,
        entire_tiles_only=entire_tiles_only,
    )
    if not groups:
        logger.warning(
            "No tiles found matching criteria, consider increasing `tolerance` "
            "or set `entire_tiles_only=False`"
        )
        return None

    n_tiles = len(groups)
    n_multitemporal = sum(1 for g in groups if g.is_multitemporal)
    if multitemporal_only:
        groups = [g for g in groups if g.is_multitemporal]

    selected = selector(groups)
    if selected is None:
        return None

    result = catalog.subset(selected.hrefs)
    if verbose:
        logger.info(f"Filter {label}")
        logger.info(
            f"  {len(catalog)} LASfiles in {n_tiles} tiles ({n_multitemporal} multi-temporal)"
        )
        logger.info(f"  {len(result)} LASfiles retained")
    return result


def filter_first(
    inputs,
    entire_tiles_only: bool = True,
    tolerance=1,
    cell_size=1000,
    multitemporal_only: bool = False,
    verbose: bool = True,
) -> Optional[Catalog]:
    """Resolve inputs and keep only the first acquisition of each tile."""
    return _filter_chain(
        inputs, select_first, "first acquisition",
        entire_tiles_only, tolerance, cell_size, multitemporal_only, verbose,
    )


def filter_latest(
    inputs,
    entire_tiles_only: bool = True,
    tolerance=1,
    cell_size=1000,
    multitemporal_only: bool = False,
    verbose: bool = True,
) -> Optional[Catalog]:
    """Resolve inputs and keep only the latest acquisition of each tile."""
    return _filter_chain(
        inputs, select_latest, "latest acquisition",
        entire_tiles_only, tolerance, cell_size, multitemporal_only, verbose,
    )


def filter_multitemporal(
    inputs,
    n: Optional[int] = None,
    entire_tiles_only: bool = True,
    tolerance=1,
    cell_size=1000,
    verbose: bool = True,
) -> Optional[Catalog]:
    """
    Resolve inputs and keep every acquisition of tiles observed ``n`` times.

    All observations of matching tiles are returned, so several files can
    cover the same tile. Usually filter_first or filter_latest is what a
    processing workflow wants.
    """
    label = "multi-temporal tiles" if n is None else f"tiles with {n} observation(s)"
    return _filter_chain(
        inputs, lambda groups: select_by_count(groups, n), label,
        entire_tiles_only, tolerance, cell_size, False, verbose,
    )
