#!/usr/bin/env python3
"""
Catalog Resolver

Accepts any mix of point cloud files, directories, catalog (.vpc) documents
and in-memory catalogs, and resolves them into a single catalog that holds
every tile exactly once (deduplicated by storage href).

Usage:
    from services.core.resolver import resolve

    catalog = resolve(["tiles/", "older_survey.vpc"])
"""

import logging
from enum import Enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from services.core.catalog import Catalog, write_catalog
from services.processing.point_cloud_io import PointCloudEngine, is_point_cloud_file

logger = logging.getLogger(__name__)

CATALOG_EXTENSION = ".vpc"

CatalogInput = Union[str, Path, Dict[str, Any], Catalog]


class InputKind(str, Enum):
    """Kind of a resolver input, decided once at the boundary."""

    POINT_CLOUD_FILE = "point_cloud_file"
    DIRECTORY = "directory"
    CATALOG_DOCUMENT = "catalog_document"
    CATALOG_OBJECT = "catalog_object"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ResolvedInput:
    kind: InputKind
    value: Any


def _is_feature_collection(value: Any) -> bool:
    return isinstance(value, dict) and value.get("type") == "FeatureCollection"


def classify_input(item: CatalogInput) -> ResolvedInput:
    """Tag a single input with its kind."""
    if isinstance(item, Catalog):
        return ResolvedInput(InputKind.CATALOG_OBJECT, item)
    if _is_feature_collection(item):
        return ResolvedInput(InputKind.CATALOG_OBJECT, item)
    if not isinstance(item, (str, Path)):
        return ResolvedInput(InputKind.UNSUPPORTED, item)

    path = Path(item).expanduser()
    if path.is_dir():
        return ResolvedInput(InputKind.DIRECTORY, path)
    if path.is_file() and path.suffix.lower() == CATALOG_EXTENSION:
        return ResolvedInput(InputKind.CATALOG_DOCUMENT, path)
    if path.is_file() and is_point_cloud_file(path):
        return ResolvedInput(InputKind.POINT_CLOUD_FILE, path)
    return ResolvedInput(InputKind.UNSUPPORTED, path)


def _as_list(inputs) -> List:
    # a single path, document or catalog is treated as a one-element list
    if inputs is None:
        return []
    if isinstance(inputs, (str, Path, dict, Catalog)):
        return [inputs]
    return list(inputs)


def list_point_cloud_files(directory: Path) -> List[Path]:
    """Point cloud files directly inside ``directory`` (non-recursive)."""
    return sorted(p for p in directory.iterdir() if p.is_file() and is_point_cloud_file(p))


def _load_document(path: Path) -> Optional[Catalog]:
    try:
        return Catalog.from_file(path)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read catalog file {path}: {e}")
        return None


def _to_catalog(obj) -> Optional[Catalog]:
    if isinstance(obj, Catalog):
        return obj
    try:
        return Catalog.from_document(obj)
    except ValueError as e:
        logger.warning(f"Skipping invalid catalog object: {e}")
        return None


def merge_catalog_objects(catalogs: Iterable[Catalog]) -> Catalog:
    """
    Concatenate catalogs and deduplicate by href (first occurrence wins).

    Top-level metadata of the first catalog is kept.
    """
    catalogs = list(catalogs)
    entries = [entry for catalog in catalogs for entry in catalog]
    metadata = catalogs[0].metadata if catalogs else {}
    merged = Catalog.from_entries(entries, metadata).deduplicated()
    dropped = len(entries) - len(merged)
    if dropped:
        logger.info(f"Removed {dropped} duplicate entries while merging catalogs")
    return merged


def resolve(
    inputs,
    out_file=None,
    engine: Optional[PointCloudEngine] = None,
    overwrite: bool = True,
):
    """
    Resolve input paths and catalogs into one deduplicated catalog.

    Args:
        inputs: Path, catalog document, catalog object, or a list mixing them
        out_file: Optional path; if given the catalog is written there and
            the path is returned instead of the catalog
        engine: Point cloud engine used to catalog raw files
        overwrite: Whether an existing ``out_file`` may be replaced

    Returns:
        The resolved Catalog (or the written path), or None if nothing valid was found
    """
    objects: List[Any] = []
    documents: List[Path] = []
    raw_files: List[Path] = []

    for item in _as_list(inputs):
        tagged = classify_input(item)
        kind, value = tagged.kind, tagged.value
        if kind == InputKind.CATALOG_OBJECT:
            objects.append(value)
        elif kind == InputKind.CATALOG_DOCUMENT:
            documents.append(value)
        elif kind == InputKind.POINT_CLOUD_FILE:
            raw_files.append(value)
        elif kind == InputKind.DIRECTORY:
            raw_files.extend(list_point_cloud_files(value))
        else:
            logger.warning(f"Ignoring unsupported input: {value}")

    catalogs = [c for c in (_to_catalog(o) for o in objects) if c is not None]

    for path in documents:
        catalog = _load_document(path)
        if catalog is not None:
            catalogs.append(catalog)

    # one engine run for all raw files
    raw_files = list(dict.fromkeys(str(p.resolve()) for p in raw_files))
    if raw_files:
        engine = engine or PointCloudEngine()
        document = engine.build_catalog_document(raw_files)
        produced = _to_catalog(document)
        if produced is not None and len(produced):
            catalogs.append(produced)

    if not catalogs:
        logger.warning("No valid catalogs or LAS/LAZ/COPC files found")
        return None

    if len(catalogs) == 1:
        resolved = catalogs[0]
        if resolved.has_duplicates():
            resolved = resolved.deduplicated()
    else:
        resolved = merge_catalog_objects(catalogs)

    if out_file is not None:
        return write_catalog(resolved, out_file, overwrite=overwrite)
    return resolved


def merge_catalogs(paths, out_file=None, overwrite: bool = False) -> Catalog:
    """
    Merge catalog (.vpc) files, removing duplicate tiles by href.

    Args:
        paths: Paths to one or more catalog files
        out_file: Optional path to write the merged catalog to
        overwrite: Whether an existing ``out_file`` may be replaced

    Raises:
        ValueError: If no paths are given
        FileNotFoundError: If a catalog file does not exist
        FileExistsError: If ``out_file`` exists and ``overwrite`` is False
    """
    paths = [Path(p) for p in _as_list(paths)]
    if not paths:
        raise ValueError("No catalog files provided.")

    catalogs = []
    for path in paths:
        if not path.exists():
            raise FileNotFoundError(f"Catalog file not found: {path}")
        catalogs.append(Catalog.from_file(path))

    merged = merge_catalog_objects(catalogs)
    if out_file is not None:
        write_catalog(merged, out_file, overwrite=overwrite)
    return merged


def resolve_point_cloud_paths(inputs) -> List[str]:
    """
    Flatten inputs into the unique list of backing point cloud hrefs.

    Unsupported inputs, missing paths and unreadable catalogs are skipped
    silently; this never raises.
    """
    hrefs: List[str] = []
    for item in _as_list(inputs):
        tagged = classify_input(item)
        kind, value = tagged.kind, tagged.value
        if kind == InputKind.CATALOG_OBJECT:
            catalog = _to_catalog(value)
            hrefs.extend(catalog.hrefs if catalog else [])
        elif kind == InputKind.CATALOG_DOCUMENT:
            try:
                catalog = Catalog.from_file(value)
            except (OSError, ValueError):
                continue
            hrefs.extend(catalog.hrefs)
        elif kind == InputKind.POINT_CLOUD_FILE:
            hrefs.append(str(value.resolve()))
        elif kind == InputKind.DIRECTORY:
            hrefs.extend(str(p.resolve()) for p in list_point_cloud_files(value))
    return list(dict.fromkeys(hrefs))
