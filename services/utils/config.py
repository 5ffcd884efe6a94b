"""
Centralized parameter configuration for the lidar catalog services.

Defaults are defined here and can be overridden via environment variables
prefixed with ``LIDAR_CATALOG_`` (e.g. ``LIDAR_CATALOG_TOLERANCE=10``).
"""

import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "LIDAR_CATALOG_"

# Default catalog parameters
CATALOG_PARAMS = {
    "cell_size": 1000,  # Tile size in CRS units (metres)
    "tolerance": 1,  # Snapping tolerance in CRS units
    "entire_tiles_only": True,  # Only group tiles of exactly cell_size x cell_size
    "pool_threshold": 20,  # Files above which header reads run in a process pool
    "naming_prefix": "3dm",
    # Public administrative-boundary dataset used for region codes
    "region_source": (
        "https://raw.githubusercontent.com/isellsoap/deutschlandGeoJSON/"
        "main/2_bundeslaender/4_niedrig.geo.json"
    ),
    "region_code_column": "id",
    "region_name_column": "name",
    "region_sentinel": "xx",  # Offshore / no administrative region overlaps
}


def _coerce(raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the default value."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def load_params_from_env(defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Load parameter overrides from environment variables.

    Args:
        defaults: Parameter defaults to look up (default: CATALOG_PARAMS)

    Returns:
        Dictionary with only the overridden parameters
    """
    defaults = CATALOG_PARAMS if defaults is None else defaults
    overrides = {}
    for key, default in defaults.items():
        raw = os.environ.get(ENV_PREFIX + key.upper())
        if raw is None:
            continue
        try:
            overrides[key] = _coerce(raw, default)
        except ValueError:
            raise ValueError(
                f"Invalid value for {ENV_PREFIX + key.upper()}: {raw!r} "
                f"(expected {type(default).__name__})"
            )
    return overrides


def load_params(**overrides) -> Dict[str, Any]:
    """
    Return catalog parameters: defaults, then environment, then explicit overrides.

    Example:
        params = load_params(tolerance=10)
    """
    params = dict(CATALOG_PARAMS)
    env = load_params_from_env()
    if env:
        logger.debug(f"Environment parameter overrides: {env}")
    params.update(env)
    unknown = set(overrides) - set(CATALOG_PARAMS)
    if unknown:
        raise ValueError(f"Unknown catalog parameters: {', '.join(sorted(unknown))}")
    params.update(overrides)
    return params
