"""
Per-category decision thresholds.

A frame matches a category when its best similarity to that category's
references reaches the threshold, so lower values are more sensitive.
Configuration arrives freshly deserialized from the settings store and
may be partial or stale; anything missing or invalid falls back to the
category default.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .models import DefectCategory

logger = logging.getLogger(__name__)

MIN_THRESHOLD = 0.30
MAX_THRESHOLD = 0.90

DEFAULT_THRESHOLDS = {
    DefectCategory.DARK_SPOT: 0.50,
    DefectCategory.SCRATCH: 0.50,
    DefectCategory.FLASH: 0.65,
}

# Version 2 recalibrated flash; a stored 0.50 predates that fix.
CURRENT_VERSION = 2
LEGACY_FLASH_THRESHOLD = 0.50

# Single threshold shared by every category in old settings.
LEGACY_SHARED_KEY = "similarityThreshold"


@dataclass(frozen=True)
class ThresholdConfig:
    values: Mapping[DefectCategory, float] = field(
        default_factory=lambda: dict(DEFAULT_THRESHOLDS))
    version: int = CURRENT_VERSION

    def __post_init__(self):
        # Values are read-only for the lifetime of the config.
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __hash__(self):
        return hash((frozenset(self.values.items()), self.version))

    def get(self, category: DefectCategory) -> float:
        return self.values.get(category, DEFAULT_THRESHOLDS[category])

    def with_value(self, category: DefectCategory, value: float) -> "ThresholdConfig":
        category = DefectCategory.parse(category)
        values = dict(self.values)
        values[category] = _validated(category, value)
        return ThresholdConfig(values=values, version=self.version)

    def to_dict(self) -> Dict[str, Any]:
        data = {category.value: self.get(category) for category in DefectCategory}
        data["version"] = self.version
        return data


def _validated(category: DefectCategory, value) -> float:
    """Return value as a threshold, or the category default if invalid."""
    default = DEFAULT_THRESHOLDS[category]
    if isinstance(value, bool) or value is None:
        return default
    try:
        threshold = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric threshold for {category.value}: {value!r}")
        return default

    if not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
        logger.warning(
            f"Threshold {threshold} for {category.value} outside "
            f"[{MIN_THRESHOLD}, {MAX_THRESHOLD}], using {default}"
        )
        return default
    return threshold


def _stored_version(value) -> int:
    """Stored version as an int; numeric strings count, anything else is 1."""
    if isinstance(value, bool):
        return 1
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid settings version {value!r}")
        return 1


def migrate_thresholds(config: ThresholdConfig) -> ThresholdConfig:
    """
    Upgrade a configuration to the current version.

    Pre-version-2 configs with a flash threshold of exactly 0.50 get the
    recalibrated 0.65. The result is always current, so applying this
    again changes nothing.
    """
    if config.version >= CURRENT_VERSION:
        return config

    values = dict(config.values)
    if values.get(DefectCategory.FLASH) == LEGACY_FLASH_THRESHOLD:
        values[DefectCategory.FLASH] = DEFAULT_THRESHOLDS[DefectCategory.FLASH]
        logger.info(
            f"Migrated legacy flash threshold {LEGACY_FLASH_THRESHOLD} -> "
            f"{values[DefectCategory.FLASH]}"
        )
    return ThresholdConfig(values=values, version=CURRENT_VERSION)


def load_thresholds(data: Optional[Any] = None) -> ThresholdConfig:
    """
    Build a ThresholdConfig from stored settings.

    Accepts None, an existing ThresholdConfig, or a mapping keyed by
    category value, member name or legacy label. The legacy
    ``similarityThreshold`` key applies to every category not set
    explicitly. A mapping without ``version`` is treated as version 1.
    The result has already been migrated.
    """
    if data is None:
        return ThresholdConfig()
    if isinstance(data, ThresholdConfig):
        return migrate_thresholds(data)
    if not isinstance(data, Mapping):
        logger.warning(f"Ignoring threshold settings of type {type(data).__name__}")
        return ThresholdConfig()

    explicit: Dict[DefectCategory, Any] = {}
    for key, value in data.items():
        if key in ("version", LEGACY_SHARED_KEY):
            continue
        try:
            explicit[DefectCategory.parse(key)] = value
        except ValueError:
            logger.warning(f"Ignoring threshold for unknown category {key!r}")

    shared = data.get(LEGACY_SHARED_KEY)
    values = {}
    for category in DefectCategory:
        raw = explicit.get(category, shared)
        values[category] = _validated(category, raw)

    version = _stored_version(data.get("version", 1))

    return migrate_thresholds(ThresholdConfig(values=values, version=version))
