"""
Cabinet ingestion configuration — single source of truth for acceptance
thresholds, unit handling, keyword tables and extraction tier ordering.

Import from here in all services rather than hardcoding values.
"""
from __future__ import annotations

import os


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


# ── Dimension thresholds ──────────────────────────────────────────────────────

# Candidates narrower or shorter than this (mm) are annotation/title-block noise
MIN_CABINET_DIMENSION_MM: float = _env_float("CABINET_MIN_DIMENSION_MM", 100.0)

# Blocks/layers with fewer entities than this cannot describe a cabinet
MIN_BLOCK_ENTITIES: int = _env_int("CABINET_MIN_BLOCK_ENTITIES", 3)

# DXF cabinet drawings are 2D plan/elevation views: no Z span → standard depth
DEFAULT_DEPTH_MM: float = _env_float("CABINET_DEFAULT_DEPTH_MM", 580.0)

# Extents used when a drawing has no geometry at all (standard base unit)
DEFAULT_WIDTH_MM: float = 600.0
DEFAULT_HEIGHT_MM: float = 870.0

# Output ranges for derived counts
MAX_DOOR_COUNT: int = 4
MAX_DRAWER_COUNT: int = 8


# ── Units ─────────────────────────────────────────────────────────────────────

INCH_TO_MM: float = 25.4

# Used when neither $MEASUREMENT nor $INSUNITS is present in the header.
# DXF itself defaults $MEASUREMENT to 0 (imperial), so drawing units are inches.
DEFAULT_UNITS: str = os.getenv("CABINET_DEFAULT_UNITS", "imperial").lower()

# $INSUNITS codes: 1 = inches, 2 = feet; 4/5/6 = mm/cm/m
INSUNITS_IMPERIAL: frozenset[int] = frozenset({1, 2})
INSUNITS_METRIC: frozenset[int] = frozenset({4, 5, 6})


# ── Entity handling ───────────────────────────────────────────────────────────

DEFAULT_LAYER: str = "0"

# "ignore": unknown entity types contribute no points to extents.
# "origin": legacy behaviour, unknown entities count as a point at (0, 0).
UNKNOWN_ENTITY_POLICY: str = os.getenv("CABINET_UNKNOWN_ENTITY_POLICY", "ignore").lower()
UNKNOWN_ENTITY_POLICIES: tuple[str, ...] = ("ignore", "origin")


# ── Geometry heuristics (drawing units) ───────────────────────────────────────

# Drawer divider: horizontal line longer than this in X...
DRAWER_LINE_MIN_LENGTH: float = 100.0
# ...and flatter than this in Y
DRAWER_LINE_MAX_SLOPE: float = 1.0

# Circle larger than this is read as a plan-view sink cutout
SINK_CUTOUT_MIN_RADIUS: float = 100.0

# Polyline with at least this many vertices is an L-shaped corner outline
CORNER_OUTLINE_MIN_VERTICES: int = 6

# Closed rectangle counts as a door leaf when height > ratio × width
DOOR_RECT_ASPECT_RATIO: float = 0.5


# ── Extraction tiers ──────────────────────────────────────────────────────────

# Canonical fallback order. Each tier only runs if every earlier tier found nothing.
TIER_ORDER: list[str] = [
    "blocks",
    "inserts",
    "layers",
    "whole_file",
]

# Block names starting with these are CAD-internal (layouts, dimensions, anonymous)
RESERVED_BLOCK_PREFIXES: tuple[str, ...] = ("*", "A$C")

# Block names containing these are layout artifacts, never cabinets
LAYOUT_BLOCK_MARKERS: tuple[str, ...] = ("model", "paper")

# Layer names matching this are considered to hold a cabinet outline
CABINET_LAYER_PATTERN: str = (
    r"cab|base|wall|tall|pantry|sink|drawer|door|corner|carcass|"
    r"cupboard|unit|overhead|upper|larder|vanity"
)


# ── Archive handling ──────────────────────────────────────────────────────────

DXF_EXTENSION: str = ".dxf"

# macOS archive tooling adds resource-fork copies of every member here
IGNORED_ARCHIVE_PREFIXES: tuple[str, ...] = ("__MACOSX/",)

# Member bytes are decoded with this; undecodable bytes are replaced
ARCHIVE_TEXT_ENCODING: str = "utf-8"


# ── Per-engine defaults ───────────────────────────────────────────────────────
# CabinetExtractionEngine(settings={...}) overrides any of these per instance.

EXTRACTION_DEFAULTS: dict[str, object] = {
    "min_dimension_mm": MIN_CABINET_DIMENSION_MM,
    "min_block_entities": MIN_BLOCK_ENTITIES,
    "default_depth_mm": DEFAULT_DEPTH_MM,
    "unknown_entity_policy": UNKNOWN_ENTITY_POLICY,
    "default_units": DEFAULT_UNITS,
}
