"""
GeometryEngine — bounding extents and physical dimensions for cabinet candidates.

Points contributed per entity:
  - LINE        → start and end
  - ARC/CIRCLE  → centre
  - POLYLINE    → every vertex
  - TEXT/MTEXT  → anchor point
  - INSERT      → insertion point
  - Unknown     → nothing (or the origin under the legacy "origin" policy)

Extents are in drawing units; ``dimensions_mm`` applies the unit scale
(×25.4 for inches) and rounds to whole millimetres.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ezdxf.math import BoundingBox, Vec3

from cabinet_ingest import config
from cabinet_ingest.models.drawing import (
    ORIGIN,
    Arc,
    Circle,
    Entity,
    Extents,
    Insert,
    Line,
    Polyline,
    Text,
    Unknown,
)

logger = logging.getLogger("cabinet-ingest.extraction")


@dataclass(frozen=True)
class CabinetDimensions:
    width: int
    height: int
    depth: int


def entity_points(entity: Entity, unknown_policy: str = "ignore") -> list[Vec3]:
    """Constituent points of one entity."""
    if isinstance(entity, Line):
        return [entity.start, entity.end]
    if isinstance(entity, (Arc, Circle)):
        return [entity.center]
    if isinstance(entity, Polyline):
        return list(entity.vertices)
    if isinstance(entity, Text):
        return [entity.position]
    if isinstance(entity, Insert):
        return [entity.position]
    if isinstance(entity, Unknown) and unknown_policy == "origin":
        return [ORIGIN]
    return []


def compute_extents(entities: Iterable[Entity], unknown_policy: str = "ignore") -> Optional[Extents]:
    """Axis-aligned bounding box of all entity points; None if there are no points."""
    bbox = BoundingBox()
    for entity in entities:
        points = entity_points(entity, unknown_policy)
        if points:
            bbox.extend(points)
    if not bbox.has_data:
        return None
    return Extents(min=Vec3(bbox.extmin), max=Vec3(bbox.extmax))


class GeometryEngine:
    """Extents → millimetre dimensions, with the standard-cabinet fallback box."""

    def __init__(
        self,
        default_depth_mm: float = config.DEFAULT_DEPTH_MM,
        unknown_policy: str = config.UNKNOWN_ENTITY_POLICY,
    ) -> None:
        if unknown_policy not in config.UNKNOWN_ENTITY_POLICIES:
            raise ValueError(
                f"Unknown entity policy {unknown_policy!r}; "
                f"expected one of {config.UNKNOWN_ENTITY_POLICIES}"
            )
        self.default_depth_mm = default_depth_mm
        self.unknown_policy = unknown_policy

    def extents(self, entities: Iterable[Entity]) -> Optional[Extents]:
        return compute_extents(entities, self.unknown_policy)

    def dimensions_mm(
        self,
        extents: Optional[Extents],
        units_are_metric: bool,
        scale_x: float = 1.0,
        scale_y: float = 1.0,
    ) -> CabinetDimensions:
        """
        Convert drawing-unit extents to whole millimetres.

        ``extents=None`` (no geometry at all) yields the standard
        600 × 870 × 580 mm base unit rather than a failure.
        ``scale_x``/``scale_y`` carry an INSERT's scale factors.
        """
        if extents is None:
            return CabinetDimensions(
                width=round(config.DEFAULT_WIDTH_MM),
                height=round(config.DEFAULT_HEIGHT_MM),
                depth=round(self.default_depth_mm),
            )

        unit_scale = 1.0 if units_are_metric else config.INCH_TO_MM
        size = extents.max - extents.min
        width = abs(size.x * scale_x) * unit_scale
        height = abs(size.y * scale_y) * unit_scale
        depth = round(abs(size.z) * unit_scale)
        if depth <= 0:
            depth = round(self.default_depth_mm)
        return CabinetDimensions(width=round(width), height=round(height), depth=depth)
