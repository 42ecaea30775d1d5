"""
In-memory drawing model produced by the DXF parser.

Every structure here is frozen: a ParsedDrawing is built once per input text
and never mutated afterwards. Points are ezdxf ``Vec3`` values, which are
immutable and hashable.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from ezdxf.math import Vec3

ORIGIN = Vec3(0, 0, 0)


# ── Entities ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Line:
    start: Vec3 = ORIGIN
    end: Vec3 = ORIGIN
    layer: str = "0"
    dxftype: str = "LINE"


@dataclass(frozen=True)
class Arc:
    center: Vec3 = ORIGIN
    radius: float = 0.0
    start_angle: float = 0.0
    end_angle: float = 0.0
    layer: str = "0"
    dxftype: str = "ARC"


@dataclass(frozen=True)
class Circle:
    center: Vec3 = ORIGIN
    radius: float = 0.0
    layer: str = "0"
    dxftype: str = "CIRCLE"


@dataclass(frozen=True)
class Polyline:
    vertices: tuple[Vec3, ...] = ()
    closed: bool = False
    layer: str = "0"
    dxftype: str = "LWPOLYLINE"  # or "POLYLINE"


@dataclass(frozen=True)
class Text:
    position: Vec3 = ORIGIN
    text: str = ""
    height: float = 0.0
    rotation: float = 0.0
    layer: str = "0"
    dxftype: str = "TEXT"  # or "MTEXT"


@dataclass(frozen=True)
class Insert:
    name: str = ""
    position: Vec3 = ORIGIN
    scale: Vec3 = Vec3(1, 1, 1)
    rotation: float = 0.0
    layer: str = "0"
    dxftype: str = "INSERT"


@dataclass(frozen=True)
class Unknown:
    """An entity type the mapper does not model (HATCH, SPLINE, DIMENSION, ...)."""
    source_type: str = ""
    layer: str = "0"

    @property
    def dxftype(self) -> str:
        return self.source_type


Entity = Union[Line, Arc, Circle, Polyline, Text, Insert, Unknown]


# ── Tables ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Layer:
    name: str
    color_index: int = 7
    visible: bool = True


@dataclass(frozen=True)
class Block:
    name: str
    entities: tuple[Entity, ...] = ()
    base_point: Vec3 = ORIGIN


@dataclass(frozen=True)
class Extents:
    min: Vec3
    max: Vec3

    @property
    def size(self) -> Vec3:
        return self.max - self.min


@dataclass(frozen=True)
class DrawingHeader:
    version: Optional[str] = None
    units_are_metric: bool = True
    extents: Optional[Extents] = None


@dataclass(frozen=True)
class ParsedDrawing:
    header: DrawingHeader = field(default_factory=DrawingHeader)
    layers: tuple[Layer, ...] = ()
    blocks: tuple[Block, ...] = ()
    entities: tuple[Entity, ...] = ()

    def get_block(self, name: str) -> Optional[Block]:
        for block in self.blocks:
            if block.name == name:
                return block
        return None

    @property
    def layer_names(self) -> list[str]:
        return [layer.name for layer in self.layers]


@dataclass(frozen=True)
class ParseFailure:
    """Returned instead of a ParsedDrawing when the text is not usable DXF."""
    reason: str

    def __bool__(self) -> bool:
        return False
