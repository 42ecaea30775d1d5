"""
Entity mapper: raw DXF entity records → typed drawing entities.

Exactly one entity comes out per raw record. Missing numeric fields default
to zero (insert scale to 1, the DXF default), a missing layer defaults to
layer "0", and types outside the modelled set become ``Unknown`` so the
geometry code can tell them apart from real lines.
"""
import re
import logging
from dataclasses import dataclass, field
from typing import Optional

from ezdxf.math import Vec3

from cabinet_ingest.config import DEFAULT_LAYER
from cabinet_ingest.models.drawing import (
    Arc,
    Circle,
    Entity,
    Insert,
    Line,
    Polyline,
    Text,
    Unknown,
)

logger = logging.getLogger("cabinet-ingest.parser")


@dataclass
class RawEntity:
    """Group-code/value pairs of one entity, plus trailing VERTEX/ATTRIB records."""
    dxftype: str
    tags: list[tuple[int, str]] = field(default_factory=list)
    children: list["RawEntity"] = field(default_factory=list)

    def get(self, code: int) -> Optional[str]:
        for c, v in self.tags:
            if c == code:
                return v
        return None


# ── Value coercion ────────────────────────────────────────────────────────────

def to_float(value: Optional[str], default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value.strip())
    except ValueError:
        logger.debug(f"Non-numeric value {value!r}, using {default}")
        return default


def to_int(value: Optional[str], default: int = 0) -> int:
    if value is None:
        return default
    try:
        return int(float(value.strip()))
    except ValueError:
        logger.debug(f"Non-integer value {value!r}, using {default}")
        return default


def point_at(raw: RawEntity, code: int) -> Vec3:
    """Point stored under group codes ``code``, ``code+10``, ``code+20``."""
    return Vec3(
        to_float(raw.get(code)),
        to_float(raw.get(code + 10)),
        to_float(raw.get(code + 20)),
    )


def clean_mtext(raw: str) -> str:
    """Strip MTEXT inline formatting: {\\fArial;...}, \\P paragraph breaks, etc."""
    cleaned = re.sub(r'\\P', '\n', raw)
    cleaned = re.sub(r'\\[A-Za-z][^;\\{}]*;', '', cleaned)
    cleaned = re.sub(r'[{}]', '', cleaned)
    cleaned = re.sub(r'\\[A-Za-z]', '', cleaned)
    return cleaned.strip()


# ── Per-type mapping ──────────────────────────────────────────────────────────

def _map_line(raw: RawEntity, layer: str) -> Line:
    return Line(start=point_at(raw, 10), end=point_at(raw, 11), layer=layer)


def _map_arc(raw: RawEntity, layer: str) -> Arc:
    return Arc(
        center=point_at(raw, 10),
        radius=to_float(raw.get(40)),
        start_angle=to_float(raw.get(50)),
        end_angle=to_float(raw.get(51)),
        layer=layer,
    )


def _map_circle(raw: RawEntity, layer: str) -> Circle:
    return Circle(center=point_at(raw, 10), radius=to_float(raw.get(40)), layer=layer)


def _lwpolyline_vertices(raw: RawEntity) -> list[Vec3]:
    # Each group 10 opens a new vertex; 20 completes it. Group 38 is the shared elevation.
    elevation = to_float(raw.get(38))
    xs: list[float] = []
    ys: list[float] = []
    for code, value in raw.tags:
        if code == 10:
            xs.append(to_float(value))
            ys.append(0.0)
        elif code == 20 and xs:
            ys[-1] = to_float(value)
    return [Vec3(x, y, elevation) for x, y in zip(xs, ys)]


def _map_polyline(raw: RawEntity, layer: str) -> Polyline:
    if raw.dxftype == "LWPOLYLINE":
        vertices = _lwpolyline_vertices(raw)
    else:
        vertices = [point_at(v, 10) for v in raw.children if v.dxftype == "VERTEX"]
    closed = bool(to_int(raw.get(70)) & 1)
    return Polyline(vertices=tuple(vertices), closed=closed, layer=layer, dxftype=raw.dxftype)


def _map_text(raw: RawEntity, layer: str) -> Text:
    if raw.dxftype == "MTEXT":
        # Long MTEXT is split into 250-char chunks under group 3, remainder under group 1
        chunks = [v for c, v in raw.tags if c == 3]
        chunks.append(raw.get(1) or "")
        text = clean_mtext("".join(chunks))
    else:
        text = (raw.get(1) or "").strip()
    return Text(
        position=point_at(raw, 10),
        text=text,
        height=to_float(raw.get(40)),
        rotation=to_float(raw.get(50)),
        layer=layer,
        dxftype=raw.dxftype,
    )


def _map_insert(raw: RawEntity, layer: str) -> Insert:
    return Insert(
        name=(raw.get(2) or "").strip(),
        position=point_at(raw, 10),
        scale=Vec3(
            to_float(raw.get(41), 1.0),
            to_float(raw.get(42), 1.0),
            to_float(raw.get(43), 1.0),
        ),
        rotation=to_float(raw.get(50)),
        layer=layer,
    )


_MAPPERS = {
    "LINE": _map_line,
    "ARC": _map_arc,
    "CIRCLE": _map_circle,
    "LWPOLYLINE": _map_polyline,
    "POLYLINE": _map_polyline,
    "TEXT": _map_text,
    "MTEXT": _map_text,
    "INSERT": _map_insert,
}


def map_entity(raw: RawEntity, default_layer: str = DEFAULT_LAYER) -> Entity:
    """Map one raw record to its entity variant; unmodelled types become ``Unknown``."""
    layer = (raw.get(8) or "").strip() or default_layer
    mapper = _MAPPERS.get(raw.dxftype)
    if mapper is None:
        return Unknown(source_type=raw.dxftype, layer=layer)
    return mapper(raw, layer)
