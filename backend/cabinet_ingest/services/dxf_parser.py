"""
DXF token/table parser for cabinet drawings.

Turns ASCII DXF text into a ParsedDrawing:
- HEADER: $ACADVER, units ($MEASUREMENT, falling back to $INSUNITS), $EXTMIN/$EXTMAX
- TABLES: the LAYER table (name, colour, visibility)
- BLOCKS: every block definition with its entities and base point
- ENTITIES: the model-space entity list

Cabinet CAD exports come from many different tools of uneven quality, so the
parser is lenient about content and strict only about structure: a missing
or non-numeric coordinate degrades to 0 for that one entity, while text that
cannot be tokenized at all returns a ParseFailure. ``parse_dxf_content``
never raises.

ezdxf.recover is not used: it repairs structural damage (a truncated file
comes back as a valid document) where this pipeline must report the file
as unparseable. It also builds a full document with handles, owners and
object tables, none of which cabinet extraction reads.

Dependencies:
  - ezdxf (tokenizer + Vec3), no full document loading
"""
import io
import logging
from typing import Iterable, Iterator, Optional, Union

from ezdxf.lldxf.const import DXFStructureError
from ezdxf.lldxf.tagger import ascii_tags_loader
from ezdxf.math import Vec3

from cabinet_ingest import config
from cabinet_ingest.models.drawing import (
    Block,
    DrawingHeader,
    Extents,
    Layer,
    ParsedDrawing,
    ParseFailure,
)
from cabinet_ingest.services.entity_mapper import (
    RawEntity,
    map_entity,
    to_float,
    to_int,
)
from cabinet_ingest.services.perf_monitor import timed

logger = logging.getLogger("cabinet-ingest.parser")

Tag = tuple[int, str]

# Records that belong to the preceding POLYLINE / INSERT rather than standing alone
_SUBENTITY_TYPES = frozenset({"VERTEX", "ATTRIB"})
_SEQUENCE_END = "SEQEND"
_COMMENT_CODE = 999

# $MEASUREMENT: 0 = imperial (inches), 1 = metric
_MEASUREMENT_METRIC = 1


# ── Tokenization ──────────────────────────────────────────────────────────────

def _tokenize(content: str) -> list[Tag]:
    """Group-code/value pairs via ezdxf's ASCII loader. Raises DXFStructureError."""
    normalized = content.replace("\r\n", "\n").replace("\r", "\n").strip("\n")
    if not normalized.strip():
        raise DXFStructureError("Empty DXF content")
    stream = io.StringIO(normalized + "\n")
    # Comments are kept here so every pair read is counted against the line total
    tags = [(tag.code, tag.value.strip())
            for tag in ascii_tags_loader(stream, skip_comments=False)]
    # The loader stops silently on a group code with no value line
    ended = bool(tags) and tags[-1] == (0, "EOF")
    if not ended and normalized.count("\n") + 1 != 2 * len(tags):
        raise DXFStructureError("Premature end of file")
    return [(code, value) for code, value in tags if code != _COMMENT_CODE]


def _split_sections(tags: list[Tag]) -> dict[str, list[Tag]]:
    """Map section name → tags between ``2 <name>`` and ``0 ENDSEC``."""
    sections: dict[str, list[Tag]] = {}
    i = 0
    n = len(tags)
    found_any = False
    while i < n:
        code, value = tags[i]
        if code == 0 and value == "SECTION":
            found_any = True
            if i + 1 >= n or tags[i + 1][0] != 2:
                raise DXFStructureError(f"SECTION without name at tag {i}")
            name = tags[i + 1][1].upper()
            i += 2
            body: list[Tag] = []
            while i < n and not (tags[i][0] == 0 and tags[i][1] in ("ENDSEC", "EOF")):
                body.append(tags[i])
                i += 1
            if i >= n or tags[i][1] == "EOF":
                logger.debug(f"Section {name} not terminated by ENDSEC")
            # A repeated section name extends the first one
            sections.setdefault(name, []).extend(body)
        i += 1
    if not found_any:
        raise DXFStructureError("No SECTION found")
    return sections


def _records(tags: Iterable[Tag]) -> Iterator[RawEntity]:
    """Split a section body into records, each starting at a group-0 tag."""
    current: Optional[RawEntity] = None
    for code, value in tags:
        if code == 0:
            if current is not None:
                yield current
            current = RawEntity(dxftype=value.upper())
        elif current is not None:
            current.tags.append((code, value))
    if current is not None:
        yield current


def _attach_subentities(records: Iterable[RawEntity]) -> list[RawEntity]:
    """Fold VERTEX/ATTRIB records into their owner; drop SEQEND markers."""
    result: list[RawEntity] = []
    for rec in records:
        if rec.dxftype in _SUBENTITY_TYPES:
            if result:
                result[-1].children.append(rec)
            continue
        if rec.dxftype == _SEQUENCE_END:
            continue
        result.append(rec)
    return result


# ── Sections ──────────────────────────────────────────────────────────────────

def _header_variables(tags: list[Tag]) -> dict[str, RawEntity]:
    """Each ``9 $NAME`` opens a variable; following tags are its values."""
    variables: dict[str, RawEntity] = {}
    current: Optional[RawEntity] = None
    for code, value in tags:
        if code == 9:
            current = RawEntity(dxftype=value.upper())
            variables[current.dxftype] = current
        elif current is not None:
            current.tags.append((code, value))
    return variables


def _resolve_units(variables: dict[str, RawEntity], default_units: str) -> bool:
    measurement = variables.get("$MEASUREMENT")
    if measurement is not None and measurement.get(70) is not None:
        return to_int(measurement.get(70)) == _MEASUREMENT_METRIC
    insunits = variables.get("$INSUNITS")
    if insunits is not None and insunits.get(70) is not None:
        code = to_int(insunits.get(70))
        if code in config.INSUNITS_IMPERIAL:
            return False
        if code in config.INSUNITS_METRIC:
            return True
    return default_units != "imperial"


def _header_point(var: Optional[RawEntity]) -> Optional[Vec3]:
    if var is None or var.get(10) is None:
        return None
    return Vec3(to_float(var.get(10)), to_float(var.get(20)), to_float(var.get(30)))


def _parse_header(tags: list[Tag], default_units: str) -> DrawingHeader:
    variables = _header_variables(tags)
    version_var = variables.get("$ACADVER")
    version = version_var.get(1) if version_var is not None else None

    extents = None
    ext_min = _header_point(variables.get("$EXTMIN"))
    ext_max = _header_point(variables.get("$EXTMAX"))
    if ext_min is not None and ext_max is not None:
        # Empty drawings carry inverted sentinel extents (1e20 / -1e20)
        if ext_max.x >= ext_min.x and ext_max.y >= ext_min.y:
            extents = Extents(min=ext_min, max=ext_max)
        else:
            logger.debug("Ignoring inverted header extents")

    return DrawingHeader(
        version=version,
        units_are_metric=_resolve_units(variables, default_units),
        extents=extents,
    )


def _parse_layers(tags: list[Tag]) -> list[Layer]:
    layers: list[Layer] = []
    in_layer_table = False
    for rec in _records(tags):
        if rec.dxftype == "TABLE":
            in_layer_table = (rec.get(2) or "").upper() == "LAYER"
        elif rec.dxftype == "ENDTAB":
            in_layer_table = False
        elif rec.dxftype == "LAYER" and in_layer_table:
            name = (rec.get(2) or "").strip()
            if not name:
                continue
            color = to_int(rec.get(62), 7)
            flags = to_int(rec.get(70))
            # Negative colour = layer off; flag bit 1 = frozen
            layers.append(Layer(
                name=name,
                color_index=abs(color),
                visible=color >= 0 and not flags & 1,
            ))
    return layers


def _parse_blocks(tags: list[Tag]) -> list[Block]:
    blocks: list[Block] = []
    current: Optional[RawEntity] = None
    members: list[RawEntity] = []
    for rec in _attach_subentities(_records(tags)):
        if rec.dxftype == "BLOCK":
            current = rec
            members = []
        elif rec.dxftype == "ENDBLK":
            if current is not None:
                blocks.append(_build_block(current, members))
            current = None
            members = []
        elif current is not None:
            members.append(rec)
    if current is not None:
        logger.debug(f"Block {current.get(2)!r} not terminated by ENDBLK")
        blocks.append(_build_block(current, members))
    return blocks


def _build_block(header: RawEntity, members: list[RawEntity]) -> Block:
    name = (header.get(2) or header.get(3) or "").strip()
    base = Vec3(to_float(header.get(10)), to_float(header.get(20)), to_float(header.get(30)))
    return Block(
        name=name,
        entities=tuple(map_entity(m) for m in members),
        base_point=base,
    )


def _parse_entities(tags: list[Tag]):
    return tuple(map_entity(rec) for rec in _attach_subentities(_records(tags)))


# ── Public API ────────────────────────────────────────────────────────────────

@timed
def parse_dxf_content(
    content: str,
    default_units: str = config.DEFAULT_UNITS,
) -> Union[ParsedDrawing, ParseFailure]:
    """
    Parse DXF text into a ParsedDrawing.

    Args:
        content: ASCII DXF (group code line, value line, repeated).
        default_units: "metric" or "imperial", applied when the header has no
                       units variables.

    Returns:
        ParsedDrawing, or ParseFailure when the text is structurally unusable.
    """
    try:
        tags = _tokenize(content)
        sections = _split_sections(tags)
    except DXFStructureError as e:
        logger.warning(f"DXF structure error: {e}")
        return ParseFailure(reason=str(e))

    try:
        return ParsedDrawing(
            header=_parse_header(sections.get("HEADER", []), default_units),
            layers=tuple(_parse_layers(sections.get("TABLES", []))),
            blocks=tuple(_parse_blocks(sections.get("BLOCKS", []))),
            entities=_parse_entities(sections.get("ENTITIES", [])),
        )
    except Exception as e:
        logger.warning(f"Failed to build drawing tables: {e}", exc_info=True)
        return ParseFailure(reason=f"Table construction failed: {e}")
