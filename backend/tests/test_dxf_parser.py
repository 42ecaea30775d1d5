"""
test_dxf_parser.py — Unit tests for the DXF token/table parser.

Tests cover:
  - parse_dxf_content: header variables, layer table, blocks, entity list
  - Structural failures returned as ParseFailure (never raised)
  - Lenient content handling: missing/non-numeric coordinates default to 0
  - POLYLINE/VERTEX/SEQEND and INSERT/ATTRIB grouping
  - Units resolution: $MEASUREMENT, $INSUNITS fallback, configured default
"""

import importlib

import pytest

from cabinet_ingest.models.drawing import (
    Circle,
    Insert,
    Line,
    ParsedDrawing,
    ParseFailure,
    Polyline,
    Text,
    Unknown,
)
from cabinet_ingest.services.dxf_parser import parse_dxf_content


def _raw(*tags):
    return "".join(f"{code}\n{value}\n" for code, value in tags)


# ===========================================================================
# Class 1: Structure
# ===========================================================================

class TestStructure:
    """Tables land in the right parts of the ParsedDrawing."""

    def test_returns_parsed_drawing(self, dxf):
        parsed = parse_dxf_content(dxf.add(dxf.line(0, 0, 10, 0)).build())
        assert isinstance(parsed, ParsedDrawing)
        assert len(parsed.entities) == 1

    def test_header_version_read(self, dxf):
        parsed = parse_dxf_content(dxf.build())
        assert parsed.header.version == "AC1015"

    def test_layers_with_visibility(self, dxf):
        """Negative colour = off, flag bit 1 = frozen; both make a layer invisible."""
        dxf.add_layer("CARCASS", color=3)
        dxf.add_layer("HIDDEN", color=-5)
        dxf.add_layer("FROZEN", color=1, flags=1)
        layers = {l.name: l for l in parse_dxf_content(dxf.build()).layers}

        assert layers["CARCASS"].visible is True
        assert layers["CARCASS"].color_index == 3
        assert layers["HIDDEN"].visible is False
        assert layers["HIDDEN"].color_index == 5
        assert layers["FROZEN"].visible is False

    def test_blocks_carry_entities_and_base_point(self, dxf):
        dxf.add_block("WALL_600", [dxf.line(0, 0, 600, 0), dxf.circle(10, 10, 5)], base=(5.0, 7.0))
        parsed = parse_dxf_content(dxf.build())

        assert len(parsed.blocks) == 1
        block = parsed.blocks[0]
        assert block.name == "WALL_600"
        assert isinstance(block.entities[0], Line)
        assert isinstance(block.entities[1], Circle)
        assert (block.base_point.x, block.base_point.y) == (5.0, 7.0)

    def test_block_entities_not_in_model_space(self, dxf):
        dxf.add_block("B", [dxf.line(0, 0, 1, 1)])
        parsed = parse_dxf_content(dxf.build())
        assert parsed.entities == ()

    def test_get_block_by_name(self, dxf):
        dxf.add_block("A", [dxf.line(0, 0, 1, 1)]).add_block("B", [])
        parsed = parse_dxf_content(dxf.build())
        assert parsed.get_block("B").name == "B"
        assert parsed.get_block("missing") is None

    def test_polyline_vertices_collected(self, dxf):
        dxf.add(dxf.polyline([(0, 0), (100, 0), (100, 50)], closed=False))
        dxf.add(dxf.line(0, 0, 5, 5))
        parsed = parse_dxf_content(dxf.build())

        assert len(parsed.entities) == 2
        poly = parsed.entities[0]
        assert isinstance(poly, Polyline)
        assert poly.dxftype == "POLYLINE"
        assert [(v.x, v.y) for v in poly.vertices] == [(0, 0), (100, 0), (100, 50)]
        assert poly.closed is False

    def test_insert_attribs_do_not_become_entities(self):
        content = _raw(
            (0, "SECTION"), (2, "ENTITIES"),
            (0, "INSERT"), (8, "0"), (66, 1), (2, "TAG_BLOCK"), (10, 1), (20, 2),
            (0, "ATTRIB"), (8, "0"), (10, 1), (20, 2), (1, "W600"), (2, "WIDTH"),
            (0, "SEQEND"), (8, "0"),
            (0, "ENDSEC"), (0, "EOF"),
        )
        parsed = parse_dxf_content(content)
        assert len(parsed.entities) == 1
        assert isinstance(parsed.entities[0], Insert)
        assert parsed.entities[0].name == "TAG_BLOCK"

    def test_unknown_entity_types_preserved(self, dxf):
        dxf.add(dxf.hatch(layer="FILL"))
        parsed = parse_dxf_content(dxf.build())
        assert parsed.entities == (Unknown(source_type="HATCH", layer="FILL"),)

    def test_crlf_line_endings(self, dxf):
        content = dxf.add(dxf.text(1, 2, "SINK")).build().replace("\n", "\r\n")
        parsed = parse_dxf_content(content)
        assert isinstance(parsed.entities[0], Text)
        assert parsed.entities[0].text == "SINK"

    def test_comments_skipped(self, dxf):
        content = "999\nexported by test\n" + dxf.add(dxf.line(0, 0, 1, 0)).build()
        parsed = parse_dxf_content(content)
        assert len(parsed.entities) == 1

    def test_missing_eof_tolerated(self):
        content = _raw((0, "SECTION"), (2, "ENTITIES"), (0, "LINE"), (10, 1), (20, 1), (11, 2), (21, 2))
        parsed = parse_dxf_content(content)
        assert isinstance(parsed, ParsedDrawing)
        assert len(parsed.entities) == 1


# ===========================================================================
# Class 2: Failure handling
# ===========================================================================

class TestParseFailure:
    """Malformed documents return ParseFailure instead of raising."""

    @pytest.mark.parametrize("content", [
        "",
        "   \n\n",
        "this is not a dxf file\nat all\n",
        "PK\x03\x04garbage",
    ])
    def test_unusable_text_is_failure(self, content):
        result = parse_dxf_content(content)
        assert isinstance(result, ParseFailure)
        assert result.reason
        assert not result

    def test_no_sections_is_failure(self):
        assert isinstance(parse_dxf_content(_raw((0, "LINE"), (10, 1), (0, "EOF"))), ParseFailure)

    def test_section_without_name_is_failure(self):
        assert isinstance(parse_dxf_content(_raw((0, "SECTION"), (0, "ENDSEC"))), ParseFailure)

    def test_premature_end_is_failure(self):
        """A group code with no value line cannot be tokenized."""
        content = "0\nSECTION\n2\nENTITIES\n0\nLINE\n10"
        result = parse_dxf_content(content)
        assert isinstance(result, ParseFailure)
        assert "Premature end" in result.reason

    def test_truncated_drawing_is_failure(self, dxf):
        """A download cut off after a group code must not parse as a valid drawing."""
        content = dxf.add(dxf.line(0, 0, 600, 0)).build()
        truncated = content.rsplit("0\nENDSEC", 1)[0] + "11\n"
        assert isinstance(parse_dxf_content(truncated), ParseFailure)

    def test_truncated_with_trailing_crlf_is_failure(self):
        content = "0\r\nSECTION\r\n2\r\nENTITIES\r\n0\r\nLINE\r\n10\r\n"
        assert isinstance(parse_dxf_content(content), ParseFailure)

    def test_content_after_eof_ignored(self, dxf):
        content = dxf.add(dxf.line(0, 0, 1, 0)).build() + "trailing garbage\n"
        assert isinstance(parse_dxf_content(content), ParsedDrawing)


# ===========================================================================
# Class 3: Lenient field handling
# ===========================================================================

class TestLenientFields:
    """One bad coordinate degrades one entity, not the file."""

    def test_missing_coordinates_default_to_zero(self):
        content = _raw((0, "SECTION"), (2, "ENTITIES"), (0, "LINE"), (8, "A"), (11, 50), (0, "ENDSEC"), (0, "EOF"))
        line = parse_dxf_content(content).entities[0]
        assert (line.start.x, line.start.y) == (0, 0)
        assert (line.end.x, line.end.y) == (50, 0)

    def test_non_numeric_coordinate_defaults_to_zero(self):
        content = _raw((0, "SECTION"), (2, "ENTITIES"),
                       (0, "CIRCLE"), (10, "abc"), (20, 20), (40, 150),
                       (0, "ENDSEC"), (0, "EOF"))
        circle = parse_dxf_content(content).entities[0]
        assert circle.center.x == 0
        assert circle.center.y == 20
        assert circle.radius == 150

    def test_missing_layer_defaults_to_zero_layer(self):
        content = _raw((0, "SECTION"), (2, "ENTITIES"), (0, "LINE"), (10, 1), (0, "ENDSEC"), (0, "EOF"))
        assert parse_dxf_content(content).entities[0].layer == "0"


# ===========================================================================
# Class 4: Header units and extents
# ===========================================================================

class TestHeader:
    """$MEASUREMENT, $INSUNITS and $EXTMIN/$EXTMAX."""

    def test_measurement_metric(self, dxf_factory):
        assert parse_dxf_content(dxf_factory(measurement=1).build()).header.units_are_metric is True

    def test_measurement_imperial(self, dxf_factory):
        assert parse_dxf_content(dxf_factory(measurement=0).build()).header.units_are_metric is False

    def test_measurement_beats_insunits(self, dxf_factory):
        d = dxf_factory(measurement=1, insunits=1)
        assert parse_dxf_content(d.build()).header.units_are_metric is True

    def test_insunits_inches_when_no_measurement(self, dxf_factory):
        d = dxf_factory(measurement=None, insunits=1)
        assert parse_dxf_content(d.build()).header.units_are_metric is False

    def test_insunits_millimetres_when_no_measurement(self, dxf_factory):
        d = dxf_factory(measurement=None, insunits=4)
        assert parse_dxf_content(d.build()).header.units_are_metric is True

    def test_default_units_when_header_silent(self, dxf_factory):
        """DXF's own $MEASUREMENT default is 0, so a silent header means inches."""
        content = dxf_factory(measurement=None).build()
        assert parse_dxf_content(content, default_units="imperial").header.units_are_metric is False
        assert parse_dxf_content(content, default_units="metric").header.units_are_metric is True

    def test_configured_default_is_imperial(self, monkeypatch):
        from cabinet_ingest import config
        monkeypatch.delenv("CABINET_DEFAULT_UNITS", raising=False)
        reloaded = importlib.reload(config)
        assert reloaded.DEFAULT_UNITS == "imperial"
        assert reloaded.EXTRACTION_DEFAULTS["default_units"] == "imperial"

    def test_extents_read(self, dxf_factory):
        d = dxf_factory(extents=((10, 5), (30, 45)))
        ext = parse_dxf_content(d.build()).header.extents
        assert (ext.min.x, ext.min.y) == (10, 5)
        assert (ext.max.x, ext.max.y) == (30, 45)

    def test_inverted_sentinel_extents_ignored(self, dxf_factory):
        """AutoCAD writes EXTMIN=1e20 / EXTMAX=-1e20 for empty drawings."""
        d = dxf_factory(extents=((1e20, 1e20), (-1e20, -1e20)))
        assert parse_dxf_content(d.build()).header.extents is None

    def test_no_extents_when_absent(self, dxf):
        assert parse_dxf_content(dxf.build()).header.extents is None


# ===========================================================================
# Class 5: Determinism
# ===========================================================================

class TestDeterminism:

    def test_reparse_is_identical(self, cabinet_block_dxf):
        assert parse_dxf_content(cabinet_block_dxf) == parse_dxf_content(cabinet_block_dxf)
