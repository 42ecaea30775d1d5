"""
conftest.py — Shared pytest fixtures for the cabinet ingestion test suite.

No database, network or file-system fixtures are defined here.  Drawings are
written as ASCII DXF text by ``DxfBuilder`` and archives are assembled in
memory, so every test is a pure unit test over the ingestion services.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``cabinet_ingest.*`` imports resolve correctly regardless of where pytest
    is invoked.
"""

import io
import sys
import os
import zipfile
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any package imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Synthetic DXF writer
# ---------------------------------------------------------------------------

class DxfBuilder:
    """
    Minimal ASCII DXF writer for tests.

    Entity helpers return lists of (group_code, value) tags; pass them to
    ``add`` (model space) or ``add_block``.  ``build()`` renders the text.
    """

    def __init__(self, measurement=1, insunits=None, extents=None, version="AC1015"):
        self.measurement = measurement
        self.insunits = insunits
        self.extents = extents
        self.version = version
        self.layers = []
        self.blocks = []
        self.entities = []

    # -- entity helpers ------------------------------------------------------

    @staticmethod
    def line(x1, y1, x2, y2, layer="0"):
        return [(0, "LINE"), (8, layer), (10, x1), (20, y1), (30, 0.0),
                (11, x2), (21, y2), (31, 0.0)]

    @staticmethod
    def circle(x, y, r, layer="0"):
        return [(0, "CIRCLE"), (8, layer), (10, x), (20, y), (30, 0.0), (40, r)]

    @staticmethod
    def arc(x, y, r, start, end, layer="0"):
        return [(0, "ARC"), (8, layer), (10, x), (20, y), (30, 0.0),
                (40, r), (50, start), (51, end)]

    @staticmethod
    def lwpolyline(points, closed=True, layer="0"):
        tags = [(0, "LWPOLYLINE"), (8, layer), (90, len(points)), (70, 1 if closed else 0)]
        for x, y in points:
            tags += [(10, x), (20, y)]
        return tags

    @classmethod
    def rect(cls, x, y, w, h, layer="0"):
        return cls.lwpolyline([(x, y), (x + w, y), (x + w, y + h), (x, y + h)], True, layer)

    @staticmethod
    def polyline(points, closed=True, layer="0"):
        tags = [(0, "POLYLINE"), (8, layer), (66, 1), (70, 1 if closed else 0)]
        for x, y in points:
            tags += [(0, "VERTEX"), (8, layer), (10, x), (20, y), (30, 0.0)]
        tags += [(0, "SEQEND"), (8, layer)]
        return tags

    @staticmethod
    def text(x, y, value, height=2.5, layer="0", kind="TEXT"):
        return [(0, kind), (8, layer), (10, x), (20, y), (30, 0.0), (40, height), (1, value)]

    @staticmethod
    def insert(name, x=0.0, y=0.0, sx=1.0, sy=1.0, layer="0"):
        return [(0, "INSERT"), (8, layer), (2, name), (10, x), (20, y), (30, 0.0),
                (41, sx), (42, sy), (43, 1.0)]

    @staticmethod
    def hatch(layer="0"):
        return [(0, "HATCH"), (8, layer), (10, 0.0), (20, 0.0), (2, "SOLID")]

    @classmethod
    def cabinet(cls, x, y, w, h, layer="0"):
        """Carcass outline plus two door leaves: four entities."""
        half = w / 2
        return [
            cls.rect(x, y, w, h, layer),
            cls.rect(x, y, half, h, layer),
            cls.rect(x + half, y, half, h, layer),
            cls.line(x, y + h, x + w, y + h, layer),
        ]

    # -- document assembly ---------------------------------------------------

    def add_layer(self, name, color=7, flags=0):
        self.layers.append((name, color, flags))
        return self

    def add_block(self, name, entities, base=(0.0, 0.0)):
        self.blocks.append((name, entities, base))
        return self

    def add(self, *entities):
        self.entities.extend(entities)
        return self

    def build(self):
        tags = [(0, "SECTION"), (2, "HEADER"), (9, "$ACADVER"), (1, self.version)]
        if self.measurement is not None:
            tags += [(9, "$MEASUREMENT"), (70, self.measurement)]
        if self.insunits is not None:
            tags += [(9, "$INSUNITS"), (70, self.insunits)]
        if self.extents is not None:
            (x1, y1), (x2, y2) = self.extents
            tags += [(9, "$EXTMIN"), (10, x1), (20, y1), (30, 0.0),
                     (9, "$EXTMAX"), (10, x2), (20, y2), (30, 0.0)]
        tags.append((0, "ENDSEC"))

        tags += [(0, "SECTION"), (2, "TABLES"), (0, "TABLE"), (2, "LAYER"), (70, len(self.layers))]
        for name, color, flags in self.layers:
            tags += [(0, "LAYER"), (2, name), (70, flags), (62, color), (6, "CONTINUOUS")]
        tags += [(0, "ENDTAB"), (0, "ENDSEC")]

        tags += [(0, "SECTION"), (2, "BLOCKS")]
        for name, entities, (bx, by) in self.blocks:
            tags += [(0, "BLOCK"), (8, "0"), (2, name), (70, 0),
                     (10, bx), (20, by), (30, 0.0), (3, name)]
            for entity in entities:
                tags += entity
            tags += [(0, "ENDBLK"), (8, "0")]
        tags.append((0, "ENDSEC"))

        tags += [(0, "SECTION"), (2, "ENTITIES")]
        for entity in self.entities:
            tags += entity
        tags += [(0, "ENDSEC"), (0, "EOF")]
        return "".join(f"{code}\n{value}\n" for code, value in tags)


def make_zip(members):
    """In-memory ZIP from ``{name: str | bytes}``; directory names end with '/'."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in members.items():
            if name.endswith("/"):
                zf.writestr(zipfile.ZipInfo(name), b"")
            else:
                zf.writestr(name, content)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

@pytest.fixture
def dxf():
    """Fresh metric DxfBuilder."""
    return DxfBuilder()


@pytest.fixture
def dxf_factory():
    """The DxfBuilder class, for tests that need several drawings or custom headers."""
    return DxfBuilder


@pytest.fixture
def zip_factory():
    return make_zip


@pytest.fixture
def cabinet_block_dxf(dxf_factory):
    """
    One drawing defining a 600 × 720 mm block "Base Cabinet 2 Drawer Sink"
    and inserting it, plus loose geometry on a "CABINET" layer that only the
    layer tier would pick up.
    """
    d = dxf_factory()
    d.add_layer("0").add_layer("CABINET")
    d.add_block("Base Cabinet 2 Drawer Sink", d.cabinet(0, 0, 600, 720))
    d.add(d.insert("Base Cabinet 2 Drawer Sink", 0, 0))
    d.add(*d.cabinet(1000, 0, 900, 720, layer="CABINET"))
    return d.build()


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def feature_engine():
    """FeatureEngine is stateless; one instance for the whole session."""
    from cabinet_ingest.services.feature_engine import FeatureEngine
    return FeatureEngine()


@pytest.fixture(scope="session")
def geometry_engine():
    """GeometryEngine with defaults (580 mm depth, unknown entities ignored)."""
    from cabinet_ingest.services.geometry_engine import GeometryEngine
    return GeometryEngine(default_depth_mm=580.0, unknown_policy="ignore")


@pytest.fixture(scope="session")
def extraction_engine():
    """
    CabinetExtractionEngine with explicit defaults so environment overrides
    never leak into assertions: 100 mm minimum, 3-entity blocks, inches when
    the header is silent.
    """
    from cabinet_ingest.services.extraction_engine import CabinetExtractionEngine
    return CabinetExtractionEngine(settings={
        "min_dimension_mm": 100.0,
        "min_block_entities": 3,
        "default_depth_mm": 580.0,
        "unknown_entity_policy": "ignore",
        "default_units": "imperial",
    })


@pytest.fixture
def stats():
    """Isolated stats tracker so tests don't share the module singleton."""
    from cabinet_ingest.services.perf_monitor import BatchStatsTracker
    return BatchStatsTracker()


@pytest.fixture
def processor(extraction_engine, stats):
    from cabinet_ingest.services.batch_processor import BatchProcessor
    return BatchProcessor(engine=extraction_engine, stats=stats)
