"""
CabinetExtractionEngine — turns one ParsedDrawing into cabinet records.

Extraction runs an ordered chain of strategies (tiers); the first tier that
produces at least one cabinet wins and the remaining tiers never run:

  1. blocks      every named block definition is a cabinet candidate
  2. inserts     block definitions referenced by INSERTs, with insert scale
  3. layers      one candidate per cabinet-named layer
  4. whole_file  the entire drawing is one cabinet

A drawing that uses blocks therefore never also yields layer or whole-file
cabinets, while drawings without blocks still degrade to something usable.
Candidates smaller than the minimum dimension are dropped silently; they are
title-block fragments and annotation symbols, not failures.
"""
import os
import re
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

from cabinet_ingest import config
from cabinet_ingest.models.cabinet_schema import ExtractedCabinetData
from cabinet_ingest.models.drawing import Entity, Extents, Insert, ParsedDrawing
from cabinet_ingest.services.feature_engine import FeatureEngine
from cabinet_ingest.services.geometry_engine import GeometryEngine

logger = logging.getLogger("cabinet-ingest.extraction")

_CABINET_LAYER = re.compile(config.CABINET_LAYER_PATTERN, re.IGNORECASE)


@dataclass(frozen=True)
class ExtractionOutcome:
    tier: Optional[str]
    cabinets: tuple[ExtractedCabinetData, ...] = ()


def clean_name(raw: str) -> str:
    """'base_cab-600.dxf' → 'Base Cab 600'."""
    name = os.path.basename(raw.replace("\\", "/"))
    name = re.sub(r"\.dxf$", "", name, flags=re.IGNORECASE)
    name = re.sub(r"[_-]+", " ", name)
    return " ".join(word.capitalize() for word in name.split())


def _unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _entity_layers(entities: Iterable[Entity]) -> list[str]:
    return _unique(e.layer for e in entities)


class CabinetExtractionEngine:
    """
    Extraction tier chain over one parsed drawing.

    ``settings`` overrides any key of ``config.EXTRACTION_DEFAULTS`` for this
    instance (min_dimension_mm, min_block_entities, default_depth_mm,
    unknown_entity_policy, default_units).
    """

    def __init__(self, settings: Optional[Dict[str, Any]] = None) -> None:
        cfg = {**config.EXTRACTION_DEFAULTS, **(settings or {})}

        self.min_dimension_mm: float = float(cfg["min_dimension_mm"])
        self.min_block_entities: int = int(cfg["min_block_entities"])
        self.default_units: str = str(cfg["default_units"]).lower()

        self.geometry = GeometryEngine(
            default_depth_mm=float(cfg["default_depth_mm"]),
            unknown_policy=str(cfg["unknown_entity_policy"]).lower(),
        )
        self.features = FeatureEngine()

        strategies: Dict[str, Callable[[ParsedDrawing, str], list[ExtractedCabinetData]]] = {
            "blocks": self._extract_blocks,
            "inserts": self._extract_inserts,
            "layers": self._extract_layers,
            "whole_file": self._extract_whole_file,
        }
        self._tiers = [(name, strategies[name]) for name in config.TIER_ORDER]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(self, drawing: ParsedDrawing, filename: str) -> ExtractionOutcome:
        """Run the tiers in order; return the first non-empty result."""
        for tier_name, strategy in self._tiers:
            cabinets = strategy(drawing, filename)
            if cabinets:
                logger.debug(
                    f"{filename}: {len(cabinets)} cabinet(s) from tier '{tier_name}'",
                    extra={"source_file": filename, "tier": tier_name},
                )
                return ExtractionOutcome(tier=tier_name, cabinets=tuple(cabinets))
        return ExtractionOutcome(tier=None)

    # ------------------------------------------------------------------
    # Candidate → record
    # ------------------------------------------------------------------

    def _build_cabinet(
        self,
        filename: str,
        name_hint: str,
        entities: Sequence[Entity],
        layer_names: Sequence[str],
        units_are_metric: bool,
        extents: Optional[Extents] = None,
        scale_x: float = 1.0,
        scale_y: float = 1.0,
        allow_default_box: bool = False,
        permissive_shelves: bool = False,
    ) -> Optional[ExtractedCabinetData]:
        if extents is None:
            extents = self.geometry.extents(entities)
        if extents is None and not allow_default_box:
            logger.debug(f"{filename}: '{name_hint}' has no measurable geometry, skipped")
            return None

        dims = self.geometry.dimensions_mm(extents, units_are_metric, scale_x, scale_y)
        if dims.width < self.min_dimension_mm or dims.height < self.min_dimension_mm:
            logger.debug(
                f"{filename}: '{name_hint}' rejected at {dims.width}x{dims.height}mm "
                f"(min {self.min_dimension_mm}mm)"
            )
            return None

        f = self.features.analyze(name_hint, entities, layer_names, permissive_shelves)
        return ExtractedCabinetData(
            filename=filename,
            name=clean_name(name_hint),
            category=f.category,
            cabinet_type=f.cabinet_type,
            width=dims.width,
            height=dims.height,
            depth=dims.depth,
            door_count=f.door_count,
            drawer_count=f.drawer_count,
            is_corner=f.is_corner,
            is_blind=f.is_blind,
            is_sink=f.is_sink,
            has_false_front=f.has_false_front,
            has_adjustable_shelves=f.has_adjustable_shelves,
            corner_type=f.corner_type,
            layers=list(layer_names),
            entity_counts=dict(Counter(e.dxftype for e in entities)),
        )

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_layout_block(name: str) -> bool:
        lowered = name.lower()
        return any(marker in lowered for marker in config.LAYOUT_BLOCK_MARKERS)

    def _extract_blocks(self, drawing: ParsedDrawing, filename: str) -> list[ExtractedCabinetData]:
        cabinets = []
        for block in drawing.blocks:
            if not block.name or block.name.startswith(config.RESERVED_BLOCK_PREFIXES):
                continue
            if self._is_layout_block(block.name) or len(block.entities) < self.min_block_entities:
                continue
            cabinet = self._build_cabinet(
                filename=f"{filename}::{block.name}",
                name_hint=block.name,
                entities=block.entities,
                layer_names=_entity_layers(block.entities),
                units_are_metric=drawing.header.units_are_metric,
            )
            if cabinet is not None:
                cabinets.append(cabinet)
        return cabinets

    def _extract_inserts(self, drawing: ParsedDrawing, filename: str) -> list[ExtractedCabinetData]:
        # First reference of each block wins; repeated placements are the same product
        inserts: Dict[str, Insert] = {}
        for e in drawing.entities:
            if isinstance(e, Insert) and e.name and e.name not in inserts:
                inserts[e.name] = e

        cabinets = []
        for name, insert in inserts.items():
            block = drawing.get_block(name)
            if block is None:
                logger.debug(f"{filename}: INSERT references undefined block '{name}'")
                continue
            # Anonymous (*U) definitions are real geometry once referenced; layouts never are
            if self._is_layout_block(name) or len(block.entities) < self.min_block_entities:
                continue
            cabinet = self._build_cabinet(
                filename=f"{filename}::{name}",
                name_hint=name.lstrip("*"),
                entities=block.entities,
                layer_names=_entity_layers(block.entities),
                units_are_metric=drawing.header.units_are_metric,
                scale_x=insert.scale.x,
                scale_y=insert.scale.y,
            )
            if cabinet is not None:
                cabinets.append(cabinet)
        return cabinets

    def _extract_layers(self, drawing: ParsedDrawing, filename: str) -> list[ExtractedCabinetData]:
        by_layer: Dict[str, list[Entity]] = {}
        for e in drawing.entities:
            by_layer.setdefault(e.layer, []).append(e)

        candidates = [
            name for name in _unique([*drawing.layer_names, *by_layer])
            if _CABINET_LAYER.search(name)
        ]

        cabinets = []
        for layer_name in candidates:
            entities = by_layer.get(layer_name, [])
            if len(entities) < self.min_block_entities:
                continue
            cabinet = self._build_cabinet(
                filename=f"{filename}::{layer_name}",
                name_hint=layer_name,
                entities=entities,
                layer_names=[layer_name],
                units_are_metric=drawing.header.units_are_metric,
            )
            if cabinet is not None:
                cabinets.append(cabinet)
        return cabinets

    def _extract_whole_file(self, drawing: ParsedDrawing, filename: str) -> list[ExtractedCabinetData]:
        cabinet = self._build_cabinet(
            filename=filename,
            name_hint=os.path.basename(filename.replace("\\", "/")),
            entities=drawing.entities,
            layer_names=drawing.layer_names or _entity_layers(drawing.entities),
            units_are_metric=drawing.header.units_are_metric,
            extents=drawing.header.extents,
            allow_default_box=True,
            permissive_shelves=True,
        )
        return [cabinet] if cabinet is not None else []
