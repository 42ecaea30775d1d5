"""
FeatureEngine — infers cabinet category, type, door/drawer counts and flags.

Inputs are a name hint (block name, layer name or filename, whichever is most
specific for the extraction tier), the candidate's entities and the names of
the layers involved. Name patterns always beat geometric inference; geometry
is only consulted when no name rule fires.

Every detector is an ordered rule list of ``(pattern, classification)``
pairs evaluated first-match-wins, so individual rules can be tested and new
ones added without touching control flow.
"""
import re
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from cabinet_ingest import config
from cabinet_ingest.models.drawing import Circle, Entity, Line, Polyline

logger = logging.getLogger("cabinet-ingest.extraction")

Rule = tuple[re.Pattern, str]
CountRule = tuple[re.Pattern, Callable[[re.Match], int]]


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


# ── Rule tables ───────────────────────────────────────────────────────────────

CATEGORY_RULES: list[Rule] = [
    (_rx(r"wall|overhead|upper"), "Wall"),
    (_rx(r"tall|pantry|full[- ]?height|tower"), "Tall"),
    (_rx(r"base|floor|sink|drawer|corner"), "Base"),
    (_rx(r"accessor|filler|plinth|kickboard|end[- ]?panel"), "Accessory"),
]
DEFAULT_CATEGORY = "Base"

CABINET_TYPE_RULES: list[Rule] = [
    (_rx(r"sink"), "Sink"),
    (_rx(r"corner"), "Corner"),
    (_rx(r"blind"), "Blind"),
    (_rx(r"drawer"), "Drawer"),
    (_rx(r"pantry|larder"), "Pantry"),
    (_rx(r"oven|appliance"), "Appliance"),
    (_rx(r"fridge|refrigerator"), "Fridge"),
    (_rx(r"rangehood|hood"), "Rangehood"),
]
DEFAULT_CABINET_TYPE = "Standard"

# Counts are a single digit: "600" in "base_600_drawer" is a width
DOOR_RULES: list[CountRule] = [
    (_rx(r"(?<!\d)(\d)\s*-?\s*doors?"), lambda m: int(m.group(1))),
    (_rx(r"\bopen\b(?!\s*end)"), lambda m: 0),
    (_rx(r"bi[- ]?fold|double"), lambda m: 2),
    (_rx(r"door"), lambda m: 1),
]

DRAWER_RULES: list[CountRule] = [
    (_rx(r"(?<!\d)(\d)\s*-?\s*drawers?"), lambda m: int(m.group(1))),
]

_DRAWER_KEYWORD = _rx(r"drawer")
_DOOR_KEYWORD = _rx(r"door")
_BAY_COUNT = _rx(r"(?<!\d)(\d)\s*-?\s*bays?")

FLAG_RULES: dict[str, re.Pattern] = {
    "corner": _rx(r"corner|l[- ]shape"),
    "blind": _rx(r"blind"),
    "sink": _rx(r"sink"),
    "false_front": _rx(r"false[- ]?front|tilt[- ]?out"),
    "adjustable_shelves": _rx(r"shel(f|ves)|adjustable"),
    "diagonal": _rx(r"diagonal|angled?\b"),
}


def first_match(rules: Sequence[Rule], text: str) -> Optional[str]:
    for pattern, label in rules:
        if pattern.search(text):
            return label
    return None


def first_count(rules: Sequence[CountRule], text: str) -> Optional[int]:
    for pattern, count in rules:
        m = pattern.search(text)
        if m:
            return count(m)
    return None


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


# ── Geometric signatures ──────────────────────────────────────────────────────

def find_rectangles(entities: Iterable[Entity]) -> list[tuple[float, float]]:
    """(width, height) of closed four-vertex polylines."""
    rects = []
    for e in entities:
        if not isinstance(e, Polyline) or not e.closed:
            continue
        vs = list(e.vertices)
        # Some exporters repeat the first vertex to close the loop
        if len(vs) == 5 and vs[0].isclose(vs[-1]):
            vs = vs[:-1]
        if len(vs) != 4:
            continue
        xs = [v.x for v in vs]
        ys = [v.y for v in vs]
        rects.append((max(xs) - min(xs), max(ys) - min(ys)))
    return rects


def count_door_rectangles(entities: Iterable[Entity]) -> int:
    return sum(
        1 for w, h in find_rectangles(entities)
        if h > w * config.DOOR_RECT_ASPECT_RATIO
    )


def count_drawer_dividers(entities: Iterable[Entity]) -> int:
    """Horizontal lines are drawer fronts; one of them is the carcass top/bottom edge."""
    horizontal = [
        e for e in entities
        if isinstance(e, Line)
        and abs(e.start.y - e.end.y) < config.DRAWER_LINE_MAX_SLOPE
        and abs(e.start.x - e.end.x) > config.DRAWER_LINE_MIN_LENGTH
    ]
    return max(0, len(horizontal) - 1)


def has_l_shape(entities: Iterable[Entity]) -> bool:
    return any(
        isinstance(e, Polyline) and len(e.vertices) >= config.CORNER_OUTLINE_MIN_VERTICES
        for e in entities
    )


def has_sink_cutout(entities: Iterable[Entity]) -> bool:
    return any(
        isinstance(e, Circle) and e.radius > config.SINK_CUTOUT_MIN_RADIUS
        for e in entities
    )


# ── Engine ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CabinetFeatures:
    category: str
    cabinet_type: str
    door_count: int
    drawer_count: int
    is_corner: bool
    is_blind: bool
    is_sink: bool
    has_false_front: bool
    has_adjustable_shelves: bool
    corner_type: Optional[str] = None


class FeatureEngine:
    """Stateless heuristics over names and geometry."""

    def detect_category(self, text: str) -> str:
        return first_match(CATEGORY_RULES, text) or DEFAULT_CATEGORY

    def detect_cabinet_type(self, name_hint: str) -> str:
        return first_match(CABINET_TYPE_RULES, name_hint) or DEFAULT_CABINET_TYPE

    def detect_door_count(self, text: str, entities: Sequence[Entity]) -> int:
        named = first_count(DOOR_RULES, text)
        if named is not None:
            return clamp(named, 0, config.MAX_DOOR_COUNT)
        return clamp(count_door_rectangles(entities) or 1, 0, config.MAX_DOOR_COUNT)

    def detect_drawer_count(self, text: str, entities: Sequence[Entity]) -> int:
        named = first_count(DRAWER_RULES, text)
        if named is not None:
            return clamp(named, 0, config.MAX_DRAWER_COUNT)
        count = count_drawer_dividers(entities)
        if count == 0 and _DRAWER_KEYWORD.search(text) and not _DOOR_KEYWORD.search(text):
            # "Drawer bank", "3 bay drawer": a drawer unit with no dividers drawn
            bays = _BAY_COUNT.search(text)
            count = int(bays.group(1)) if bays else 1
        return clamp(count, 0, config.MAX_DRAWER_COUNT)

    def analyze(
        self,
        name_hint: str,
        entities: Sequence[Entity],
        layer_names: Iterable[str] = (),
        permissive_shelves: bool = False,
    ) -> CabinetFeatures:
        """
        Derive all features for one cabinet candidate.

        Args:
            name_hint: Block/layer/file name for the current tier.
            entities: The candidate's geometry.
            layer_names: Layers involved; their names join the name hint for
                         category and flag detection.
            permissive_shelves: Whole-drawing tier: any non-drawer cabinet is
                                assumed to have adjustable shelves.
        """
        # Filenames use underscores as word separators: "base_2_door.dxf"
        text = re.sub(r"_+", " ", " ".join([name_hint, *layer_names])).lower()

        cabinet_type = self.detect_cabinet_type(name_hint)
        door_count = self.detect_door_count(text, entities)
        drawer_count = self.detect_drawer_count(text, entities)

        is_corner = bool(FLAG_RULES["corner"].search(text)) or has_l_shape(entities)
        is_blind = bool(FLAG_RULES["blind"].search(text))
        is_sink = bool(FLAG_RULES["sink"].search(text)) or has_sink_cutout(entities)
        has_false_front = is_sink and bool(FLAG_RULES["false_front"].search(text))

        has_adjustable_shelves = bool(FLAG_RULES["adjustable_shelves"].search(text))
        if permissive_shelves and not has_adjustable_shelves:
            has_adjustable_shelves = drawer_count == 0 and cabinet_type != "Drawer"

        corner_type = None
        if is_blind:
            corner_type = "blind"
        elif is_corner and FLAG_RULES["diagonal"].search(text):
            corner_type = "diagonal"
        elif is_corner:
            corner_type = "l-shape"

        return CabinetFeatures(
            category=self.detect_category(text),
            cabinet_type=cabinet_type,
            door_count=door_count,
            drawer_count=drawer_count,
            is_corner=is_corner,
            is_blind=is_blind,
            is_sink=is_sink,
            has_false_front=has_false_front,
            has_adjustable_shelves=has_adjustable_shelves,
            corner_type=corner_type,
        )
