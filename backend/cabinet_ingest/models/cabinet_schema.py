"""
Catalog-facing output contract.

ExtractedCabinetData and ProcessingResult are what the catalog importer
consumes. Both serialize with camelCase keys (``cabinetType``,
``processedFiles``...) so the importer can map them straight onto product
records.
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field, computed_field
from pydantic.alias_generators import to_camel

CabinetCategory = Literal["Base", "Wall", "Tall", "Accessory"]

_MODEL_CONFIG = {
    "frozen": True,
    "populate_by_name": True,
    "alias_generator": to_camel,
}


class ExtractedCabinetData(BaseModel):
    """One cabinet product recovered from a drawing (or from one block/layer of it)."""
    filename: str = Field(..., description='Source file, "<file>::<block>" for block/layer tiers')
    name: str
    category: CabinetCategory = "Base"
    cabinet_type: str = "Standard"

    width: int = Field(..., gt=0, description="mm")
    height: int = Field(..., gt=0, description="mm")
    depth: int = Field(..., gt=0, description="mm")

    door_count: int = Field(1, ge=0, le=4)
    drawer_count: int = Field(0, ge=0, le=8)
    is_corner: bool = False
    is_blind: bool = False
    is_sink: bool = False
    has_false_front: bool = False
    has_adjustable_shelves: bool = False
    corner_type: Optional[Literal["l-shape", "blind", "diagonal"]] = None

    layers: list[str] = []
    entity_counts: dict[str, int] = {}

    model_config = _MODEL_CONFIG


class ProcessingResult(BaseModel):
    """Aggregate of one batch (one or more archives)."""
    cabinets: list[ExtractedCabinetData] = []
    errors: list[str] = []
    total_files: int = Field(0, ge=0)
    processed_files: int = Field(0, ge=0)

    model_config = _MODEL_CONFIG

    @computed_field
    @property
    def success(self) -> bool:
        return self.processed_files > 0

    def merge(self, other: "ProcessingResult", error_prefix: str = "") -> "ProcessingResult":
        """Return a new result holding both batches; ``other``'s errors get ``error_prefix``."""
        return ProcessingResult(
            cabinets=[*self.cabinets, *other.cabinets],
            errors=[*self.errors, *(f"{error_prefix}{e}" for e in other.errors)],
            total_files=self.total_files + other.total_files,
            processed_files=self.processed_files + other.processed_files,
        )
