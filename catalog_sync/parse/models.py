"""Data models for catalog records and merge actions."""
from typing import Any, Optional
from pydantic import BaseModel, Field

# Package-type id on the vendor side -> field name in snapshots
PACKAGE_TYPES: dict[int, str] = {
    1: "tape_reel",
    2: "cut_tape",
    3: "digi_reel",
}


class Snapshot(BaseModel):
    """A versioned fact captured on a calendar day."""

    hash: str = Field(default="", description="Content hash of the payload (dedup identity)")
    day: int = Field(..., ge=1, le=31)
    month: int = Field(..., ge=1, le=12)
    year: int

    def payload(self) -> dict[str, Any]:
        """Payload fields only (no hash, no capture date)."""
        return self.model_dump(exclude={"hash", "day", "month", "year"})


class PriceSnapshot(Snapshot):
    """Price breaks per package type."""

    tape_reel: list[dict[str, Any]] = Field(default_factory=list)
    cut_tape: list[dict[str, Any]] = Field(default_factory=list)
    digi_reel: list[dict[str, Any]] = Field(default_factory=list)


class InventorySnapshot(Snapshot):
    """Available quantity per package type."""

    tape_reel: int = 0
    cut_tape: int = 0
    digi_reel: int = 0


class CatalogRecord(BaseModel):
    """Canonical representation of one vendor part."""

    part_number: str = Field(..., description="Manufacturer part number (store key)")
    product_description: str = ""
    detailed_description: str = ""
    product_url: str = ""
    datasheet_url: str = ""
    photo_url: str = ""
    video_url: str = ""
    status: str = ""
    resistance: str = ""
    resistance_tolerance: str = ""
    power: str = ""
    composition: str = ""
    features: list[str] = Field(default_factory=list)
    temp_coefficient: str = ""
    operating_temperature: str = ""
    digikey_case_size: str = ""
    case_size: str = ""
    ratings: list[str] = Field(default_factory=list)
    dimensions: str = ""
    height: str = ""
    terminations_number: int = 0
    fail_rate: str = ""
    category: str = ""
    sub_category: str = ""
    series: str = ""
    classifications: dict[str, Any] = Field(default_factory=dict)
    pricing: list[PriceSnapshot] = Field(default_factory=list)
    inventory: list[InventorySnapshot] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        """Convert to a store document."""
        return self.model_dump(mode="json")


class InsertAction(BaseModel):
    """Store a record that is not in the store yet."""

    record: CatalogRecord


class UpdateAction(BaseModel):
    """Replace the history sequences of an existing record.

    fields carries the incoming descriptive columns so the written row is
    complete even when it has to be inserted.
    """

    part_number: str
    pricing: list[dict[str, Any]]
    inventory: list[dict[str, Any]]
    fields: dict[str, Any] = Field(default_factory=dict)

    def to_row(self) -> dict[str, Any]:
        return {
            **self.fields,
            "part_number": self.part_number,
            "pricing": self.pricing,
            "inventory": self.inventory,
        }


class MergePlan(BaseModel):
    """Batched store operations produced by the history merge."""

    inserts: list[InsertAction] = Field(default_factory=list)
    updates: list[UpdateAction] = Field(default_factory=list)
    unchanged: int = 0

    def extend(self, other: "MergePlan") -> None:
        self.inserts.extend(other.inserts)
        self.updates.extend(other.updates)
        self.unchanged += other.unchanged

    @property
    def is_empty(self) -> bool:
        return not self.inserts and not self.updates


class WriteSummary(BaseModel):
    """Outcome of applying a merge plan."""

    inserted: int = 0
    updated: int = 0
    error: Optional[str] = None
