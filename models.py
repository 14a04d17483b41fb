"""
Pydantic models for the Family Tree application.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
import uuid


def generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def _id_or_none(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class Person(BaseModel):
    """Model representing a person in the family tree."""
    id: str = Field(default_factory=generate_id)
    names: Dict[str, str] = Field(default_factory=dict)  # locale -> display name
    given: str = ""
    surname: str = ""
    gender: str = ""  # M, F or "" (unknown)
    birth_year: str = ""
    birth_place: str = ""
    death_date: str = ""
    death_place: str = ""
    details: str = ""
    profession: str = ""
    archive_source: str = ""
    document_code: str = ""
    reliability: str = ""
    color: str = ""
    father: Optional[str] = None
    mother: Optional[str] = None
    spouse: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    # Layout only, never written to GEDCOM
    x: Optional[float] = None
    y: Optional[float] = None
    gen: Optional[int] = Field(default=None, exclude=True)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value)

    @field_validator("father", "mother", "spouse", mode="before")
    @classmethod
    def _coerce_relation(cls, value):
        return _id_or_none(value)

    @field_validator("children", mode="before")
    @classmethod
    def _coerce_children(cls, value):
        if value is None:
            return []
        return [str(v) for v in value if _id_or_none(v)]


class PersonCreate(BaseModel):
    """Model for creating a new person from the builder form."""
    name: str
    locale: Optional[str] = None
    gender: str = ""
    birth_year: str = ""
    birth_place: str = ""
    death_date: str = ""
    death_place: str = ""
    details: str = ""
    profession: str = ""
    archive_source: str = ""
    document_code: str = ""
    reliability: str = ""
    color: str = "#f5f1e8"
    father: Optional[str] = None
    mother: Optional[str] = None
    spouse: Optional[str] = None
    children: List[str] = Field(default_factory=list)

    @field_validator("father", "mother", "spouse", mode="before")
    @classmethod
    def _coerce_relation(cls, value):
        return _id_or_none(value)

    @field_validator("children", mode="before")
    @classmethod
    def _coerce_children(cls, value):
        if value is None:
            return []
        return [str(v) for v in value if _id_or_none(v)]


class PersonUpdate(PersonCreate):
    """Model for updating a person. The builder form always submits every field."""


class PositionUpdate(BaseModel):
    """Model for updating just the position."""
    x: float
    y: float


class FamilyUnit(BaseModel):
    """Family unit rebuilt at export time, never stored."""
    id: str
    husband_id: Optional[str] = None
    wife_id: Optional[str] = None
    child_ids: List[str] = Field(default_factory=list)


class TreeLink(BaseModel):
    """Edge derived from the person relation fields."""
    source: str
    target: str
    type: str  # "child" or "couple"
    mate: Optional[str] = None  # co-parent of a child link


class FamilyTree(BaseModel):
    """Model representing the entire family tree."""
    persons: Dict[str, Person] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def people(self) -> List[Person]:
        return list(self.persons.values())

    @classmethod
    def from_people(cls, people: List[Person], metadata: Optional[Dict[str, Any]] = None) -> "FamilyTree":
        return cls(persons={p.id: p for p in people}, metadata=metadata or {})


class HistoryState(BaseModel):
    """Model for storing undo/redo state."""
    tree: FamilyTree
    action: str
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class PersonIndexEntry(BaseModel):
    """Row of the search index kept beside a stored GEDCOM file."""
    id: str
    name: str


class GedcomCounts(BaseModel):
    individuals: int = 0
    families: int = 0
    events: int = 0


class GedcomImportResult(BaseModel):
    """Response after importing a GEDCOM file."""
    status: str = "imported"
    tree_id: Optional[str] = None
    persons: int
    counts: GedcomCounts


class ExportOptions(BaseModel):
    """Model for export configuration."""
    format: str = "png"  # png, jpg, pdf
    width: int = 1920
    height: int = 1080
    quality: int = 90  # For JPG
    page_size: str = "A4"  # For PDF: A4, Letter, Legal, A3
    orientation: str = "landscape"  # portrait, landscape
    dark: bool = False


class LayoutOptions(BaseModel):
    """Model for the force layout configuration."""
    width: float = 1200.0
    height: float = 800.0
    max_ticks: int = 300
    card_width: float = 220.0
    card_height: float = 120.0
    charge_strength: float = -1500.0
    generation_spacing: float = 200.0
    generation_strength: float = 1.2
    x_strength: float = 0.05
    couple_distance: float = 150.0
    couple_strength: float = 0.6
    child_distance: float = 240.0
    child_strength: float = 0.85
    warm_start: bool = True
    seed: Optional[int] = None


class ViewportOptions(BaseModel):
    """Viewport used by the fit/center camera operation."""
    width: float = 1200.0
    height: float = 800.0
