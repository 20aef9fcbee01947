"""
Core domain models for the card studio.
These are framework-agnostic and can be used across all services.

Field geometry is always expressed in percentages (0-100) of the template's
native pixel size. Nothing here validates; see services.geometry for the
normalization that keeps every Field in range.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple
import uuid


class FieldKind(str, Enum):
    """What a field is filled with at render time."""
    PHOTO = "photo"
    TEXT = "text"


class FieldShape(str, Enum):
    """Clip shape used when drawing a field."""
    RECTANGLE = "rectangle"
    ROUNDED = "rounded"
    CIRCLE = "circle"


class TextAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class OwnerTier(str, Enum):
    """Subscription tier of a project owner. Only consulted for watermarking."""
    FREE = "free"
    ELITE = "elite"


@dataclass
class Shadow:
    """Drop shadow applied to a field's own fill/stroke."""
    enabled: bool = False
    blur: float = 8.0
    color: str = "#00000080"
    offset_x: float = 4.0
    offset_y: float = 4.0


@dataclass
class Field:
    """
    A positioned, styled placeholder on a template.

    `name` doubles as the prompt on the submission form and as the key into
    submitted values. Text style attributes are ignored for photo fields.
    """
    id: str
    kind: FieldKind
    name: str
    x: float = 10.0
    y: float = 10.0
    width: float = 20.0
    height: float = 5.0
    shape: FieldShape = FieldShape.RECTANGLE
    # Text style
    font_family: str = "Inter"
    font_weight: int = 400
    font_size: float = 16.0
    italic: bool = False
    align: TextAlign = TextAlign.LEFT
    color: str = "#000000"
    letter_spacing: float = 0.0
    line_height: float = 1.2
    # Common style
    border_enabled: bool = False
    border_width: float = 2.0
    border_color: str = "#000000"
    background_color: str = "#ffffff"
    background_opacity: float = 0.0
    opacity: float = 1.0
    rotation: float = 0.0
    shadow: Shadow = field(default_factory=Shadow)
    z_index: int = 0

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass
class Project:
    """
    A card template: background image plus an ordered set of fields.

    Field order is paint order (z_index), not creation order.
    """
    id: str
    name: str
    template_image_url: Optional[str] = None
    template_width: Optional[int] = None
    template_height: Optional[int] = None
    owner_tier: OwnerTier = OwnerTier.FREE
    status: str = "active"
    fields: List[Field] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())


@dataclass
class Submission:
    """
    One participant's data and the card generated from it.

    Captured once and never mutated after the card is produced.
    """
    id: str
    project_id: str
    participant_name: str
    field_values: Dict[str, str] = field(default_factory=dict)
    photo_url: Optional[str] = None
    generated_card_url: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())


@dataclass(frozen=True)
class HistoryState:
    """Immutable snapshot of an editor's field list, used for undo/redo."""
    fields: Tuple[Field, ...]
    timestamp: float
