"""
Render service: turns laid-out people and links into backend-neutral draw
commands, plus the fit/center camera math.

Nothing here touches a drawing surface. The export service replays the
commands with reportlab or Pillow; a browser view can do the same with SVG.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple, Union

from models import Person, TreeLink
from services.naming import display_name, normalize_gender

logger = logging.getLogger(__name__)

CARD_WIDTH = 220.0
CARD_HEIGHT = 120.0
CARD_RADIUS = 6.0
CHILD_ELBOW_RATIO = 0.55
MIN_SCALE = 0.2
MAX_SCALE = 2.8
FIT_PADDING = 0.9
MIN_VIEWPORT = (320.0, 520.0)

PALETTE = {
    False: {
        "couple": "#5d4037",
        "couple_inner": "#f5f1e8",
        "child": "#6b8e23",
        "card": "#f5f1e8",
        "card_stroke": "#e8dfca",
        "name": "#2c1810",
        "birth": "#5d4037",
        "death": "#777777",
        "place": "#8a8a8a",
        "details": "#7f746f",
        "background": "#ffffff",
    },
    True: {
        "couple": "#d4af37",
        "couple_inner": "#2c1810",
        "child": "#556b2f",
        "card": "#3e2723",
        "card_stroke": "#2c1810",
        "name": "#f5f1e8",
        "birth": "#d4af37",
        "death": "#aaaaaa",
        "place": "#b0b0b0",
        "details": "#c8c8c8",
        "background": "#1b1b1b",
    },
}

GENDER_COLORS = {"M": "#3498db", "F": "#e74c3c"}

Point = Tuple[float, float]


@dataclass(frozen=True)
class PathCommand:
    kind: str  # couple-outer, couple-inner, child
    points: Tuple[Point, ...]
    color: str
    width: float
    opacity: float = 1.0


@dataclass(frozen=True)
class CardCommand:
    id: str
    x: float  # top-left corner
    y: float
    width: float
    height: float
    fill: str
    stroke: str
    radius: float = CARD_RADIUS


@dataclass(frozen=True)
class TextCommand:
    x: float  # centre of the text baseline
    y: float
    text: str
    size: float
    color: str
    bold: bool = False
    italic: bool = False


DrawCommand = Union[PathCommand, CardCommand, TextCommand]


@dataclass(frozen=True)
class CameraTransform:
    scale: float
    translate_x: float
    translate_y: float

    def apply(self, x: float, y: float) -> Point:
        return self.translate_x + x * self.scale, self.translate_y + y * self.scale


def couple_path(source: Point, target: Point, card_width: float = CARD_WIDTH) -> Tuple[Point, Point]:
    """Straight segment between the facing card edges of two partners."""
    direction = 1 if source[0] <= target[0] else -1
    start = (source[0] + direction * card_width / 2, source[1])
    end = (target[0] - direction * card_width / 2, target[1])
    return start, end


def child_path(
    parent: Point,
    child: Point,
    mate: Optional[Point] = None,
    card_height: float = CARD_HEIGHT,
) -> Tuple[Point, Point, Point, Point]:
    """
    Orthogonal elbow from below the parents to the top of the child card.

    Starts under the midpoint of the two parents (or under the single parent),
    drops to a horizontal bar, runs across and drops into the child.
    """
    if mate is not None:
        start_x = (parent[0] + mate[0]) / 2
        start_y = max(parent[1], mate[1]) + card_height / 2
    else:
        start_x = parent[0]
        start_y = parent[1] + card_height / 2

    end_x = child[0]
    end_y = child[1] - card_height / 2
    mid_y = start_y + (end_y - start_y) * CHILD_ELBOW_RATIO
    return (start_x, start_y), (start_x, mid_y), (end_x, mid_y), (end_x, end_y)


def _truncate(text: str, limit: int) -> str:
    text = str(text or "")
    return text[: limit - 2] + "..." if len(text) > limit else text


def _positions_from_people(people: List[Person]) -> Dict[str, Point]:
    return {p.id: (p.x, p.y) for p in people if p.x is not None and p.y is not None}


def _card_commands(person: Person, center: Point, card_width: float, card_height: float,
                   colors: Mapping[str, str], locale: Optional[str]) -> List[DrawCommand]:
    x, y = center
    commands: List[DrawCommand] = [
        CardCommand(
            id=person.id,
            x=x - card_width / 2,
            y=y - card_height / 2,
            width=card_width,
            height=card_height,
            fill=person.color or colors["card"],
            stroke=colors["card_stroke"],
        ),
        TextCommand(x, y - 32, _truncate(display_name(person, locale), 22), 14, colors["name"], bold=True),
    ]

    gender = normalize_gender(person.gender)
    if gender:
        commands.append(TextCommand(x, y - 14, gender, 12, GENDER_COLORS[gender]))
    if person.birth_year:
        commands.append(TextCommand(x, y + 2, f"b. {person.birth_year}", 10, colors["birth"]))
    if person.death_date:
        commands.append(TextCommand(x, y + 14, f"d. {person.death_date}", 10, colors["death"]))

    place = person.birth_place or person.death_place
    if place:
        commands.append(TextCommand(x, y + 28, _truncate(place, 25), 9, colors["place"], italic=True))
    details = (person.details or "").strip().splitlines()
    if details:
        first_line = details[0]
        commands.append(TextCommand(x, y + 42, _truncate(first_line, 30), 9, colors["details"]))
    return commands


def draw_commands(
    people: List[Person],
    links: List[TreeLink],
    positions: Optional[Mapping[str, Mapping[str, float]]] = None,
    card_width: float = CARD_WIDTH,
    card_height: float = CARD_HEIGHT,
    dark: bool = False,
    locale: Optional[str] = None,
) -> List[DrawCommand]:
    """
    Build the draw list in paint order: couple outer strokes, couple inner
    strokes, child elbows, then cards with their text.

    ``positions`` maps id -> {"x", "y"}; people missing from it fall back to
    their stored x/y and are skipped when they have none.
    """
    colors = PALETTE[bool(dark)]
    points = _positions_from_people(people)
    if positions:
        for person_id, pos in positions.items():
            points[person_id] = (float(pos["x"]), float(pos["y"]))

    outer: List[DrawCommand] = []
    inner: List[DrawCommand] = []
    elbows: List[DrawCommand] = []

    for link in links:
        source, target = points.get(link.source), points.get(link.target)
        if source is None or target is None:
            continue
        if link.type == "couple":
            segment = couple_path(source, target, card_width)
            outer.append(PathCommand("couple-outer", segment, colors["couple"], 12))
            inner.append(PathCommand("couple-inner", segment, colors["couple_inner"], 4))
        else:
            mate = points.get(link.mate) if link.mate else None
            elbows.append(PathCommand(
                "child", child_path(source, target, mate, card_height), colors["child"], 3, opacity=0.8
            ))

    cards: List[DrawCommand] = []
    for person in people:
        center = points.get(person.id)
        if center is None:
            continue
        cards.extend(_card_commands(person, center, card_width, card_height, colors, locale))

    return outer + inner + elbows + cards


def fit_transform(
    positions: Mapping[str, Mapping[str, float]],
    width: float,
    height: float,
    card_width: float = CARD_WIDTH,
    card_height: float = CARD_HEIGHT,
    min_viewport: Tuple[float, float] = MIN_VIEWPORT,
) -> Optional[CameraTransform]:
    """
    Camera transform that fits every node into a width x height viewport.

    Returns None when there is nothing finite to fit.
    """
    xs = [float(p["x"]) for p in positions.values() if p.get("x") is not None and math.isfinite(p["x"])]
    ys = [float(p["y"]) for p in positions.values() if p.get("y") is not None and math.isfinite(p["y"])]
    if not xs or not ys:
        return None

    width = max(min_viewport[0], width)
    height = max(min_viewport[1], height)

    min_x, max_x = min(xs) - card_width / 2, max(xs) + card_width / 2
    min_y, max_y = min(ys) - card_height / 2, max(ys) + card_height / 2
    bounds_width = max(max_x - min_x, card_width)
    bounds_height = max(max_y - min_y, card_height)

    scale = min(width / bounds_width, height / bounds_height)
    scale = max(MIN_SCALE, min(scale * FIT_PADDING, MAX_SCALE))

    mid_x = (min_x + max_x) / 2
    mid_y = (min_y + max_y) / 2
    return CameraTransform(
        scale=scale,
        translate_x=width / 2 - mid_x * scale,
        translate_y=height / 2 - mid_y * scale,
    )
