"""
Layout service: generation-constrained force simulation for the tree view.

``tick`` is a pure function from one SimulationState to the next, so the
physics can be tested without any drawing surface. ``ForceSimulation`` wraps
it for interactive use (dragging, pinning, stopping when the view goes away)
and ``calculate_layout`` runs it to rest for the API.
"""
import logging
import math
import random
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from errors import LayoutError
from models import FamilyTree, LayoutOptions, Person, TreeLink
from services.generation_service import build_links, solve_generations

logger = logging.getLogger(__name__)

ALPHA_MIN = 0.001
ALPHA_DECAY = 1 - ALPHA_MIN ** (1 / 300)
VELOCITY_DECAY = 0.4
DRAG_ALPHA_TARGET = 0.3
DISTANCE_MIN2 = 1.0


@dataclass
class SimNode:
    id: str
    x: float
    y: float
    gen: int = 0
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None
    fy: Optional[float] = None


@dataclass
class SimLink:
    source: str
    target: str
    type: str
    mate: Optional[str] = None


@dataclass
class SimulationState:
    nodes: List[SimNode]
    links: List[SimLink] = field(default_factory=list)
    alpha: float = 1.0
    alpha_target: float = 0.0
    ticks: int = 0

    def node_map(self) -> Dict[str, SimNode]:
        return {n.id: n for n in self.nodes}

    @property
    def settled(self) -> bool:
        return self.alpha < ALPHA_MIN


def create_state(
    people: List[Person],
    links: List[TreeLink],
    generations: Dict[str, int],
    options: LayoutOptions,
    rng: Optional[random.Random] = None,
) -> SimulationState:
    """Build the initial state, reusing stored x/y when warm starting."""
    rng = rng or random.Random(options.seed)
    cx, cy = options.width / 2, options.height / 2

    nodes = []
    for person in people:
        warm = options.warm_start and person.x is not None and person.y is not None
        nodes.append(SimNode(
            id=person.id,
            x=person.x if warm else cx + (rng.random() - 0.5) * 50,
            y=person.y if warm else cy + (rng.random() - 0.5) * 50,
            gen=generations.get(person.id, 0),
        ))

    ids = {n.id for n in nodes}
    sim_links = [
        SimLink(source=l.source, target=l.target, type=l.type, mate=l.mate if l.mate in ids else None)
        for l in links
        if l.source in ids and l.target in ids
    ]
    return SimulationState(nodes=nodes, links=sim_links)


def _jiggle(rng: random.Random) -> float:
    return (rng.random() - 0.5) * 1e-6


def _apply_pair_forces(nodes: List[SimNode], alpha: float, options: LayoutOptions, rng: random.Random):
    """Many-body repulsion and collision in one pass over node pairs."""
    radius = options.card_width * 0.6
    min_gap = radius * 2
    strength = options.charge_strength

    count = len(nodes)
    for i in range(count):
        a = nodes[i]
        for j in range(i + 1, count):
            b = nodes[j]

            dx = b.x - a.x
            dy = b.y - a.y
            if dx == 0:
                dx = _jiggle(rng)
            if dy == 0:
                dy = _jiggle(rng)
            l2 = dx * dx + dy * dy
            if l2 < DISTANCE_MIN2:
                l2 = math.sqrt(DISTANCE_MIN2 * l2)
            w = strength * alpha / l2
            a.vx += dx * w
            a.vy += dy * w
            b.vx -= dx * w
            b.vy -= dy * w

            # collision uses the positions the nodes are about to move to
            px = (a.x + a.vx) - (b.x + b.vx)
            py = (a.y + a.vy) - (b.y + b.vy)
            d2 = px * px + py * py
            if d2 < min_gap * min_gap:
                if px == 0:
                    px = _jiggle(rng)
                if py == 0:
                    py = _jiggle(rng)
                d = math.sqrt(px * px + py * py)
                push = (min_gap - d) / d * 0.5
                a.vx += px * push
                a.vy += py * push
                b.vx -= px * push
                b.vy -= py * push


def _apply_center(nodes: List[SimNode], options: LayoutOptions):
    if not nodes:
        return
    sx = sum(n.x for n in nodes) / len(nodes) - options.width / 2
    sy = sum(n.y for n in nodes) / len(nodes) - options.height / 2
    for n in nodes:
        n.x -= sx
        n.y -= sy


def _apply_axis_forces(nodes: List[SimNode], alpha: float, options: LayoutOptions):
    cx = options.width / 2
    for n in nodes:
        n.vy += (n.gen * options.generation_spacing - n.y) * options.generation_strength * alpha
        n.vx += (cx - n.x) * options.x_strength * alpha


def _apply_links(state: SimulationState, nodes: Dict[str, SimNode], options: LayoutOptions, rng: random.Random):
    degree: Dict[str, int] = {}
    for link in state.links:
        degree[link.source] = degree.get(link.source, 0) + 1
        degree[link.target] = degree.get(link.target, 0) + 1

    for link in state.links:
        source, target = nodes[link.source], nodes[link.target]
        if link.type == "couple":
            distance, strength = options.couple_distance, options.couple_strength
        else:
            distance, strength = options.child_distance, options.child_strength

        dx = target.x + target.vx - source.x - source.vx or _jiggle(rng)
        dy = target.y + target.vy - source.y - source.vy or _jiggle(rng)
        length = math.sqrt(dx * dx + dy * dy)
        scale = (length - distance) / length * state.alpha * strength
        dx *= scale
        dy *= scale

        bias = degree[link.source] / (degree[link.source] + degree[link.target])
        target.vx -= dx * bias
        target.vy -= dy * bias
        source.vx += dx * (1 - bias)
        source.vy += dy * (1 - bias)


def tick(state: SimulationState, options: LayoutOptions, rng: Optional[random.Random] = None) -> SimulationState:
    """Advance the simulation by one step and return the new state."""
    rng = rng or random.Random(state.ticks)
    nxt = deepcopy(state)
    nxt.alpha += (nxt.alpha_target - nxt.alpha) * ALPHA_DECAY
    nxt.ticks += 1

    nodes = nxt.nodes
    by_id = nxt.node_map()

    _apply_pair_forces(nodes, nxt.alpha, options, rng)
    _apply_center(nodes, options)
    _apply_axis_forces(nodes, nxt.alpha, options)
    _apply_links(nxt, by_id, options, rng)

    for n in nodes:
        if n.fx is None:
            n.vx *= 1 - VELOCITY_DECAY
            n.x += n.vx
        else:
            n.x = n.fx
            n.vx = 0.0
        if n.fy is None:
            n.vy *= 1 - VELOCITY_DECAY
            n.y += n.vy
        else:
            n.y = n.fy
            n.vy = 0.0

    return nxt


class ForceSimulation:
    """
    Stateful wrapper around ``tick`` for an interactive view.

    Once ``stop`` has been called further steps are ignored and the tick
    callback is never invoked again.
    """

    def __init__(
        self,
        state: SimulationState,
        options: LayoutOptions,
        on_tick: Optional[Callable[[SimulationState], None]] = None,
    ):
        self.state = state
        self.options = options
        self.on_tick = on_tick
        self.stopped = False
        self._rng = random.Random(options.seed)

    @classmethod
    def for_people(cls, people: List[Person], options: LayoutOptions, on_tick=None) -> "ForceSimulation":
        links = build_links(people)
        generations = solve_generations(people, links)
        state = create_state(people, links, generations, options, random.Random(options.seed))
        return cls(state, options, on_tick)

    def step(self) -> SimulationState:
        if self.stopped:
            return self.state
        self.state = tick(self.state, self.options, self._rng)
        if self.on_tick is not None and not self.stopped:
            self.on_tick(self.state)
        return self.state

    def run(self, max_ticks: Optional[int] = None) -> SimulationState:
        limit = self.options.max_ticks if max_ticks is None else max_ticks
        while not self.stopped and self.state.ticks < limit:
            self.step()
            if self.state.settled and self.state.alpha_target < ALPHA_MIN:
                break
        return self.state

    def stop(self):
        self.stopped = True

    def _node(self, node_id: str) -> SimNode:
        for node in self.state.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def drag_start(self, node_id: str):
        node = self._node(node_id)
        self.state.alpha_target = DRAG_ALPHA_TARGET
        node.fx, node.fy = node.x, node.y

    def drag(self, node_id: str, x: float, y: float):
        node = self._node(node_id)
        node.fx, node.fy = x, y

    def drag_end(self, node_id: str):
        node = self._node(node_id)
        self.state.alpha_target = 0.0
        node.fx = node.fy = None

    def positions(self) -> Dict[str, Dict[str, float]]:
        return {n.id: {"x": n.x, "y": n.y, "gen": n.gen} for n in self.state.nodes}


def calculate_layout(tree: FamilyTree, options: LayoutOptions) -> Dict[str, Dict[str, float]]:
    """
    Calculate positions for all persons by running the force simulation to rest.

    Works on copies; the tree itself is never touched. Any failure comes back
    as a LayoutError.
    """
    people = tree.people()
    if not people:
        return {}

    try:
        simulation = ForceSimulation.for_people(people, options)
        state = simulation.run()
    except LayoutError:
        raise
    except Exception as e:
        logger.exception("Layout simulation failed")
        raise LayoutError(f"Layout failed: {e}") from e

    positions = simulation.positions()
    for pos in positions.values():
        if not (math.isfinite(pos["x"]) and math.isfinite(pos["y"])):
            raise LayoutError("Layout produced non-finite coordinates")

    logger.info("Calculated layout for %d persons in %d ticks", len(positions), state.ticks)
    return positions
