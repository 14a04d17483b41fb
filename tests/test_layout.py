import math
import random

import pytest

from errors import LayoutError
from models import FamilyTree, LayoutOptions, Person
from services import layout_service
from services.generation_service import build_links, solve_generations
from services.layout_service import (
    ALPHA_DECAY,
    DRAG_ALPHA_TARGET,
    ForceSimulation,
    SimNode,
    SimulationState,
    calculate_layout,
    create_state,
    tick,
)


def make_state(people, options):
    links = build_links(people)
    return create_state(people, links, solve_generations(people, links), options, random.Random(1))


def test_tick_returns_new_state_and_leaves_input_alone(family_people):
    options = LayoutOptions(seed=1)
    state = make_state(family_people, options)
    before = [(n.x, n.y, n.vx, n.vy) for n in state.nodes]

    nxt = tick(state, options, random.Random(1))

    assert nxt is not state
    assert [(n.x, n.y, n.vx, n.vy) for n in state.nodes] == before
    assert state.alpha == 1.0 and state.ticks == 0
    assert nxt.ticks == 1
    assert nxt.alpha == pytest.approx(1.0 - ALPHA_DECAY)


def test_tick_is_deterministic_for_a_seed(family_people):
    options = LayoutOptions(seed=3)
    state = make_state(family_people, options)
    a = tick(state, options, random.Random(7))
    b = tick(state, options, random.Random(7))
    assert [(n.x, n.y) for n in a.nodes] == [(n.x, n.y) for n in b.nodes]


def test_alpha_decays_toward_target():
    options = LayoutOptions()
    state = SimulationState(nodes=[SimNode(id="a", x=0.0, y=0.0)])
    for _ in range(300):
        state = tick(state, options)
    assert state.alpha == pytest.approx(0.001, rel=1e-6)

    state.alpha_target = 0.5
    for _ in range(200):
        state = tick(state, options)
    assert 0.001 < state.alpha < 0.5


def test_pinned_node_stays_put(family_people):
    options = LayoutOptions(seed=2)
    state = make_state(family_people, options)
    state.nodes[0].fx, state.nodes[0].fy = 10.0, 20.0
    for _ in range(5):
        state = tick(state, options)
    assert (state.nodes[0].x, state.nodes[0].y) == (10.0, 20.0)
    assert (state.nodes[0].vx, state.nodes[0].vy) == (0.0, 0.0)


def test_generations_order_vertical_positions(family_people):
    positions = calculate_layout(FamilyTree.from_people(family_people), LayoutOptions(seed=5, warm_start=False))
    assert set(positions) == {"john", "jane", "bob"}
    assert positions["bob"]["y"] > positions["john"]["y"]
    assert positions["bob"]["y"] > positions["jane"]["y"]
    assert positions["bob"]["gen"] == 1
    assert all(math.isfinite(p["x"]) and math.isfinite(p["y"]) for p in positions.values())


def test_couple_cards_do_not_overlap(family_people):
    options = LayoutOptions(seed=9, warm_start=False)
    positions = calculate_layout(FamilyTree.from_people(family_people), options)
    john, jane = positions["john"], positions["jane"]
    assert math.hypot(john["x"] - jane["x"], john["y"] - jane["y"]) > options.card_width * 0.6


def test_warm_start_reuses_stored_positions(family_people):
    family_people[0].x, family_people[0].y = 111.0, 222.0
    warm = make_state(family_people, LayoutOptions())
    assert (warm.nodes[0].x, warm.nodes[0].y) == (111.0, 222.0)

    cold = make_state(family_people, LayoutOptions(warm_start=False))
    assert (cold.nodes[0].x, cold.nodes[0].y) != (111.0, 222.0)
    assert abs(cold.nodes[0].x - 600.0) <= 25.0


def test_links_to_missing_people_are_dropped():
    people = [Person(id="a"), Person(id="b", father="a")]
    links = build_links(people)
    state = create_state(people[1:], links, {}, LayoutOptions(), random.Random(0))
    assert state.links == []


def test_stop_makes_step_a_no_op(family_people):
    seen = []
    simulation = ForceSimulation.for_people(family_people, LayoutOptions(seed=1), on_tick=seen.append)
    simulation.step()
    assert len(seen) == 1

    simulation.stop()
    state = simulation.step()
    simulation.run()
    assert len(seen) == 1
    assert state.ticks == 1


def test_run_respects_max_ticks(family_people):
    seen = []
    simulation = ForceSimulation.for_people(family_people, LayoutOptions(seed=1), on_tick=seen.append)
    assert simulation.run(max_ticks=5).ticks == 5
    assert len(seen) == 5


def test_run_stops_once_settled(family_people):
    simulation = ForceSimulation.for_people(family_people, LayoutOptions(seed=1))
    state = simulation.run(max_ticks=1000)
    assert state.settled
    assert state.ticks < 320


def test_drag_pins_and_reheats(family_people):
    simulation = ForceSimulation.for_people(family_people, LayoutOptions(seed=1))
    simulation.run(max_ticks=10)

    simulation.drag_start("bob")
    assert simulation.state.alpha_target == DRAG_ALPHA_TARGET
    simulation.drag("bob", 42.0, 84.0)
    simulation.step()
    assert simulation.positions()["bob"]["x"] == 42.0
    assert simulation.positions()["bob"]["y"] == 84.0

    simulation.drag_end("bob")
    assert simulation.state.alpha_target == 0.0
    bob = simulation.state.node_map()["bob"]
    assert bob.fx is None and bob.fy is None


def test_drag_unknown_node():
    simulation = ForceSimulation(SimulationState(nodes=[]), LayoutOptions())
    with pytest.raises(KeyError):
        simulation.drag_start("ghost")


def test_empty_tree_has_no_layout():
    assert calculate_layout(FamilyTree(), LayoutOptions()) == {}


def test_calculate_layout_does_not_touch_tree(family_people):
    tree = FamilyTree.from_people(family_people)
    calculate_layout(tree, LayoutOptions(seed=1, max_ticks=20))
    assert all(p.x is None and p.y is None for p in tree.people())


def test_simulation_failure_becomes_layout_error(family_people, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(layout_service, "tick", broken)
    with pytest.raises(LayoutError, match="boom"):
        calculate_layout(FamilyTree.from_people(family_people), LayoutOptions())
