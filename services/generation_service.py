"""
Link derivation and generation levels for the tree view.
"""
import logging
from typing import Dict, List

from models import Person, TreeLink
from services.gedcom_writer import sorted_pair_key

logger = logging.getLogger(__name__)

MAX_GENERATION_PASSES = 50


def build_links(people: List[Person]) -> List[TreeLink]:
    """
    Derive de-duplicated "couple" and "child" links from the relation fields.

    A child with both parents known gets a single child link from the father
    carrying the mother as ``mate``, plus a couple link between the parents.
    """
    by_id = {p.id: p for p in people}
    links: List[TreeLink] = []
    couple_pairs = set()
    child_pairs = set()

    def add_couple(a, b):
        if not a or not b or a == b or a not in by_id or b not in by_id:
            return
        key = sorted_pair_key(a, b)
        if key in couple_pairs:
            return
        couple_pairs.add(key)
        links.append(TreeLink(source=a, target=b, type="couple"))

    def add_child(parent_id, child_id, mate=None):
        key = (parent_id, mate, child_id)
        if key in child_pairs:
            return
        child_pairs.add(key)
        links.append(TreeLink(source=parent_id, target=child_id, type="child", mate=mate))

    for child in people:
        father = child.father if child.father in by_id else None
        mother = child.mother if child.mother in by_id else None

        if father and mother:
            add_couple(father, mother)
            add_child(father, child.id, mate=mother)
            continue
        if father:
            add_child(father, child.id)
        if mother:
            add_child(mother, child.id)

    for parent in people:
        for child_id in parent.children:
            child = by_id.get(child_id)
            if child is None or child_id == parent.id:
                continue
            if child.father or child.mother:
                continue
            add_child(parent.id, child_id)

    for person in people:
        if person.spouse:
            add_couple(person.id, person.spouse)

    return links


def solve_generations(
    people: List[Person],
    links: List[TreeLink],
    max_passes: int = MAX_GENERATION_PASSES,
) -> Dict[str, int]:
    """
    Assign every person an integer generation.

    Child links push the child at least one generation below the parent,
    couple links pull both partners to the deeper of their two generations.
    Stops at a fixed point or after ``max_passes`` sweeps, so bad data with
    a relationship cycle still terminates.
    """
    gen = {p.id: 0 for p in people}

    passes = 0
    changed = True
    while changed and passes < max_passes:
        changed = False
        passes += 1

        for link in links:
            source_gen = gen.get(link.source)
            target_gen = gen.get(link.target)
            if source_gen is None or target_gen is None:
                continue

            if link.type == "child":
                if target_gen < source_gen + 1:
                    gen[link.target] = source_gen + 1
                    changed = True
            elif link.type == "couple":
                deepest = max(source_gen, target_gen)
                if source_gen != deepest:
                    gen[link.source] = deepest
                    changed = True
                if target_gen != deepest:
                    gen[link.target] = deepest
                    changed = True

    if changed:
        logger.warning("Generation solve hit the %d pass limit; the tree may contain a cycle", max_passes)
    else:
        logger.debug("Generations settled after %d passes", passes)
    return gen
