"""
Person graph builder: turns INDI/FAM records into flat Person records and
keeps the redundant relation fields (father/mother/spouse/children) consistent.
"""
import logging
from typing import Dict, List, Mapping, Optional

from models import Person
from services.naming import normalize_gender

logger = logging.getLogger(__name__)


def build_people(individuals: Mapping, families: Mapping) -> List[Person]:
    """
    Build Person records from reader output.

    ``individuals`` maps pointer -> IndividualRecord and ``families`` maps
    pointer -> FamilyRecord. Family units are only used to fill the relation
    fields; they are not kept.
    """
    people: Dict[str, Person] = {}
    for pointer, record in individuals.items():
        people[pointer] = Person(
            id=pointer,
            names=dict(record.names),
            given=record.given,
            surname=record.surname,
            gender=record.gender,
            birth_year=record.birth_year,
            birth_place=record.birth_place,
            death_date=record.death_date,
            death_place=record.death_place,
            details=record.details,
            profession=record.profession,
            archive_source=record.archive_source,
            document_code=record.document_code,
            reliability=record.reliability,
            color=record.color,
        )

    def known(pointer: Optional[str]) -> Optional[str]:
        if pointer and pointer in people:
            return pointer
        if pointer:
            logger.debug("Dropping dangling pointer %s", pointer)
        return None

    # FAMC names the family a person was born into
    for pointer, record in individuals.items():
        family = families.get(record.famc) if record.famc else None
        if family is None:
            continue
        person = people[pointer]
        person.father = known(family.husband)
        person.mother = known(family.wife)

    # CHIL lines fill whatever FAMC left open
    for family in families.values():
        husband, wife = known(family.husband), known(family.wife)
        for child_id in family.children:
            child = people.get(child_id)
            if child is None:
                continue
            if child.father is None and husband:
                child.father = husband
            if child.mother is None and wife:
                child.mother = wife

    for family in families.values():
        husband, wife = known(family.husband), known(family.wife)
        if husband and wife and husband != wife:
            if people[husband].spouse is None:
                people[husband].spouse = wife
            if people[wife].spouse is None:
                people[wife].spouse = husband

        for child_id in family.children:
            if child_id not in people:
                continue
            for parent_id in (husband, wife):
                if parent_id and child_id not in people[parent_id].children:
                    people[parent_id].children.append(child_id)

    result = reconcile(list(people.values()))
    logger.info("Built %d people from %d family units", len(result), len(families))
    return result


def reconcile(people: List[Person]) -> List[Person]:
    """
    Return copies of ``people`` with the relation invariants restored:

    * no self relations, no references to unknown ids, father != mother,
      a parent is never also the spouse;
    * spouse links are symmetric (first claim wins);
    * every ``children`` entry is backed by the child's father/mother and
      every father/mother appears in the parent's ``children``.

    Running it twice gives the same result.
    """
    people = [p.model_copy(deep=True) for p in people]
    by_id = {p.id: p for p in people}

    _drop_invalid_references(people, by_id)
    _repair_spouses(people, by_id)
    _converge_children(people, by_id)
    return people


def _drop_invalid_references(people: List[Person], by_id: Dict[str, Person]):
    for person in people:
        for attr in ("father", "mother", "spouse"):
            value = getattr(person, attr)
            if value is not None and (value == person.id or value not in by_id):
                setattr(person, attr, None)

        if person.father and person.father == person.mother:
            person.mother = None
        if person.spouse and person.spouse in (person.father, person.mother):
            person.spouse = None

        children = []
        for child_id in person.children:
            if child_id in by_id and child_id != person.id and child_id not in children:
                children.append(child_id)
        person.children = children


def _repair_spouses(people: List[Person], by_id: Dict[str, Person]):
    for person in people:
        if person.spouse is None:
            continue
        partner = by_id[person.spouse]
        if partner.id in (person.father, person.mother) or person.id in (partner.father, partner.mother):
            person.spouse = None
            if partner.spouse == person.id:
                partner.spouse = None
            continue
        if partner.spouse is None:
            partner.spouse = person.id
        elif partner.spouse != person.id:
            person.spouse = None


def _free_parent_slot(child: Person, parent: Person) -> Optional[str]:
    if child.spouse == parent.id:
        return None
    gender = normalize_gender(parent.gender)
    if gender == "M":
        return None if child.father else "father"
    if gender == "F":
        return None if child.mother else "mother"
    if not child.father:
        return "father"
    if not child.mother:
        return "mother"
    return None


def _converge_children(people: List[Person], by_id: Dict[str, Person]):
    for parent in people:
        kept = []
        for child_id in parent.children:
            child = by_id[child_id]
            if parent.id in (child.father, child.mother):
                kept.append(child_id)
                continue
            slot = _free_parent_slot(child, parent)
            if slot is None:
                logger.debug("Dropping child %s from %s: both parent slots taken", child_id, parent.id)
                continue
            setattr(child, slot, parent.id)
            kept.append(child_id)
        parent.children = kept

    for child in people:
        for parent_id in (child.father, child.mother):
            if parent_id and child.id not in by_id[parent_id].children:
                by_id[parent_id].children.append(child.id)
