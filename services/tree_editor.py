"""
Builder edits: add, update and delete people in the flat person list.

``apply_edit`` validates the command first and only then works on copies, so
a rejected edit leaves the caller's list untouched and a successful one
returns a new list with every relation invariant already repaired.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Union

from config import DEFAULT_LOCALE
from errors import EditValidationError, PersonNotFoundError
from models import Person, PersonCreate, PersonUpdate, generate_id
from services.naming import normalize_gender, split_name
from services.person_graph import reconcile

logger = logging.getLogger(__name__)

DEFAULT_CARD_COLOR = "#f5f1e8"

TEXT_FIELDS = (
    "birth_year",
    "birth_place",
    "death_date",
    "death_place",
    "details",
    "profession",
    "archive_source",
    "document_code",
    "reliability",
)


@dataclass(frozen=True)
class AddPerson:
    data: PersonCreate
    person_id: Optional[str] = None


@dataclass(frozen=True)
class UpdatePerson:
    person_id: str
    data: PersonUpdate


@dataclass(frozen=True)
class DeletePerson:
    person_id: str


EditCommand = Union[AddPerson, UpdatePerson, DeletePerson]


class EditResult(NamedTuple):
    people: List[Person]
    person: Optional[Person]


def _validate_form(data: PersonCreate, by_id: Dict[str, Person], editing_id: Optional[str] = None):
    if not (data.name or "").strip():
        raise EditValidationError("Name is required")

    if data.father and data.mother and data.father == data.mother:
        raise EditValidationError("Father and mother cannot be the same person.")

    if editing_id and editing_id in (data.father, data.mother, data.spouse):
        raise EditValidationError("A person cannot be their own parent, spouse, or child.")

    if data.spouse and (data.spouse in (data.father, data.mother) or data.spouse in data.children):
        raise EditValidationError("A spouse cannot also be a parent or child.")

    for label, ref in (("father", data.father), ("mother", data.mother), ("spouse", data.spouse)):
        if ref and ref not in by_id:
            raise EditValidationError(f"Unknown {label}: {ref}")
    for child_id in data.children:
        if child_id != editing_id and child_id not in by_id:
            raise EditValidationError(f"Unknown child: {child_id}")


def _form_children(data: PersonCreate, person_id: str) -> List[str]:
    children = []
    for child_id in data.children:
        if child_id and child_id != person_id and child_id not in children:
            children.append(child_id)
    return children


def _apply_form(person: Person, data: PersonCreate, locale: str):
    name = data.name.strip()
    parts = split_name(name)
    names = dict(person.names)
    names[data.locale or locale] = parts.full or name

    person.names = names
    person.given = parts.given
    person.surname = parts.surname
    person.gender = normalize_gender(data.gender)
    for attr in TEXT_FIELDS:
        setattr(person, attr, str(getattr(data, attr) or "").strip())
    person.color = data.color or DEFAULT_CARD_COLOR
    person.father = data.father
    person.mother = data.mother
    person.spouse = data.spouse
    person.children = _form_children(data, person.id)


def _add_child_to_parent(by_id: Dict[str, Person], parent_id: Optional[str], child_id: str):
    parent = by_id.get(parent_id) if parent_id else None
    if parent is not None and child_id not in parent.children:
        parent.children.append(child_id)


def _remove_child_from_parent(by_id: Dict[str, Person], parent_id: Optional[str], child_id: str):
    parent = by_id.get(parent_id) if parent_id else None
    if parent is not None:
        parent.children = [c for c in parent.children if c != child_id]


def _remove_parent_from_child(by_id: Dict[str, Person], parent_id: str, child_id: str):
    child = by_id.get(child_id)
    if child is None:
        return
    if child.father == parent_id:
        child.father = None
    if child.mother == parent_id:
        child.mother = None


def _set_parent_on_child(by_id: Dict[str, Person], parent_id: str, child_id: str, gender: str):
    child = by_id.get(child_id)
    if child is None:
        return
    gender = normalize_gender(gender)
    if gender == "M":
        if not child.father:
            child.father = parent_id
    elif gender == "F":
        if not child.mother:
            child.mother = parent_id
    elif not child.father:
        child.father = parent_id
    elif not child.mother:
        child.mother = parent_id


def _claim_spouse(by_id: Dict[str, Person], person_id: str, spouse_id: str):
    """Pair two people, unpairing whoever held either of them before."""
    for other in by_id.values():
        if other.id != person_id and other.spouse == spouse_id:
            other.spouse = None
    by_id[spouse_id].spouse = person_id
    by_id[person_id].spouse = spouse_id


def _fix_gender_slots(by_id: Dict[str, Person], person: Person, children: List[str]):
    """Move this person into the father or mother slot that matches their gender."""
    gender = normalize_gender(person.gender)
    if not gender:
        return
    for other in by_id.values():
        if other.id == person.id:
            continue
        if gender == "M":
            if other.mother == person.id:
                other.mother = None
            if other.father != person.id and other.id in children and not other.father:
                other.father = person.id
        else:
            if other.father == person.id:
                other.father = None
            if other.mother != person.id and other.id in children and not other.mother:
                other.mother = person.id


def _add(people: List[Person], command: AddPerson, locale: str) -> EditResult:
    by_id = {p.id: p for p in people}
    _validate_form(command.data, by_id)

    person_id = command.person_id or generate_id()
    if person_id in by_id:
        raise EditValidationError(f"Person already exists: {person_id}")

    working = [p.model_copy(deep=True) for p in people]
    person = Person(id=person_id)
    _apply_form(person, command.data, locale)
    working.append(person)
    by_id = {p.id: p for p in working}

    if person.spouse:
        _claim_spouse(by_id, person.id, person.spouse)
    for child_id in person.children:
        _set_parent_on_child(by_id, person.id, child_id, person.gender)
    _add_child_to_parent(by_id, person.father, person.id)
    _add_child_to_parent(by_id, person.mother, person.id)

    result = reconcile(working)
    logger.info("Added person %s", person_id)
    return EditResult(result, next(p for p in result if p.id == person_id))


def _update(people: List[Person], command: UpdatePerson, locale: str) -> EditResult:
    by_id = {p.id: p for p in people}
    person_id = command.person_id
    if person_id not in by_id:
        raise PersonNotFoundError("Person not found.")
    _validate_form(command.data, by_id, editing_id=person_id)

    working = [p.model_copy(deep=True) for p in people]
    by_id = {p.id: p for p in working}
    person = by_id[person_id]

    prev_spouse = person.spouse
    prev_father = person.father
    prev_mother = person.mother
    prev_children = list(person.children)

    _apply_form(person, command.data, locale)

    old_partner = by_id.get(prev_spouse) if prev_spouse else None
    if old_partner is not None and prev_spouse != person.spouse and old_partner.spouse == person_id:
        old_partner.spouse = None
    if person.spouse:
        _claim_spouse(by_id, person_id, person.spouse)

    if prev_father and prev_father != person.father:
        _remove_child_from_parent(by_id, prev_father, person_id)
    if prev_mother and prev_mother != person.mother:
        _remove_child_from_parent(by_id, prev_mother, person_id)
    _add_child_to_parent(by_id, person.father, person_id)
    _add_child_to_parent(by_id, person.mother, person_id)

    for child_id in prev_children:
        if child_id not in person.children:
            _remove_parent_from_child(by_id, person_id, child_id)
    for child_id in person.children:
        _set_parent_on_child(by_id, person_id, child_id, person.gender)

    _fix_gender_slots(by_id, person, person.children)

    result = reconcile(working)
    logger.info("Updated person %s", person_id)
    return EditResult(result, next(p for p in result if p.id == person_id))


def _delete(people: List[Person], command: DeletePerson) -> EditResult:
    target = command.person_id
    if not any(p.id == target for p in people):
        raise PersonNotFoundError("Person not found.")

    working = []
    for person in people:
        if person.id == target:
            continue
        person = person.model_copy(deep=True)
        if person.father == target:
            person.father = None
        if person.mother == target:
            person.mother = None
        if person.spouse == target:
            person.spouse = None
        person.children = [c for c in person.children if c != target]
        working.append(person)

    logger.info("Deleted person %s", target)
    return EditResult(reconcile(working), None)


def apply_edit(people: List[Person], command: EditCommand, locale: Optional[str] = None) -> EditResult:
    """
    Apply one builder edit and return the new person list.

    Raises EditValidationError (or PersonNotFoundError) before anything is
    copied or changed.
    """
    locale = locale or DEFAULT_LOCALE
    if isinstance(command, AddPerson):
        return _add(people, command, locale)
    if isinstance(command, UpdatePerson):
        return _update(people, command, locale)
    if isinstance(command, DeletePerson):
        return _delete(people, command)
    raise TypeError(f"Unsupported edit command: {type(command).__name__}")
