"""
GEDCOM writer: rebuilds family units from the flat person list and
serializes everything back to GEDCOM 5.5.1 text.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from config import DEFAULT_LOCALE, GEDCOM_SOURCE_NAME
from models import FamilyUnit, Person
from services.naming import (
    UNKNOWN_NAME,
    NameParts,
    display_name,
    normalize_gender,
    normalize_spaces,
    split_name,
)

logger = logging.getLogger(__name__)

LINE_END = "\r\n"


def sorted_pair_key(a, b) -> Optional[str]:
    """Order-independent key for two ids, or None when one is missing."""
    a_id = str(a or "").strip()
    b_id = str(b or "").strip()
    if not a_id or not b_id:
        return None
    return "|".join(sorted((a_id, b_id)))


class FamilyUnitBuilder:
    """
    Rebuilds FAM records in two phases.

    ``add_parent_units`` groups children under their (father, mother) pair,
    ``add_spouse_units`` makes sure every spouse pair has a unit even without
    children. Units are shared whenever the unordered pair matches.
    """

    def __init__(self, people: Iterable[Person]):
        self.by_id: Dict[str, Person] = {}
        for person in people:
            self.by_id.setdefault(person.id, person)

        self._units: Dict[str, FamilyUnit] = {}
        self._pair_index: Dict[str, str] = {}
        # person id -> unit key until build() assigns @F<n>@ ids
        self.famc: Dict[str, str] = {}
        self.fams: Dict[str, List[str]] = {}

    def _known(self, person_id) -> str:
        person_id = str(person_id or "")
        return person_id if person_id in self.by_id else ""

    def _ensure_unit(self, key: str) -> FamilyUnit:
        if key not in self._units:
            self._units[key] = FamilyUnit(id=key)
        return self._units[key]

    def _ensure_pair_unit(self, a: str, b: str, fallback_key: str) -> FamilyUnit:
        pair = sorted_pair_key(a, b)
        if pair and pair in self._pair_index:
            return self._units[self._pair_index[pair]]
        unit = self._ensure_unit(fallback_key)
        if pair:
            self._pair_index[pair] = fallback_key
        return unit

    def _add_fams(self, person_id: str, unit: FamilyUnit):
        if not person_id:
            return
        units = self.fams.setdefault(person_id, [])
        if unit.id not in units:
            units.append(unit.id)

    def _add_child(self, unit: FamilyUnit, child_id: str):
        if child_id not in unit.child_ids:
            unit.child_ids.append(child_id)
        self.famc.setdefault(child_id, unit.id)

    def resolve_spouse_roles(self, a_id: str, b_id: str) -> Tuple[str, str]:
        """Return (husband, wife). Falls back to id order when genders do not decide."""
        a_gender = normalize_gender(self.by_id[a_id].gender) if a_id in self.by_id else ""
        b_gender = normalize_gender(self.by_id[b_id].gender) if b_id in self.by_id else ""
        if a_gender == "F" and b_gender == "M":
            return b_id, a_id
        if a_gender == "M" and b_gender == "F":
            return a_id, b_id
        first, second = sorted((a_id, b_id))
        return first, second

    def add_parent_units(self):
        for person in self.by_id.values():
            father = self._known(person.father)
            mother = self._known(person.mother)
            if not father and not mother:
                continue

            unit = self._ensure_pair_unit(father, mother, f"P:{father}|{mother}")
            if father and not unit.husband_id:
                unit.husband_id = father
            if mother and not unit.wife_id:
                unit.wife_id = mother
            self._add_child(unit, person.id)
            self._add_fams(father, unit)
            self._add_fams(mother, unit)

        # children lists whose child carries no parent fields at all
        for parent in self.by_id.values():
            for child_id in parent.children:
                child = self.by_id.get(str(child_id))
                if child is None or child.father or child.mother:
                    continue

                spouse = self._known(parent.spouse)
                if spouse:
                    husband, wife = self.resolve_spouse_roles(parent.id, spouse)
                elif normalize_gender(parent.gender) == "F":
                    husband, wife = "", parent.id
                else:
                    husband, wife = parent.id, ""

                unit = self._ensure_pair_unit(husband, wife, f"P:{husband}|{wife}")
                if husband and not unit.husband_id:
                    unit.husband_id = husband
                if wife and not unit.wife_id:
                    unit.wife_id = wife
                self._add_child(unit, child.id)
                self._add_fams(husband, unit)
                self._add_fams(wife, unit)

    def add_spouse_units(self):
        for person in self.by_id.values():
            spouse = self._known(person.spouse)
            if not spouse or spouse == person.id:
                continue
            husband, wife = self.resolve_spouse_roles(person.id, spouse)
            unit = self._ensure_pair_unit(husband, wife, f"S:{sorted_pair_key(person.id, spouse)}")
            if not unit.husband_id and not unit.wife_id:
                unit.husband_id = husband
                unit.wife_id = wife
            self._add_fams(person.id, unit)
            self._add_fams(spouse, unit)

    def _is_current_couple(self, unit: FamilyUnit) -> bool:
        husband = self.by_id.get(unit.husband_id or "")
        return husband is not None and bool(unit.wife_id) and husband.spouse == unit.wife_id

    def build(self) -> List[FamilyUnit]:
        """
        Run both phases and number the units. Units of current spouse pairs
        come first so that a reader keeping the first spouse it sees picks
        the same partner again.
        """
        self.add_parent_units()
        self.add_spouse_units()

        ordered = sorted(self._units.values(), key=lambda u: 0 if self._is_current_couple(u) else 1)
        ids = {}
        for index, unit in enumerate(ordered, start=1):
            ids[unit.id] = f"@F{index}@"
            unit.id = ids[unit.id]

        self.famc = {person_id: ids[key] for person_id, key in self.famc.items()}
        self.fams = {
            person_id: sorted((ids[key] for key in keys), key=lambda fid: int(fid[2:-1]))
            for person_id, keys in self.fams.items()
        }
        return ordered


def name_parts(person: Person, locale: str = DEFAULT_LOCALE) -> NameParts:
    given = normalize_spaces(person.given)
    surname = normalize_spaces(person.surname)
    if given or surname:
        full = " ".join(p for p in (given, surname) if p)
        return NameParts(full, given, surname)
    if not any(normalize_spaces(name) for name in person.names.values()):
        return NameParts("", "", "")
    return split_name(display_name(person, locale))


def _single_line(value) -> str:
    return normalize_spaces(value)


def _individual_lines(person: Person, indi_id: str, builder: FamilyUnitBuilder, locale: str) -> List[str]:
    lines = [f"0 {indi_id} INDI"]

    parts = name_parts(person, locale)
    if parts.surname:
        name_line = f"{parts.given} /{parts.surname}/".strip()
    elif parts.given:
        # empty slashes keep a reader from taking the last word as a surname
        name_line = f"{parts.given} //"
    else:
        name_line = parts.full
    lines.append(f"1 NAME {name_line or UNKNOWN_NAME}")
    if parts.given:
        lines.append(f"1 GIVN {parts.given}")
    if parts.surname:
        lines.append(f"1 SURN {parts.surname}")

    gender = normalize_gender(person.gender)
    if gender:
        lines.append(f"1 SEX {gender}")

    birth_date, birth_place = _single_line(person.birth_year), _single_line(person.birth_place)
    if birth_date or birth_place:
        lines.append("1 BIRT")
        if birth_date:
            lines.append(f"2 DATE {birth_date}")
        if birth_place:
            lines.append(f"2 PLAC {birth_place}")

    death_date, death_place = _single_line(person.death_date), _single_line(person.death_place)
    if death_date or death_place:
        lines.append("1 DEAT")
        if death_date:
            lines.append(f"2 DATE {death_date}")
        if death_place:
            lines.append(f"2 PLAC {death_place}")

    details = str(person.details or "").strip()
    if details:
        note_lines = [line.strip() for line in details.splitlines()]
        lines.append(f"1 NOTE {note_lines[0]}")
        for extra in note_lines[1:]:
            lines.append(f"2 CONT {extra}".rstrip())

    for tag, value in (
        ("OCCU", person.profession),
        ("SOUR", person.archive_source),
        ("REFN", person.document_code),
        ("_RELI", person.reliability),
        ("_COLOR", person.color),
    ):
        value = _single_line(value)
        if value:
            lines.append(f"1 {tag} {value}")

    famc = builder.famc.get(person.id)
    if famc:
        lines.append(f"1 FAMC {famc}")
    for fams in builder.fams.get(person.id, []):
        lines.append(f"1 FAMS {fams}")
    return lines


def build_gedcom(people: List[Person], locale: str = DEFAULT_LOCALE) -> str:
    """Serialize people to GEDCOM text with CRLF line endings and a TRLR."""
    builder = FamilyUnitBuilder(people)
    units = builder.build()

    id_map: Dict[str, str] = {}
    for person in builder.by_id.values():
        id_map[person.id] = f"@I{len(id_map) + 1}@"

    lines = [
        "0 HEAD",
        f"1 SOUR {GEDCOM_SOURCE_NAME}",
        "1 GEDC",
        "2 VERS 5.5.1",
        "2 FORM LINEAGE-LINKED",
        "1 CHAR UTF-8",
    ]

    for person in builder.by_id.values():
        lines.extend(_individual_lines(person, id_map[person.id], builder, locale))

    for unit in units:
        lines.append(f"0 {unit.id} FAM")
        if unit.husband_id in id_map:
            lines.append(f"1 HUSB {id_map[unit.husband_id]}")
        if unit.wife_id in id_map:
            lines.append(f"1 WIFE {id_map[unit.wife_id]}")
        for child_id in unit.child_ids:
            if child_id in id_map:
                lines.append(f"1 CHIL {id_map[child_id]}")

    lines.append("0 TRLR")

    dangling = sum(
        1
        for person in builder.by_id.values()
        for ref in (person.father, person.mother, person.spouse, *person.children)
        if ref and ref not in builder.by_id
    )
    if dangling:
        logger.warning("Omitted %d relations to unknown people while writing GEDCOM", dangling)

    logger.info("Wrote GEDCOM with %d individuals and %d families", len(id_map), len(units))
    return LINE_END.join(lines) + LINE_END
