"""
GEDCOM reader: tokenizes GEDCOM text and collects individual and family records.

The reader is deliberately tolerant. Lines that do not look like
``<level> [<@xref@>] <TAG> [<value>]`` are skipped, unknown tags are ignored
and pointers to records that never appear are dropped when the flat person
list is built (see ``services.person_graph``).
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from config import DEFAULT_LOCALE
from errors import EmptyGedcomError, NoIndividualsError
from models import GedcomCounts, Person
from services.naming import normalize_gender, normalize_spaces, split_name
from services.person_graph import build_people

logger = logging.getLogger(__name__)

_LINE = re.compile(r"^(\d+)\s+(?:(@[^@\s]+@)\s+)?([A-Za-z0-9_]+)(?:\s+(.*))?$")
_LINE_BREAK = re.compile(r"\r\n|\n|\r")
_HAS_INDI = re.compile(r"(^|[\r\n])\s*0\s+@?[^\r\n]*\bINDI\b", re.IGNORECASE)

EVENT_TAGS = {"BIRT", "DEAT", "MARR", "BURI", "CHR"}
DEATH_MARKER = "Y"


@dataclass(frozen=True)
class GedcomLine:
    """One tokenized GEDCOM line."""
    lineno: int
    level: int
    pointer: Optional[str]
    tag: str
    value: str


@dataclass
class IndividualRecord:
    pointer: str
    names: Dict[str, str] = field(default_factory=dict)
    given: str = ""
    surname: str = ""
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
    color: str = ""
    famc: Optional[str] = None
    fams: List[str] = field(default_factory=list)


@dataclass
class FamilyRecord:
    pointer: str
    husband: Optional[str] = None
    wife: Optional[str] = None
    children: List[str] = field(default_factory=list)


def tokenize_line(line: str, lineno: int = 0) -> Optional[GedcomLine]:
    """Parse one trimmed line, or return None when it is malformed."""
    match = _LINE.match(line)
    if not match:
        return None
    level, pointer, tag, value = match.groups()
    return GedcomLine(
        lineno=lineno,
        level=int(level),
        pointer=pointer,
        tag=tag.upper(),
        value=(value or "").strip(),
    )


def tokenize(text: str) -> Iterator[GedcomLine]:
    """Yield tokens for every usable line. Accepts any line ending and a leading BOM."""
    text = str(text or "")
    if text.startswith("\ufeff"):
        text = text[1:]

    for lineno, raw in enumerate(_LINE_BREAK.split(text), start=1):
        line = raw.strip()
        if not line:
            continue
        token = tokenize_line(line, lineno)
        if token is None:
            logger.debug("Skipping malformed GEDCOM line %d: %r", lineno, line[:80])
            continue
        yield token


def has_gedcom_individuals(text: str) -> bool:
    """Cheap check that the text holds at least one INDI record."""
    return bool(_HAS_INDI.search(str(text or "")))


def count_records(text: str) -> GedcomCounts:
    """Count individuals, families and vital events without building people."""
    counts = GedcomCounts()
    for token in tokenize(text):
        if token.level == 0 and token.tag == "INDI":
            counts.individuals += 1
        elif token.level == 0 and token.tag == "FAM":
            counts.families += 1
        elif token.level > 0 and token.tag in EVENT_TAGS:
            counts.events += 1
    return counts


def _merge_field(current: str, incoming: str) -> str:
    value = normalize_spaces(incoming)
    if not value:
        return current or ""
    if not current:
        return value
    if value in current:
        return current
    return f"{current}; {value}"


class GedcomReader:
    """Collects INDI and FAM records from GEDCOM text."""

    def __init__(self, locale: str = DEFAULT_LOCALE):
        self.locale = locale or DEFAULT_LOCALE
        self._reset()

    def _reset(self):
        self.individuals: Dict[str, IndividualRecord] = {}
        self.families: Dict[str, FamilyRecord] = {}
        self._record_type: Optional[str] = None
        self._record_id: Optional[str] = None
        self._event: Optional[Tuple[str, int]] = None
        self._note: Optional[Dict] = None

    def read(self, text: str) -> Tuple[Dict[str, IndividualRecord], Dict[str, FamilyRecord]]:
        """Read the text and return (individuals, families) keyed by pointer."""
        self._reset()

        for token in tokenize(text):
            if self._note and token.level <= self._note["level"]:
                self._flush_note()
            if self._event and token.level <= self._event[1]:
                self._event = None

            if token.level == 0:
                self._start_record(token)
                continue

            if self._record_type == "INDI":
                self._read_individual_line(self.individuals[self._record_id], token)
            elif self._record_type == "FAM":
                self._read_family_line(self.families[self._record_id], token)

        self._flush_note()
        self._finalize_names()

        logger.info(
            "Read %d individuals and %d families",
            len(self.individuals), len(self.families),
        )
        return self.individuals, self.families

    def _start_record(self, token: GedcomLine):
        self._flush_note()
        self._event = None
        self._record_type = None
        self._record_id = None

        if not token.pointer:
            return

        if token.tag == "INDI":
            self.individuals.setdefault(token.pointer, IndividualRecord(pointer=token.pointer))
        elif token.tag == "FAM":
            self.families.setdefault(token.pointer, FamilyRecord(pointer=token.pointer))
        else:
            return

        self._record_type = token.tag
        self._record_id = token.pointer

    def _flush_note(self):
        if not self._note:
            return
        text = self._note["text"].strip()
        person = self.individuals.get(self._note["target"])
        if person is not None and text:
            person.details = text
        self._note = None

    def _read_individual_line(self, person: IndividualRecord, token: GedcomLine):
        tag, value = token.tag, token.value

        if tag in ("CONT", "CONC"):
            if self._note:
                self._note["text"] += f"\n{value}" if tag == "CONT" else value
            return

        if self._event and token.level > self._event[1] and tag in ("DATE", "PLAC"):
            self._read_event_detail(person, self._event[0], tag, value)
            return

        if tag == "NAME":
            if value and not person.names.get(self.locale):
                parts = split_name(value)
                if parts.full:
                    person.names[self.locale] = parts.full
                person.given = parts.given or person.given
                person.surname = parts.surname or person.surname
        elif tag == "GIVN":
            person.given = normalize_spaces(value)
        elif tag == "SURN":
            person.surname = normalize_spaces(value)
        elif tag == "SEX":
            person.gender = normalize_gender(value)
        elif tag == "BIRT":
            self._event = ("BIRT", token.level)
            if value:
                person.birth_year = normalize_spaces(value)
        elif tag == "DEAT":
            self._event = ("DEAT", token.level)
            cleaned = normalize_spaces(value)
            if cleaned and cleaned.upper() != DEATH_MARKER:
                person.death_date = cleaned
        elif tag == "NOTE":
            self._flush_note()
            self._note = {"target": person.pointer, "level": token.level, "text": value}
        elif tag == "OCCU":
            person.profession = normalize_spaces(value)
        elif tag == "SOUR":
            person.archive_source = _merge_field(person.archive_source, value)
        elif tag in ("REFN", "_DOC"):
            person.document_code = _merge_field(person.document_code, value)
        elif tag in ("_RELI", "RELI"):
            person.reliability = normalize_spaces(value)
        elif tag in ("_COLOR", "COLOR"):
            person.color = normalize_spaces(value)
        elif tag == "FAMC":
            if value and person.famc is None:
                person.famc = value
        elif tag == "FAMS":
            if value and value not in person.fams:
                person.fams.append(value)

    @staticmethod
    def _read_event_detail(person: IndividualRecord, event: str, tag: str, value: str):
        cleaned = normalize_spaces(value)
        if not cleaned:
            return
        if event == "BIRT":
            if tag == "DATE":
                person.birth_year = cleaned
            else:
                person.birth_place = cleaned
        elif event == "DEAT":
            if tag == "DATE":
                if cleaned.upper() != DEATH_MARKER:
                    person.death_date = cleaned
            else:
                person.death_place = cleaned

    @staticmethod
    def _read_family_line(family: FamilyRecord, token: GedcomLine):
        value = token.value.strip()
        if token.tag == "HUSB":
            family.husband = value or None
        elif token.tag == "WIFE":
            family.wife = value or None
        elif token.tag == "CHIL":
            if value and value not in family.children:
                family.children.append(value)

    def _finalize_names(self):
        for person in self.individuals.values():
            if person.names.get(self.locale):
                continue
            combined = normalize_spaces(f"{person.given} {person.surname}")
            if combined:
                person.names[self.locale] = combined


def parse_gedcom(text: str, locale: str = DEFAULT_LOCALE) -> List[Person]:
    """Parse GEDCOM text into the flat person list used by the builder."""
    individuals, families = GedcomReader(locale).read(text)
    return build_people(individuals, families)


def load_gedcom(text: str, locale: str = DEFAULT_LOCALE) -> List[Person]:
    """
    Parse text coming from a user. Unlike ``parse_gedcom`` this tells apart
    blank input and input without individuals instead of returning [].
    """
    if not str(text or "").strip():
        raise EmptyGedcomError("GEDCOM file is empty.")
    if not has_gedcom_individuals(text):
        raise NoIndividualsError("No individuals found in GEDCOM.")

    people = parse_gedcom(text, locale)
    if not people:
        raise NoIndividualsError("No individuals found in GEDCOM.")
    return people
