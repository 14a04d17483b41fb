"""
Name and gender helpers shared by the GEDCOM reader, writer and editor.
"""
import re
from typing import NamedTuple, Optional

from config import DEFAULT_LOCALE

UNKNOWN_NAME = "Unknown"
FALLBACK_LOCALES = ("en", "fr", "ar", "es")
INDEX_NAME_MAX = 190

_SLASH_NAME = re.compile(r"^(.*?)/([^/]*)/?(.*)$")
_WHITESPACE = re.compile(r"\s+")


class NameParts(NamedTuple):
    full: str
    given: str
    surname: str


def normalize_spaces(value) -> str:
    """Collapse runs of whitespace and trim."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


def split_name(raw) -> NameParts:
    """
    Split a display or GEDCOM name into full/given/surname.

    Understands "Given /Surname/ Suffix", "Surname, Given" and falls back to
    treating the last word as the surname.
    """
    cleaned = normalize_spaces(raw)
    if not cleaned:
        return NameParts("", "", "")

    match = _SLASH_NAME.match(cleaned)
    if match:
        given = normalize_spaces(match.group(1))
        surname = normalize_spaces(match.group(2))
        suffix = normalize_spaces(match.group(3))
        full = " ".join(p for p in (given, surname, suffix) if p)
        return NameParts(full or normalize_spaces(cleaned.replace("/", " ")), given, surname)

    if "," in cleaned:
        surname_raw, given_raw = cleaned.split(",", 1)
        surname = normalize_spaces(surname_raw)
        given = normalize_spaces(given_raw)
        full = " ".join(p for p in (given, surname) if p)
        return NameParts(full or cleaned, given, surname)

    parts = cleaned.split(" ")
    if len(parts) > 1:
        return NameParts(cleaned, " ".join(parts[:-1]), parts[-1])

    return NameParts(cleaned, cleaned, "")


def normalize_gender(value) -> str:
    """Return "M", "F" or "" for anything else."""
    normalized = normalize_spaces(value).lower()
    if normalized.startswith("m"):
        return "M"
    if normalized.startswith("f"):
        return "F"
    return ""


def display_name(person, locale: Optional[str] = None) -> str:
    """Pick the label shown for a person, falling back to "Unknown"."""
    names = person.names or {}
    candidates = [locale or DEFAULT_LOCALE, *FALLBACK_LOCALES]
    for key in candidates:
        if names.get(key):
            return normalize_spaces(names[key])
    for value in names.values():
        if value:
            return normalize_spaces(value)
    combined = normalize_spaces(f"{person.given} {person.surname}")
    return combined or UNKNOWN_NAME


def index_name(raw) -> str:
    """Name stored in the search index: no GEDCOM slashes, bounded length."""
    cleaned = normalize_spaces(str(raw or "").replace("/", " "))
    return (cleaned or UNKNOWN_NAME)[:INDEX_NAME_MAX]
