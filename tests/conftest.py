import sys
from pathlib import Path

import pytest

# Ensure the project root is on sys.path for test imports
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models import Person  # noqa: E402


COUPLE_GEDCOM = (
    "0 @I1@ INDI\n"
    "1 NAME John /Smith/\n"
    "1 SEX M\n"
    "1 BIRT\n"
    "2 DATE 1900\n"
    "0 @I2@ INDI\n"
    "1 NAME Jane /Doe/\n"
    "1 SEX F\n"
    "0 @F1@ FAM\n"
    "1 HUSB @I1@\n"
    "1 WIFE @I2@\n"
    "0 TRLR"
)

FAMILY_GEDCOM = (
    "0 HEAD\r\n"
    "1 SOUR Test\r\n"
    "1 CHAR UTF-8\r\n"
    "0 @I1@ INDI\r\n"
    "1 NAME John /Smith/\r\n"
    "1 SEX M\r\n"
    "1 BIRT\r\n"
    "2 DATE 1900\r\n"
    "2 PLAC Boston\r\n"
    "1 OCCU Carpenter\r\n"
    "1 FAMS @F1@\r\n"
    "0 @I2@ INDI\r\n"
    "1 NAME Jane /Doe/\r\n"
    "1 SEX F\r\n"
    "1 DEAT Y\r\n"
    "1 FAMS @F1@\r\n"
    "0 @I3@ INDI\r\n"
    "1 NAME Bob /Smith/\r\n"
    "1 SEX M\r\n"
    "1 NOTE First line\r\n"
    "2 CONT Second line\r\n"
    "2 CONC tail\r\n"
    "1 SOUR Parish register\r\n"
    "1 SOUR Census 1930\r\n"
    "1 FAMC @F1@\r\n"
    "0 @F1@ FAM\r\n"
    "1 HUSB @I1@\r\n"
    "1 WIFE @I2@\r\n"
    "1 CHIL @I3@\r\n"
    "0 TRLR\r\n"
)


@pytest.fixture
def couple_gedcom():
    return COUPLE_GEDCOM


@pytest.fixture
def family_gedcom():
    return FAMILY_GEDCOM


def by_given(people):
    return {p.given: p for p in people}


@pytest.fixture
def family_people():
    """John + Jane with their son Bob, already consistent."""
    return [
        Person(id="john", names={"en": "John Smith"}, given="John", surname="Smith", gender="M",
               spouse="jane", children=["bob"]),
        Person(id="jane", names={"en": "Jane Doe"}, given="Jane", surname="Doe", gender="F",
               spouse="john", children=["bob"]),
        Person(id="bob", names={"en": "Bob Smith"}, given="Bob", surname="Smith", gender="M",
               father="john", mother="jane"),
    ]


@pytest.fixture
def data_dirs(tmp_path, monkeypatch):
    import config

    data_dir = tmp_path / "data"
    exports_dir = tmp_path / "exports"
    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "EXPORTS_DIR", exports_dir)
    return data_dir, exports_dir
