import logging

from models import Person
from services.gedcom_writer import FamilyUnitBuilder, build_gedcom, sorted_pair_key


def lines_of(text):
    assert text.endswith("\r\n")
    return text[:-2].split("\r\n")


def record(lines, pointer):
    """Lines of the level-0 record starting with ``0 <pointer>``."""
    start = next(i for i, line in enumerate(lines) if line.startswith(f"0 {pointer} "))
    end = next((i for i in range(start + 1, len(lines)) if lines[i].startswith("0 ")), len(lines))
    return lines[start:end]


def test_sorted_pair_key():
    assert sorted_pair_key("b", "a") == "a|b"
    assert sorted_pair_key("a", "b") == sorted_pair_key("b", "a")
    assert sorted_pair_key("a", None) is None
    assert sorted_pair_key("", "b") is None
    assert sorted_pair_key(2, 10) == "10|2"


def test_header_and_trailer():
    lines = lines_of(build_gedcom([Person(id="x", names={"en": "Solo"})]))
    assert lines[:6] == [
        "0 HEAD",
        "1 SOUR FamilyTreeBuilder",
        "1 GEDC",
        "2 VERS 5.5.1",
        "2 FORM LINEAGE-LINKED",
        "1 CHAR UTF-8",
    ]
    assert lines[-1] == "0 TRLR"


def test_crlf_only():
    text = build_gedcom([Person(id="x", names={"en": "A B"}, details="one\ntwo")])
    assert "\n" not in text.replace("\r\n", "")


def test_individual_lines(family_people):
    family_people[0].birth_year = "1900"
    family_people[0].birth_place = "Boston"
    family_people[0].profession = "Carpenter"
    family_people[0].reliability = "High"
    family_people[0].color = "#abcdef"
    family_people[2].details = "First line\n\nThird line"
    family_people[2].archive_source = "Parish register"
    family_people[2].document_code = "DOC-1"

    lines = lines_of(build_gedcom(family_people))
    john = record(lines, "@I1@")
    assert john == [
        "0 @I1@ INDI",
        "1 NAME John /Smith/",
        "1 GIVN John",
        "1 SURN Smith",
        "1 SEX M",
        "1 BIRT",
        "2 DATE 1900",
        "2 PLAC Boston",
        "1 OCCU Carpenter",
        "1 _RELI High",
        "1 _COLOR #abcdef",
        "1 FAMS @F1@",
    ]

    bob = record(lines, "@I3@")
    assert "1 NOTE First line" in bob
    assert bob[bob.index("1 NOTE First line") + 1] == "2 CONT"
    assert bob[bob.index("1 NOTE First line") + 2] == "2 CONT Third line"
    assert "1 SOUR Parish register" in bob
    assert "1 REFN DOC-1" in bob
    assert "1 FAMC @F1@" in bob


def test_family_unit_for_parents(family_people):
    lines = lines_of(build_gedcom(family_people))
    assert record(lines, "@F1@") == ["0 @F1@ FAM", "1 HUSB @I1@", "1 WIFE @I2@", "1 CHIL @I3@"]
    assert sum(1 for line in lines if line.endswith(" FAM")) == 1


def test_childless_spouse_pair_gets_a_unit():
    people = [
        Person(id="a", names={"en": "Ann Lee"}, gender="F", spouse="b"),
        Person(id="b", names={"en": "Bo Lee"}, gender="M", spouse="a"),
    ]
    lines = lines_of(build_gedcom(people))
    assert record(lines, "@F1@") == ["0 @F1@ FAM", "1 HUSB @I2@", "1 WIFE @I1@"]


def test_single_parent_unit_leaves_other_slot_blank():
    people = [
        Person(id="m", names={"en": "Mia Ross"}, gender="F", children=["k"]),
        Person(id="k", names={"en": "Kai Ross"}, mother="m"),
    ]
    lines = lines_of(build_gedcom(people))
    assert record(lines, "@F1@") == ["0 @F1@ FAM", "1 WIFE @I1@", "1 CHIL @I2@"]


def test_children_list_without_parent_fields():
    people = [
        Person(id="d", names={"en": "Dan Ross"}, gender="M", children=["k"]),
        Person(id="k", names={"en": "Kai Ross"}),
    ]
    lines = lines_of(build_gedcom(people))
    assert record(lines, "@F1@") == ["0 @F1@ FAM", "1 HUSB @I1@", "1 CHIL @I2@"]
    assert "1 FAMC @F1@" in record(lines, "@I2@")


def test_single_mother_gets_one_unit_from_both_sources():
    people = [
        Person(id="m", names={"en": "Mia Ross"}, gender="F", children=["c1"]),
        Person(id="c1", names={"en": "Cal Ross"}),
        Person(id="c2", names={"en": "Cleo Ross"}, mother="m"),
    ]
    text = build_gedcom(people)
    lines = lines_of(text)
    assert text.count(" FAM\r\n") == 1
    assert record(lines, "@F1@") == ["0 @F1@ FAM", "1 WIFE @I1@", "1 CHIL @I3@", "1 CHIL @I2@"]
    assert [line for line in record(lines, "@I1@") if line.startswith("1 FAMS")] == ["1 FAMS @F1@"]


def test_given_only_name_has_empty_surname_slashes():
    lines = lines_of(build_gedcom([Person(id="m", names={"en": "Mary Ann"}, given="Mary Ann")]))
    assert record(lines, "@I1@")[1:3] == ["1 NAME Mary Ann //", "1 GIVN Mary Ann"]


def test_ambiguous_gender_roles_use_id_order():
    builder = FamilyUnitBuilder([Person(id="zed", spouse="amy"), Person(id="amy", spouse="zed")])
    assert builder.resolve_spouse_roles("zed", "amy") == ("amy", "zed")
    assert builder.resolve_spouse_roles("amy", "zed") == ("amy", "zed")


def test_known_genders_decide_roles():
    builder = FamilyUnitBuilder([Person(id="a", gender="F"), Person(id="b", gender="M")])
    assert builder.resolve_spouse_roles("a", "b") == ("b", "a")


def test_parent_and_spouse_units_are_shared():
    people = [
        Person(id="h", gender="M", spouse="w", children=["c1", "c2"]),
        Person(id="w", gender="F", spouse="h", children=["c1", "c2"]),
        Person(id="c1", father="h", mother="w"),
        Person(id="c2", father="h", mother="w"),
    ]
    units = FamilyUnitBuilder(people).build()
    assert len(units) == 1
    assert units[0].husband_id == "h"
    assert units[0].wife_id == "w"
    assert units[0].child_ids == ["c1", "c2"]


def test_current_spouse_unit_is_numbered_first():
    people = [
        Person(id="h", gender="M", spouse="w2"),
        Person(id="w1", gender="F", children=["c"]),
        Person(id="w2", gender="F", spouse="h"),
        Person(id="c", father="h", mother="w1"),
    ]
    builder = FamilyUnitBuilder(people)
    units = builder.build()
    assert (units[0].husband_id, units[0].wife_id) == ("h", "w2")
    assert builder.fams["h"] == ["@F1@", "@F2@"]


def test_dangling_relations_are_omitted(caplog):
    people = [
        Person(id="a", names={"en": "Ann Lee"}, father="ghost", spouse="nobody", children=["missing"]),
    ]
    with caplog.at_level(logging.WARNING):
        lines = lines_of(build_gedcom(people))
    assert not any(line.endswith(" FAM") for line in lines)
    assert not any("FAMC" in line or "FAMS" in line for line in lines)
    assert "Omitted 3 relations" in caplog.text


def test_unknown_name_and_sex():
    lines = lines_of(build_gedcom([Person(id="x", gender="other")]))
    indi = record(lines, "@I1@")
    assert indi == ["0 @I1@ INDI", "1 NAME Unknown"]
