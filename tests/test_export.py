from pathlib import Path

import pytest

from errors import LayoutError
from models import ExportOptions, FamilyTree
from services import export_service
from services.export_service import _hex_to_rgb, build_draw_list, export_tree, tree_positions
from services.render_service import CardCommand


@pytest.fixture
def placed_tree(family_people):
    for person, (x, y) in zip(family_people, [(100.0, 0.0), (400.0, 0.0), (250.0, 240.0)]):
        person.x, person.y = x, y
    return FamilyTree.from_people(family_people)


def test_hex_to_rgb():
    assert _hex_to_rgb("#ffffff") == (1.0, 1.0, 1.0)
    assert _hex_to_rgb("#000") == (0.0, 0.0, 0.0)


def test_stored_positions_are_used(placed_tree):
    assert tree_positions(placed_tree)["bob"] == {"x": 250.0, "y": 240.0}


def test_unplaced_tree_gets_a_layout(family_people):
    positions = tree_positions(FamilyTree.from_people(family_people))
    assert set(positions) == {"john", "jane", "bob"}


def test_draw_list_matches_people(placed_tree):
    _, commands = build_draw_list(placed_tree)
    assert sorted(c.id for c in commands if isinstance(c, CardCommand)) == ["bob", "jane", "john"]


@pytest.mark.parametrize("fmt,magic", [("png", b"\x89PNG"), ("jpg", b"\xff\xd8"), ("pdf", b"%PDF")])
def test_export_formats(data_dirs, placed_tree, fmt, magic):
    _, exports_dir = data_dirs
    path = Path(export_tree(placed_tree, ExportOptions(format=fmt, width=640, height=480)))
    assert path.parent == exports_dir
    assert path.suffix == f".{fmt}"
    assert path.read_bytes().startswith(magic)


def test_export_dark_pdf_portrait(data_dirs, placed_tree):
    options = ExportOptions(format="pdf", page_size="Letter", orientation="portrait", dark=True)
    assert Path(export_tree(placed_tree, options)).is_file()


def test_export_empty_tree(data_dirs):
    path = Path(export_tree(FamilyTree(), ExportOptions(format="png", width=200, height=100)))
    assert path.is_file()


def test_draw_failure_becomes_layout_error(data_dirs, placed_tree, monkeypatch):
    def broken(*args, **kwargs):
        raise ValueError("bad draw")

    monkeypatch.setattr(export_service, "draw_commands", broken)
    with pytest.raises(LayoutError, match="bad draw"):
        export_tree(placed_tree, ExportOptions(format="png"))
