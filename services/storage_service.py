"""
File-backed persistence for imported GEDCOM trees.

Each stored tree lives in ``<DATA_DIR>/trees/<tree_id>/`` with the raw GEDCOM
text (``tree.ged``) and a small JSON search index of ``{id, name}`` rows.
"""
import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

import config
from errors import GedcomFileError, TreeNotFoundError
from models import Person, PersonIndexEntry
from services.naming import display_name, index_name

logger = logging.getLogger(__name__)

GEDCOM_FILENAME = "tree.ged"
INDEX_FILENAME = "persons.json"

_TREE_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_gedcom_upload(filename: Optional[str], size: int):
    """Reject uploads with the wrong extension or over the size limit."""
    ext = Path(filename or "").suffix.lower()
    if ext not in config.GEDCOM_EXTENSIONS:
        raise GedcomFileError("Unsupported file type. Use .ged or .gedcom.")
    if size > config.MAX_GEDCOM_BYTES:
        limit_mb = config.MAX_GEDCOM_BYTES // (1024 * 1024)
        raise GedcomFileError(f"File is too large (max {limit_mb}MB).", too_large=True)


def build_person_index(people: List[Person], locale: Optional[str] = None) -> List[PersonIndexEntry]:
    return [PersonIndexEntry(id=p.id, name=index_name(display_name(p, locale))) for p in people]


def _write_atomic(path: Path, text: str):
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=".tmp-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class TreeStore:
    """Stores GEDCOM text and the person search index per tree id."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else config.DATA_DIR / "trees"

    def tree_dir(self, tree_id: str) -> Path:
        tree_id = str(tree_id)
        if not _TREE_ID.match(tree_id):
            raise TreeNotFoundError(f"Invalid tree id: {tree_id!r}")
        return self.root / tree_id

    def exists(self, tree_id: str) -> bool:
        return (self.tree_dir(tree_id) / GEDCOM_FILENAME).is_file()

    def save_tree_gedcom_text(self, tree_id: str, text: str):
        directory = self.tree_dir(tree_id)
        directory.mkdir(parents=True, exist_ok=True)
        _write_atomic(directory / GEDCOM_FILENAME, text)
        logger.info("Stored GEDCOM for tree %s (%d chars)", tree_id, len(text))

    def load_tree_gedcom_text(self, tree_id: str) -> str:
        path = self.tree_dir(tree_id) / GEDCOM_FILENAME
        if not path.is_file():
            logger.warning("No stored GEDCOM for tree %s", tree_id)
            raise TreeNotFoundError(f"GEDCOM file not found for tree {tree_id}")
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()

    def replace_person_index(self, tree_id: str, entries: List[PersonIndexEntry]):
        """Swap the whole index in one step; readers never see a partial one."""
        directory = self.tree_dir(tree_id)
        directory.mkdir(parents=True, exist_ok=True)
        rows = [entry.model_dump() for entry in entries]
        _write_atomic(directory / INDEX_FILENAME, json.dumps(rows, ensure_ascii=False))
        logger.info("Indexed %d persons for tree %s", len(rows), tree_id)

    def load_person_index(self, tree_id: str) -> List[PersonIndexEntry]:
        path = self.tree_dir(tree_id) / INDEX_FILENAME
        if not path.is_file():
            raise TreeNotFoundError(f"No person index for tree {tree_id}")
        with open(path, "r", encoding="utf-8") as f:
            return [PersonIndexEntry(**row) for row in json.load(f)]

    def search_person_index(self, tree_id: str, query: str = "", limit: int = 50) -> List[PersonIndexEntry]:
        """Case-insensitive substring match on the index name, sorted by name."""
        needle = (query or "").strip().lower()
        matches = [e for e in self.load_person_index(tree_id) if needle in e.name.lower()]
        matches.sort(key=lambda e: (e.name.lower(), e.id))
        return matches[:limit]

    def delete_tree(self, tree_id: str):
        directory = self.tree_dir(tree_id)
        if not directory.exists():
            raise TreeNotFoundError(f"Tree {tree_id} not found")
        shutil.rmtree(directory)
        logger.info("Deleted stored tree %s", tree_id)
