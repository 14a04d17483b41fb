"""
GEDCOM API endpoints: upload/import, download, and the stored-tree person index.
"""
import logging
from typing import Optional

from fastapi import APIRouter, File, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool

from config import DEFAULT_LOCALE
from models import GedcomImportResult, PersonIndexEntry
from services.gedcom_reader import count_records, load_gedcom
from services.gedcom_writer import build_gedcom
from services.storage_service import TreeStore, build_person_index, validate_gedcom_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["gedcom"])

GEDCOM_MEDIA_TYPE = "application/octet-stream"
UPLOAD_CHUNK_BYTES = 1024 * 1024

# Session management functions (set by main.py)
session_manager = None
get_session_from_request = None
set_session_cookie = None


def set_session_manager(manager, get_session_func, set_cookie_func):
    """Set the session manager and helper functions."""
    global session_manager, get_session_from_request, set_session_cookie
    session_manager = manager
    get_session_from_request = get_session_func
    set_session_cookie = set_cookie_func


def get_tree_state(request: Request, response: Response):
    """Get tree state for current session."""
    session_id, tree_state = get_session_from_request(request)
    set_session_cookie(response, session_id)
    return tree_state


def get_store() -> TreeStore:
    return TreeStore()


def gedcom_download(text: str, filename: str) -> Response:
    return Response(
        content=text.encode("utf-8"),
        media_type=GEDCOM_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def read_gedcom_upload(file: UploadFile) -> str:
    """
    Check the extension and size, then read and decode the body.

    The declared size is checked before reading when the client sent one;
    otherwise the body is read in chunks and rejected once it passes the limit.
    """
    validate_gedcom_upload(file.filename, file.size or 0)
    chunks = []
    total = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        validate_gedcom_upload(file.filename, total)
        chunks.append(chunk)
    return b"".join(chunks).decode("utf-8", errors="replace")


@router.post("/tree/import-gedcom", response_model=GedcomImportResult)
async def import_gedcom(
    request: Request,
    response: Response,
    file: UploadFile = File(...),
    locale: Optional[str] = None,
):
    """Replace the session tree with the people of an uploaded GEDCOM file."""
    tree_state = get_tree_state(request, response)

    text = await read_gedcom_upload(file)
    people = await run_in_threadpool(load_gedcom, text, locale or DEFAULT_LOCALE)

    tree_state.replace_people(people, "import_gedcom", metadata={"source": file.filename})
    logger.info("Imported GEDCOM %s with %d persons", file.filename, len(people))
    return GedcomImportResult(persons=len(people), counts=count_records(text))


@router.get("/tree/export-gedcom")
async def export_gedcom(request: Request, response: Response, locale: Optional[str] = None):
    """Download the session tree as GEDCOM."""
    tree_state = get_tree_state(request, response)

    text = build_gedcom(tree_state.tree.people(), locale or DEFAULT_LOCALE)
    return gedcom_download(text, "family-tree.ged")


@router.post("/trees/{tree_id}/gedcom", response_model=GedcomImportResult)
async def import_stored_gedcom(
    tree_id: str,
    request: Request,
    response: Response,
    file: UploadFile = File(...),
    locale: Optional[str] = None,
):
    """
    Store an uploaded GEDCOM file under ``tree_id``, rebuild its person index
    and load it into the session tree.
    """
    tree_state = get_tree_state(request, response)
    store = get_store()
    locale = locale or DEFAULT_LOCALE

    text = await read_gedcom_upload(file)
    # blank text and text without INDI records are rejected before parsing
    people = await run_in_threadpool(load_gedcom, text, locale)

    store.save_tree_gedcom_text(tree_id, text)
    store.replace_person_index(tree_id, build_person_index(people, locale))

    tree_state.replace_people(people, "import_gedcom", metadata={"tree_id": tree_id, "source": file.filename})
    counts = count_records(text)
    logger.info(
        "Imported GEDCOM into tree %s: %d individuals, %d families, %d events",
        tree_id, counts.individuals, counts.families, counts.events,
    )
    return GedcomImportResult(tree_id=tree_id, persons=len(people), counts=counts)


@router.get("/trees/{tree_id}/gedcom/export")
async def export_stored_gedcom(tree_id: str):
    """Download the stored GEDCOM text of a tree."""
    text = get_store().load_tree_gedcom_text(tree_id)
    return gedcom_download(text, f"tree-{tree_id}.ged")


@router.get("/trees/{tree_id}/persons", response_model=list[PersonIndexEntry])
async def search_persons(tree_id: str, q: str = "", limit: int = 50):
    """Search the person index of a stored tree."""
    return get_store().search_person_index(tree_id, q, max(1, min(limit, 500)))


@router.delete("/trees/{tree_id}")
async def delete_stored_tree(tree_id: str):
    """Delete the stored GEDCOM text and person index of a tree."""
    get_store().delete_tree(tree_id)
    return {"status": "deleted", "tree_id": tree_id}
