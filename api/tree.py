"""
Tree operations API endpoints (undo/redo, layout, fit, export, JSON import/export).
"""
import logging
import os
from copy import deepcopy

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse

from errors import LayoutError
from models import FamilyTree, ExportOptions, LayoutOptions, ViewportOptions
from services.layout_service import calculate_layout
from services.person_graph import reconcile
from services.render_service import fit_transform

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tree", tags=["tree"])

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


@router.get("")
async def get_tree(request: Request, response: Response):
    """Get the entire family tree."""
    tree_state = get_tree_state(request, response)

    return {
        "tree": tree_state.tree.model_dump(),
        "can_undo": tree_state.can_undo(),
        "can_redo": tree_state.can_redo(),
        "last_action": tree_state.last_action,
    }


@router.post("/new")
async def new_tree(request: Request, response: Response):
    """Create a new empty tree."""
    tree_state = get_tree_state(request, response)

    tree_state.save_state("new_tree")
    tree_state.tree = FamilyTree()
    logger.info("Created new tree")
    return {"status": "created"}


@router.post("/undo")
async def undo(request: Request, response: Response):
    """Undo the last action."""
    tree_state = get_tree_state(request, response)

    if not tree_state.undo():
        raise HTTPException(status_code=400, detail="Nothing to undo")

    return {
        "status": "undone",
        "can_undo": tree_state.can_undo(),
        "can_redo": tree_state.can_redo()
    }


@router.post("/redo")
async def redo(request: Request, response: Response):
    """Redo the last undone action."""
    tree_state = get_tree_state(request, response)

    if not tree_state.redo():
        raise HTTPException(status_code=400, detail="Nothing to redo")

    return {
        "status": "redone",
        "can_undo": tree_state.can_undo(),
        "can_redo": tree_state.can_redo()
    }


@router.post("/export")
async def export_tree(options: ExportOptions, request: Request, response: Response):
    """Export the tree as an image or PDF."""
    tree_state = get_tree_state(request, response)

    from services.export_service import export_tree as do_export

    try:
        filepath = await run_in_threadpool(do_export, deepcopy(tree_state.tree), options)
    except LayoutError:
        raise
    except Exception as e:
        logger.exception("Export failed")
        raise HTTPException(status_code=500, detail=str(e))

    return FileResponse(
        filepath,
        media_type="application/octet-stream",
        filename=os.path.basename(filepath)
    )


@router.post("/layout")
async def auto_layout(options: LayoutOptions, request: Request, response: Response):
    """
    Run the force layout and store the resulting positions.

    The simulation runs on a copy. If the tree is edited while it runs the
    positions are discarded instead of being written over the newer tree.
    """
    tree_state = get_tree_state(request, response)

    revision = tree_state.revision
    positions = await run_in_threadpool(calculate_layout, deepcopy(tree_state.tree), options)

    if tree_state.revision != revision:
        logger.warning("Discarding layout: tree changed while it was running")
        raise HTTPException(status_code=409, detail="Tree changed during layout, run it again")

    tree_state.save_state("auto_layout")
    for person_id, pos in positions.items():
        if person_id in tree_state.tree.persons:
            tree_state.tree.persons[person_id].x = pos["x"]
            tree_state.tree.persons[person_id].y = pos["y"]

    logger.info("Applied auto-layout to %d persons", len(positions))
    return {"status": "layout_applied", "positions": positions}


@router.post("/fit")
async def fit_view(viewport: ViewportOptions, request: Request, response: Response):
    """Camera transform that fits every placed person into the viewport."""
    tree_state = get_tree_state(request, response)

    positions = {
        p.id: {"x": p.x, "y": p.y}
        for p in tree_state.tree.people()
        if p.x is not None and p.y is not None
    }
    transform = fit_transform(positions, viewport.width, viewport.height)
    if transform is None:
        return {"transform": None}
    return {
        "transform": {
            "scale": transform.scale,
            "translate_x": transform.translate_x,
            "translate_y": transform.translate_y,
        }
    }


@router.get("/export-json")
async def export_json(request: Request, response: Response):
    """Export tree as JSON for client download."""
    tree_state = get_tree_state(request, response)
    return JSONResponse(content=tree_state.tree.model_dump())


@router.post("/import-json")
async def import_json(tree_data: FamilyTree, request: Request, response: Response):
    """Import tree from client-uploaded JSON, repairing its relation fields."""
    tree_state = get_tree_state(request, response)

    people = reconcile(tree_data.people())
    tree_state.replace_people(people, "import_json", metadata=tree_data.metadata)

    logger.info("Imported tree with %d persons", len(people))
    return {"status": "imported", "persons": len(people)}
