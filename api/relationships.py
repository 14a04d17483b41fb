"""
Relationship API endpoints: derived couple/child links and generation levels.
"""
import logging
from fastapi import APIRouter, Request, Response

from models import TreeLink
from services.generation_service import build_links, solve_generations

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["relationships"])

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


@router.get("/links", response_model=list[TreeLink])
async def list_links(request: Request, response: Response):
    """List the de-duplicated couple and child links of the session tree."""
    tree_state = get_tree_state(request, response)
    return build_links(tree_state.tree.people())


@router.get("/generations")
async def list_generations(request: Request, response: Response):
    """Generation level per person id."""
    tree_state = get_tree_state(request, response)

    people = tree_state.tree.people()
    generations = solve_generations(people, build_links(people))
    return {
        "generations": generations,
        "depth": max(generations.values()) + 1 if generations else 0,
    }
