"""
Person CRUD API endpoints.

Every change to relation fields goes through ``apply_edit`` so the session tree
is replaced by an already repaired snapshot.
"""
import logging
from fastapi import APIRouter, HTTPException, Request, Response

from models import Person, PersonCreate, PersonUpdate, PositionUpdate
from services.tree_editor import AddPerson, DeletePerson, UpdatePerson, apply_edit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/persons", tags=["persons"])

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


@router.post("", response_model=Person)
async def create_person(person_data: PersonCreate, request: Request, response: Response):
    """Create a new person."""
    tree_state = get_tree_state(request, response)

    result = apply_edit(tree_state.tree.people(), AddPerson(person_data), person_data.locale)
    tree_state.replace_people(result.people, "create_person")
    return result.person


@router.get("/{person_id}", response_model=Person)
async def get_person(person_id: str, request: Request, response: Response):
    """Get a person by ID."""
    tree_state = get_tree_state(request, response)

    if person_id not in tree_state.tree.persons:
        raise HTTPException(status_code=404, detail="Person not found")

    return tree_state.tree.persons[person_id]


@router.get("", response_model=list[Person])
async def list_persons(request: Request, response: Response):
    """List all persons."""
    tree_state = get_tree_state(request, response)
    return tree_state.tree.people()


@router.put("/{person_id}", response_model=Person)
async def update_person(person_id: str, person_data: PersonUpdate, request: Request, response: Response):
    """Update a person from the full builder form."""
    tree_state = get_tree_state(request, response)

    result = apply_edit(tree_state.tree.people(), UpdatePerson(person_id, person_data), person_data.locale)
    tree_state.replace_people(result.people, "update_person")
    return result.person


@router.patch("/positions", response_model=dict)
async def update_positions(positions: list[dict], request: Request, response: Response):
    """Update positions for multiple persons."""
    tree_state = get_tree_state(request, response)

    count = 0
    for pos in positions:
        person_id = str(pos.get("id"))
        if person_id in tree_state.tree.persons and pos.get("x") is not None and pos.get("y") is not None:
            person = tree_state.tree.persons[person_id]
            person.x = float(pos["x"])
            person.y = float(pos["y"])
            count += 1

    if count > 0:
        tree_state.touch()

    return {"status": "success", "updated_count": count}


@router.patch("/{person_id}/position", response_model=Person)
async def update_position(person_id: str, position: PositionUpdate, request: Request, response: Response):
    """Update just the position of a person (a drag release in the view)."""
    tree_state = get_tree_state(request, response)

    if person_id not in tree_state.tree.persons:
        raise HTTPException(status_code=404, detail="Person not found")

    # Don't save state for position updates (would be too many)
    person = tree_state.tree.persons[person_id]
    person.x = position.x
    person.y = position.y

    tree_state.touch()

    return person


@router.delete("/{person_id}")
async def delete_person(person_id: str, request: Request, response: Response):
    """Delete a person and every relation pointing at them."""
    tree_state = get_tree_state(request, response)

    result = apply_edit(tree_state.tree.people(), DeletePerson(person_id))
    tree_state.replace_people(result.people, "delete_person")
    return {"status": "deleted", "id": person_id}
