"""
Family Tree Builder - FastAPI entry point.
"""
import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

import config
from errors import (
    EditValidationError,
    FamilyTreeError,
    GedcomError,
    GedcomFileError,
    LayoutError,
    PersonNotFoundError,
    TreeNotFoundError,
)
from services.session_service import SessionManager, TreeState

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "family_tree_session"

app = FastAPI(
    title="Family Tree Builder",
    description="GEDCOM import/export, family graph editing and tree layout",
    version="1.0.0"
)

session_manager = SessionManager()


def get_session_from_request(request: Request) -> tuple[str, TreeState]:
    """Get or create the session named by the request cookie."""
    return session_manager.get_or_create_session(request.cookies.get(SESSION_COOKIE_NAME))


def set_session_cookie(response: Response, session_id: str):
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        max_age=config.SESSION_MAX_AGE,
        httponly=True,
        samesite="lax"
    )


def error_status(exc: FamilyTreeError) -> int:
    if isinstance(exc, GedcomFileError) and exc.too_large:
        return 413
    if isinstance(exc, (PersonNotFoundError, TreeNotFoundError)):
        return 404
    if isinstance(exc, (GedcomError, EditValidationError)):
        return 400
    return 500


@app.exception_handler(FamilyTreeError)
async def family_tree_error_handler(request: Request, exc: FamilyTreeError):
    status = error_status(exc)
    content = {"detail": str(exc)}
    if isinstance(exc, LayoutError) or status == 500:
        content["retry"] = True
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    elif isinstance(exc, GedcomFileError):
        logger.warning("Rejected upload on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status, content=content)


# Routers reach the session through the helpers above
from api import gedcom, persons, relationships, tree  # noqa: E402

for module in (persons, relationships, tree, gedcom):
    module.set_session_manager(session_manager, get_session_from_request, set_session_cookie)
    app.include_router(module.router)


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "active_sessions": len(session_manager.sessions)
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
