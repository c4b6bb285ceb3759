"""
Catch-all route, registered after every real route. Any path nothing else
matched, API prefix included, gets the plain "page not found" body.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from models.schemas import PageNotFoundResponse

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

site_fallback_router = APIRouter(include_in_schema=False)


@site_fallback_router.api_route("/{path:path}", methods=ALL_METHODS)
async def page_not_found(path: str) -> JSONResponse:
    return JSONResponse(status_code=404, content=PageNotFoundResponse().model_dump())
