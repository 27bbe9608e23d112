from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse


STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
INGEST_PAGE = STATIC_DIR / "ingest.html"
DEFAULT_PAGE = STATIC_DIR / "index.html"

router = APIRouter(tags=["pages"], include_in_schema=False)
# Registered after every other router so it only sees unmatched paths.
fallback_router = APIRouter(tags=["pages"], include_in_schema=False)


@router.get("/")
async def home() -> FileResponse:
    return FileResponse(INGEST_PAGE, media_type="text/html")


@router.get("/ingest")
async def ingest_form() -> FileResponse:
    return FileResponse(INGEST_PAGE, media_type="text/html")


@fallback_router.get("/{path:path}")
async def default_page(path: str) -> FileResponse:
    asset = _resolve_static_asset(path)
    if asset is not None:
        return FileResponse(asset)
    return FileResponse(DEFAULT_PAGE, media_type="text/html")


@fallback_router.api_route("/{path:path}", methods=["POST", "PUT", "PATCH", "DELETE"])
async def unknown_route(path: str) -> None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")


def _resolve_static_asset(path: str) -> Path | None:
    if not path:
        return None
    candidate = (STATIC_DIR / path).resolve()
    if STATIC_DIR not in candidate.parents or not candidate.is_file():
        return None
    return candidate
