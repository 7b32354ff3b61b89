"""Serve screenshots captured by the automation service."""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, JSONResponse

from curabot.api.deps import get_app_settings
from curabot.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["screenshots"])

MIME_TYPES = {
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".avif": "image/avif",
    ".bmp": "image/bmp",
}

CACHE_HEADERS = {"Cache-Control": "public, max-age=31536000, immutable"}


def resolve_screenshot(base_dir: Path, relative: str) -> Path | None:
    """Map a request path onto a file under base_dir.

    Returns None when any segment is empty, contains ``..`` or a NUL byte,
    or when the resolved path escapes base_dir.
    """
    segments = relative.split("/")
    for seg in segments:
        if not seg or "\0" in seg or ".." in seg or seg.startswith("/"):
            return None

    base = base_dir.resolve()
    candidate = base.joinpath(*segments).resolve()
    if not candidate.is_relative_to(base):
        return None
    return candidate


@router.get("/screenshots/{path:path}")
async def get_screenshot(path: str, settings: Settings = Depends(get_app_settings)):
    file_path = resolve_screenshot(settings.general.screenshots_dir, path)
    if file_path is None:
        return JSONResponse({"error": "Invalid path"}, status_code=400)
    if not file_path.is_file():
        return JSONResponse({"error": "Screenshot not found"}, status_code=404)

    media_type = MIME_TYPES.get(file_path.suffix.lower(), "application/octet-stream")
    logger.debug("Serving screenshot %s", file_path)
    return FileResponse(file_path, media_type=media_type, headers=CACHE_HEADERS)
