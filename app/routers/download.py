"""Router for GET and HEAD /download/{filename}: serve stored artifacts."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request, Response

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["download"])

CACHE_CONTROL = "public, max-age=3600"


@router.head("/download/{filename}")
def head_artifact(filename: str, request: Request):
    """Report size and cache policy without sending the body."""
    info = request.app.state.artifact_store.stat(filename)
    return Response(
        status_code=200,
        headers={"Content-Length": str(info.size), "Cache-Control": CACHE_CONTROL},
    )


@router.get("/download/{filename}")
def download_artifact(filename: str, request: Request):
    """Serve an artifact as an attachment.

    Names containing ``..``, ``/`` or ``\\`` and extensions outside the
    whitelist get 400; expired or unknown names get 404.
    """
    artifact = request.app.state.artifact_store.get(filename)
    logger.info("artifact_downloaded", name=filename, size_bytes=artifact.info.size)
    return Response(
        content=artifact.content,
        media_type=artifact.info.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": CACHE_CONTROL,
            "X-Content-Type-Options": "nosniff",
        },
    )
