"""Download link issuance and archive delivery routes."""

import html
from typing import Any, Dict, List, Union

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import HTMLResponse, ORJSONResponse, StreamingResponse
from pydantic import BaseModel, EmailStr, Field, ValidationError
from starlette.background import BackgroundTask

from constants import ARCHIVE_MEDIA_TYPE
from core.config import Settings
from core.container import container
from core.logging import get_logger
from services.downloads import (
    DownloadError,
    DownloadService,
    InvalidInput,
    TooManyConcurrentBuilds,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["downloads"])


class DownloadLinkRequest(BaseModel):
    photoIds: List[Union[int, str]] = Field(default_factory=list)
    email: EmailStr


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "")


def _error_response(request: Request, error: DownloadError):
    headers = {}
    if isinstance(error, TooManyConcurrentBuilds):
        headers["Retry-After"] = str(error.retry_after)

    if _wants_html(request):
        page = (
            "<!doctype html><html><head><meta charset=\"utf-8\">"
            "<title>Download unavailable</title></head>"
            "<body><h1>Download unavailable</h1><p>{}</p></body></html>"
        ).format(html.escape(error.message))
        return HTMLResponse(page, status_code=error.status_code, headers=headers)

    return ORJSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.code, "message": error.message},
        headers=headers,
    )


@router.post("/request-download")
async def request_download(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    service: DownloadService = Depends(lambda: container.download_service())
):
    """Email a signed download link for the selected photos."""
    try:
        try:
            body = DownloadLinkRequest.model_validate(payload)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise InvalidInput(f"invalid fields: {', '.join(fields)}") from e
        email = body.email
        issued = await service.issue_link(body.photoIds, email)
    except DownloadError as e:
        logger.warning("Download link request rejected", code=e.code, detail=e.detail)
        return _error_response(request, e)

    return {
        "success": True,
        "message": f"Download link for {issued.item_count} photos sent to {email}",
    }


@router.get("/download/{token}")
async def download_archive(
    token: str,
    request: Request,
    service: DownloadService = Depends(lambda: container.download_service())
):
    """Stream the zip archive for a download token, building it on demand."""
    try:
        download = await service.retrieve(token)
    except DownloadError as e:
        logger.info("Download refused", code=e.code, status_code=e.status_code, detail=e.detail)
        return _error_response(request, e)
    except Exception as e:
        logger.error("Archive delivery failed", error=f"{type(e).__name__}: {e}", exc_info=True)
        return _error_response(request, DownloadError(str(e)))

    logger.info("Serving archive",
                cache_key=download.cache_key[:12],
                size_bytes=download.size,
                built=download.built)
    return StreamingResponse(
        download.iter_chunks(),
        media_type=ARCHIVE_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{download.filename}"',
            "Content-Length": str(download.size),
        },
        background=BackgroundTask(download.close),
    )


@router.get("/config")
async def get_public_config(
    settings: Settings = Depends(lambda: container.settings())
):
    """Public client configuration (selection limit, link validity)."""
    return {
        "maxPhotoSelection": settings.max_photo_selection,
        "downloadLinkValidityDays": settings.download_link_validity_days,
    }
