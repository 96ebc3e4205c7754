"""Figma lookup endpoint.

Proxies the Figma REST API so the access token stays server-side.
Status mapping: 400 without a file key, 500 when the token is not
configured, and Figma's own status when the upstream call fails.
"""

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from app.core.config import Settings, get_settings
from app.figma.client import FigmaAPIError, get_file
from app.figma.schemas import FigmaFileRequest, FigmaFileResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/figma", tags=["figma"])


@router.post("/file", response_model=FigmaFileResponse)
async def get_figma_file(
    body: FigmaFileRequest,
    settings: Settings = Depends(get_settings),
):
    """Return name, preview image URL and last-modified time of a Figma file."""
    if not body.file_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File key is required",
        )
    if not settings.figma_access_token:
        logger.error("FIGMA_ACCESS_TOKEN not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Figma API token not configured",
        )

    try:
        figma_file = await get_file(
            settings.figma_access_token, body.file_key, settings.figma_api_base
        )
    except FigmaAPIError as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "Failed to fetch Figma file", "details": exc.details},
        )
    except httpx.HTTPError as exc:
        logger.error("Figma API unreachable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Figma API unreachable",
        ) from exc

    return FigmaFileResponse(
        name=figma_file.name,
        preview_url=figma_file.preview_url,
        last_modified=figma_file.last_modified,
    )
