"""Figma REST API client for design file lookups.

Uses httpx for async HTTP calls. Two requests are made per lookup: the
file document (name, lastModified) and a rendered PNG of the first frame
used as the preview thumbnail. The thumbnail is best-effort.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

FIGMA_TIMEOUT = 15


class FigmaAPIError(Exception):
    """Raised when the Figma API answers a file request with an error."""

    def __init__(self, status_code: int, details: Any) -> None:
        super().__init__(f"Figma API returned {status_code}")
        self.status_code = status_code
        self.details = details


@dataclass
class FigmaFile:
    name: str
    preview_url: Optional[str]
    last_modified: Optional[str]


def _auth_headers(token: str) -> dict[str, str]:
    return {"X-Figma-Token": token}


async def get_file(token: str, file_key: str, api_base: str) -> FigmaFile:
    """Fetch a Figma file's name, modification time and preview image.

    Raises:
        FigmaAPIError: If the file request fails; carries Figma's status.
    """
    async with httpx.AsyncClient(base_url=api_base, timeout=FIGMA_TIMEOUT) as client:
        file_response = await client.get(f"/files/{file_key}", headers=_auth_headers(token))
        if file_response.status_code >= 400:
            try:
                details = file_response.json()
            except ValueError:
                details = file_response.text
            logger.warning(
                "Figma file lookup for %s failed: %s", file_key, file_response.status_code
            )
            raise FigmaAPIError(file_response.status_code, details)
        file_data = file_response.json()

        image_response = await client.get(
            f"/images/{file_key}",
            params={"ids": "0", "format": "png", "scale": "2"},
            headers=_auth_headers(token),
        )
        preview_url = None
        if image_response.status_code < 400:
            preview_url = (image_response.json().get("images") or {}).get("0")
        else:
            logger.info(
                "No Figma preview for %s (status %s)", file_key, image_response.status_code
            )

    return FigmaFile(
        name=file_data.get("name", ""),
        preview_url=preview_url,
        last_modified=file_data.get("lastModified"),
    )
