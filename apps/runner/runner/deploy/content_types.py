"""Extension to MIME type table for published deployment files."""

import posixpath

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES: dict[str, str] = {
    "html": "text/html",
    "css": "text/css",
    "js": "application/javascript",
    "json": "application/json",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
}


def content_type_for(filename: str) -> str:
    """Return the content type for ``filename`` based on its extension."""
    _, ext = posixpath.splitext(filename)
    return CONTENT_TYPES.get(ext.lstrip(".").lower(), DEFAULT_CONTENT_TYPE)
