"""Figma share-link parsing."""

import re
from typing import Optional

FIGMA_URL_PATTERN = re.compile(
    r"^https://(www\.)?figma\.com/(file|proto)/([a-zA-Z0-9]{22,128})/.*$"
)


def extract_figma_key(url: str) -> Optional[str]:
    """Return the file key of a Figma file or prototype link, else None."""
    match = FIGMA_URL_PATTERN.match(url.strip())
    return match.group(3) if match else None
