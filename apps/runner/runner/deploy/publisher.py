"""Recursive publishing of an extracted prototype to public storage.

Every regular file under the extraction root is uploaded to
``{prefix}/{relative_path}`` with a content type from the extension table.
Directories are walked, never published. Uploads run concurrently up to a
fixed bound since every target path is distinct.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from runner.deploy.content_types import content_type_for
from runner.errors import ExtractionError

logger = logging.getLogger(__name__)

# upload(storage_path, data, content_type)
UploadFn = Callable[[str, bytes, str], Awaitable[None]]

DEFAULT_CONCURRENCY = 8


@dataclass
class PublishedFile:
    """One file copied into the public deployment namespace."""

    storage_path: str
    content_type: str
    size: int


def walk_files(root: Path) -> list[str]:
    """Return every regular file under ``root`` as a sorted relative POSIX path."""
    root = Path(root)
    return sorted(
        path.relative_to(root).as_posix()
        for path in root.rglob("*")
        if path.is_file()
    )


async def publish_tree(
    root: Path,
    prefix: str,
    upload: UploadFn,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[PublishedFile]:
    """Upload every file under ``root`` beneath ``prefix``.

    All uploads are allowed to settle before returning, so no upload is still
    reading from ``root`` once this returns or raises.

    Raises:
        ExtractionError: If any file fails to read or upload.
    """
    root = Path(root)
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _publish(relative_path: str) -> PublishedFile:
        async with semaphore:
            data = await asyncio.to_thread((root / relative_path).read_bytes)
            storage_path = f"{prefix}/{relative_path}"
            content_type = content_type_for(relative_path)
            await upload(storage_path, data, content_type)
            logger.debug("Published %s (%s, %d bytes)", storage_path, content_type, len(data))
            return PublishedFile(storage_path, content_type, len(data))

    relative_paths = walk_files(root)
    results = await asyncio.gather(
        *(_publish(path) for path in relative_paths),
        return_exceptions=True,
    )

    failures = [
        (path, result)
        for path, result in zip(relative_paths, results)
        if isinstance(result, BaseException)
    ]
    if failures:
        for path, exc in failures:
            logger.error("Error uploading %s/%s: %s", prefix, path, exc)
        first_path, first_exc = failures[0]
        raise ExtractionError(
            f"Failed to publish {len(failures)} of {len(relative_paths)} files",
            details={"path": first_path, "reason": str(first_exc)},
        ) from first_exc

    logger.info("Published %d files under %s/", len(results), prefix)
    return list(results)
