"""ZIP archive codec for uploaded prototypes.

Decodes an in-memory archive into ArchiveEntry records. Filtering happens
here so the inspector only ever sees members worth classifying:

  - directory members are skipped
  - hidden members (any dot-prefixed segment) and macOS resource forks
    (``__MACOSX/``) are skipped
  - members nested deeper than MAX_DEPTH segments are skipped and recorded
    as an ExcessiveNestingWarning (never a failure)

Remaining members are decoded as strict UTF-8; anything that fails to
decode is kept as binary.
"""

import io
import logging
import zipfile
import zlib

from runner.archive.types import ArchiveEntry, ArchiveScan
from runner.errors import ExcessiveNestingWarning, InvalidArchiveError

logger = logging.getLogger(__name__)

MAX_DEPTH = 4

EXCLUDED_PREFIXES: tuple[str, ...] = ("__MACOSX/",)

# What zipfile raises for a member it cannot read: bad headers or CRC,
# unsupported compression, encryption (RuntimeError), a broken deflate
# stream (zlib.error) or a truncated one (EOFError).
MEMBER_READ_ERRORS: tuple[type[Exception], ...] = (
    zipfile.BadZipFile,
    NotImplementedError,
    RuntimeError,
    zlib.error,
    EOFError,
    OSError,
)


def normalize_path(path: str) -> str:
    """Return ``path`` with exactly one leading slash."""
    return "/" + path.lstrip("/")


def path_depth(path: str) -> int:
    """Number of slash-separated segments in ``path``."""
    return len(path.strip("/").split("/"))


def is_excluded(path: str) -> bool:
    """True for macOS resource forks and hidden files or folders."""
    relative = path.lstrip("/")
    if relative.startswith(EXCLUDED_PREFIXES):
        return True
    return any(segment.startswith(".") for segment in relative.split("/") if segment)


def decode_archive(data: bytes, max_depth: int = MAX_DEPTH) -> ArchiveScan:
    """Open a ZIP archive and return its retained entries.

    Raises:
        InvalidArchiveError: If the bytes are not a ZIP archive or a member
            cannot be read.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise InvalidArchiveError(
            "Uploaded file is not a valid ZIP archive", details=str(exc)
        ) from exc

    scan = ArchiveScan()
    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            name = info.filename
            if is_excluded(name):
                continue

            depth = path_depth(name)
            if depth > max_depth:
                message = f"Skipping file due to excessive nesting: {name}"
                logger.warning(message)
                scan.warnings.append(ExcessiveNestingWarning(message))
                continue

            try:
                raw = archive.read(info)
            except MEMBER_READ_ERRORS as exc:
                raise InvalidArchiveError(
                    f"Failed to read archive member: {name}", details=str(exc)
                ) from exc

            scan.entries.append(_decode_member(normalize_path(name), raw))

    logger.debug(
        "Decoded archive: %d entries retained, %d warnings",
        len(scan.entries), len(scan.warnings),
    )
    return scan


def _decode_member(path: str, raw: bytes) -> ArchiveEntry:
    try:
        return ArchiveEntry(path=path, text=raw.decode("utf-8"))
    except UnicodeDecodeError:
        return ArchiveEntry(path=path, data=raw)
