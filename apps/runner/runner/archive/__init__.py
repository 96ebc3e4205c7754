"""Archive codec: ZIP decoding, path filters and entry types.

Public API:
    decode_archive(data) -> ArchiveScan
"""

from runner.archive.reader import MAX_DEPTH, decode_archive
from runner.archive.types import ArchiveEntry, ArchiveScan, ClassifiedProject

__all__ = [
    "MAX_DEPTH",
    "ArchiveEntry",
    "ArchiveScan",
    "ClassifiedProject",
    "decode_archive",
]
