"""Archive Inspector entry point.

Pure function over bytes: decode the archive, classify the retained entries,
return a ClassifiedProject. Nothing is written anywhere; the only side effect
is diagnostic logging.
"""

import logging

from runner.archive.reader import decode_archive
from runner.archive.types import ClassifiedProject
from runner.inspector.classifier import classify

logger = logging.getLogger(__name__)


def inspect(data: bytes) -> ClassifiedProject:
    """Inspect an uploaded archive.

    Raises:
        InvalidArchiveError: If ``data`` is not a readable ZIP archive.
        NoEntryPointError: If no React manifest or index.html was found.
    """
    scan = decode_archive(data)
    project = classify(scan.entries, scan.warnings)
    logger.info(
        "Inspected archive: stack=%s files=%d binaries=%d tailwind=%s warnings=%d",
        project.tech_stack,
        len(project.files),
        len(project.binary_paths),
        project.has_tailwind,
        len(project.warnings),
    )
    return project
