"""Scratch workspace for deployment extraction.

Every deployment extracts into its own fresh temporary directory, so two
deployments running side by side never share files. The directory is
removed on every exit path of the ``scratch_directory`` block.
"""

import io
import logging
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from runner.archive.reader import MEMBER_READ_ERRORS
from runner.errors import ExtractionError

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "prototype-deploy-"


@contextmanager
def scratch_directory(prefix: str = SCRATCH_PREFIX) -> Iterator[Path]:
    """Yield a fresh, process-unique temporary directory, then delete it."""
    path = Path(tempfile.mkdtemp(prefix=prefix))
    logger.debug("Created scratch directory %s", path)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        logger.debug("Removed scratch directory %s", path)


def extract_zip(data: bytes, dest: Path) -> None:
    """Extract a ZIP archive held in memory into ``dest``.

    Member names are sanitised by ``zipfile`` (absolute paths and ``..``
    components cannot escape ``dest``).

    Raises:
        ExtractionError: If the archive is corrupt or encrypted, or cannot be
            written out.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            archive.extractall(dest)
    except MEMBER_READ_ERRORS as exc:
        raise ExtractionError("Failed to process ZIP file", details=str(exc)) from exc
