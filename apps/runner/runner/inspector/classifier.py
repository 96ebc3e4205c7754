"""Project classification from decoded archive entries.

Each entry is scanned on its own into an EntrySignals record; the records
are then folded with ``any()`` once every entry has been seen. The three
flags only ever go from False to True, so the fold order does not matter.

Rules:
  react    — a package.json that parses as a JSON object and lists both
             ``react`` and ``react-dom`` across dependencies/devDependencies
  vanilla  — otherwise, any retained index.html
  neither  — NoEntryPointError
"""

import json
import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Iterable

from runner.archive.types import ArchiveEntry, ClassifiedProject
from runner.errors import ExcessiveNestingWarning, NoEntryPointError

logger = logging.getLogger(__name__)

REACT_PACKAGES: tuple[str, ...] = ("react", "react-dom")
DEPENDENCY_SECTIONS: tuple[str, ...] = ("dependencies", "devDependencies")

TAILWIND_CLASS_PATTERN = re.compile(r"""class=["'][^"']*tw-[^"']*["']""")


@dataclass(frozen=True)
class EntrySignals:
    has_react: bool = False
    has_index_html: bool = False
    has_tailwind: bool = False


def is_react_manifest(text: str) -> bool:
    """True when a package.json body declares both react and react-dom."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse package.json: %s", exc)
        return False
    if not isinstance(data, dict):
        return False

    all_deps: set[str] = set()
    for section in DEPENDENCY_SECTIONS:
        deps = data.get(section)
        if isinstance(deps, dict):
            all_deps.update(deps.keys())

    return all(name in all_deps for name in REACT_PACKAGES)


def has_tailwind_markers(path: str, text: str) -> bool:
    if path.endswith(".css"):
        return "tailwind" in text
    if path.endswith(".html"):
        return (
            "tailwind" in text
            or "Tailwind" in text
            or TAILWIND_CLASS_PATTERN.search(text) is not None
        )
    return False


def scan_entry(entry: ArchiveEntry) -> EntrySignals:
    """Scan a single text entry for classification signals."""
    if not entry.is_text:
        return EntrySignals()

    name = posixpath.basename(entry.path)
    text = entry.text or ""
    return EntrySignals(
        has_react=name == "package.json" and is_react_manifest(text),
        has_index_html=name == "index.html",
        has_tailwind=has_tailwind_markers(entry.path, text),
    )


def classify(
    entries: Iterable[ArchiveEntry],
    warnings: Iterable[ExcessiveNestingWarning] = (),
) -> ClassifiedProject:
    """Fold per-entry signals into a ClassifiedProject.

    Raises:
        NoEntryPointError: If neither a React manifest nor an index.html
            was found.
    """
    entries = list(entries)
    signals = [scan_entry(entry) for entry in entries]

    has_react = any(s.has_react for s in signals)
    has_index_html = any(s.has_index_html for s in signals)
    has_tailwind = any(s.has_tailwind for s in signals)

    if has_react:
        tech_stack = "react"
    elif has_index_html:
        tech_stack = "vanilla"
    else:
        raise NoEntryPointError(
            "No entry point found: upload a React project (package.json with "
            "react and react-dom) or a static site with an index.html",
            details={"files": [entry.path for entry in entries]},
        )

    return ClassifiedProject(
        tech_stack=tech_stack,
        files={e.path: e.text for e in entries if e.text is not None},
        has_tailwind=has_tailwind,
        binary_paths=[e.path for e in entries if not e.is_text],
        warnings=[str(w) for w in warnings],
    )
