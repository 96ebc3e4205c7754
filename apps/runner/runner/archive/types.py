"""Types shared by the archive codec and the inspector."""

from dataclasses import dataclass, field
from typing import Literal, Optional

from runner.errors import ExcessiveNestingWarning

TechStack = Literal["react", "vanilla"]


@dataclass
class ArchiveEntry:
    """One retained member of an uploaded archive.

    Exactly one of ``text`` / ``data`` is set: members that decode as UTF-8
    carry ``text``, everything else is kept as an opaque ``data`` blob.
    ``path`` is normalised to start with a leading slash.
    """

    path: str
    text: Optional[str] = None
    data: Optional[bytes] = None

    @property
    def is_text(self) -> bool:
        return self.text is not None


@dataclass
class ArchiveScan:
    """Retained entries of an archive plus the non-fatal issues found."""

    entries: list[ArchiveEntry] = field(default_factory=list)
    warnings: list[ExcessiveNestingWarning] = field(default_factory=list)


@dataclass
class ClassifiedProject:
    """Result of inspecting an archive.

    ``files`` holds text-decodable members only. ``binary_paths`` lists the
    members that were retained but could not be inspected as text, so later
    steps know they exist even though their content is not carried here.
    """

    tech_stack: TechStack
    files: dict[str, str]
    has_tailwind: bool = False
    binary_paths: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "tech_stack": self.tech_stack,
            "files": self.files,
            "has_tailwind": self.has_tailwind,
            "binary_paths": self.binary_paths,
            "warnings": self.warnings,
        }
