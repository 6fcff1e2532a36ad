"""
Unified diff parsing for change-set artifacts.

Turns the git-style unified diff attached to a change set into per-file
statistics (path, change type, added and removed line counts).
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

FILE_HEADER_PREFIX = "diff --git "
FILE_HEADER_PATTERN = re.compile(r"^diff --git a/(?P<old>.+?) b/(?P<new>.+)$")
DEV_NULL = "/dev/null"


class ChangeType(str, Enum):
    """How a file was affected by a change set."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class FileDiffStat:
    """Per-file statistics parsed from a unified diff."""

    path: str
    change_type: ChangeType
    additions: int
    deletions: int

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "changeType": self.change_type.value,
            "additions": self.additions,
            "deletions": self.deletions,
        }


@dataclass(frozen=True)
class ChangeSummary:
    """Counts of files by change type."""

    total_files: int = 0
    created: int = 0
    modified: int = 0
    deleted: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalFiles": self.total_files,
            "created": self.created,
            "modified": self.modified,
            "deleted": self.deleted,
        }


@dataclass(frozen=True)
class ParsedChangeSet:
    """Structured view of one change-set patch."""

    files: tuple[FileDiffStat, ...]
    summary: ChangeSummary


def summarize(files: Iterable) -> ChangeSummary:
    """
    Count files by change type.

    Accepts anything with a ``change_type`` attribute, so it works for both
    parsed diff stats and reconciled file changes.
    """
    files = list(files)
    return ChangeSummary(
        total_files=len(files),
        created=sum(1 for f in files if f.change_type == ChangeType.CREATED),
        modified=sum(1 for f in files if f.change_type == ChangeType.MODIFIED),
        deleted=sum(1 for f in files if f.change_type == ChangeType.DELETED),
    )


def split_file_sections(patch: str) -> Iterator[str]:
    """Yield each ``diff --git`` section of a patch, header line included."""
    if not patch:
        return
    current: list[str] = []
    for line in patch.splitlines():
        if line.startswith(FILE_HEADER_PREFIX) and current:
            yield "\n".join(current)
            current = []
        if current or line.startswith(FILE_HEADER_PREFIX):
            current.append(line)
    if current:
        yield "\n".join(current)


def _strip_side_prefix(path: str) -> str:
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


def parse_file_section(section: str) -> Optional[FileDiffStat]:
    """
    Parse a single ``diff --git`` section.

    Args:
        section: Text of one file section, starting with its header

    Returns:
        FileDiffStat, or None if the header cannot be read
    """
    lines = section.splitlines()
    if not lines:
        return None

    header = FILE_HEADER_PATTERN.match(lines[0])
    if header is None:
        logger.debug(f"Skipping unparseable diff header: {lines[0][:80]}")
        return None

    old_path: Optional[str] = header.group("old")
    new_path: Optional[str] = header.group("new")
    change_type = ChangeType.MODIFIED
    additions = 0
    deletions = 0
    in_hunk = False

    for line in lines[1:]:
        if line.startswith("@@"):
            in_hunk = True
            continue
        if not in_hunk:
            if line.startswith("new file mode"):
                change_type = ChangeType.CREATED
            elif line.startswith("deleted file mode"):
                change_type = ChangeType.DELETED
            elif line.startswith("--- "):
                source = line[4:].strip()
                if source == DEV_NULL:
                    change_type = ChangeType.CREATED
                    old_path = None
                else:
                    old_path = _strip_side_prefix(source)
            elif line.startswith("+++ "):
                target = line[4:].strip()
                if target == DEV_NULL:
                    change_type = ChangeType.DELETED
                    new_path = None
                else:
                    new_path = _strip_side_prefix(target)
            continue
        if line.startswith("+"):
            additions += 1
        elif line.startswith("-"):
            deletions += 1

    path = new_path if change_type != ChangeType.DELETED else old_path
    path = path or new_path or old_path or header.group("new")
    return FileDiffStat(
        path=path,
        change_type=change_type,
        additions=additions,
        deletions=deletions,
    )


def parse_unidiff(patch: Optional[str]) -> ParsedChangeSet:
    """
    Parse a multi-file unified diff.

    An empty or missing patch is valid and parses to zero files.
    """
    files = tuple(
        stat
        for stat in (parse_file_section(s) for s in split_file_sections(patch or ""))
        if stat is not None
    )
    return ParsedChangeSet(files=files, summary=summarize(files))
