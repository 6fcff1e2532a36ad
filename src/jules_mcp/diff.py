"""
Diff extraction.

Slices the section for one file out of a multi-file unified diff, together
with the matching per-file stats.
"""

from dataclasses import dataclass
from typing import Optional, Union

from jules_mcp.changeset import ChangeSummary, FileDiffStat, summarize
from jules_mcp.models import ChangeSet, ChangeSetArtifact

SECTION_SEPARATOR = "\ndiff --git "


@dataclass(frozen=True)
class DiffExtraction:
    patch_text: str
    files: tuple[FileDiffStat, ...]
    summary: ChangeSummary


def extract_file_diff(patch: Optional[str], file_path: str) -> str:
    """
    Return the ``diff --git`` section whose "before" side is ``file_path``.

    Returns an empty string when the patch is empty or no section matches.
    """
    if not patch:
        return ""
    target_header = f"a/{file_path} "
    for section in ("\n" + patch).split(SECTION_SEPARATOR):
        if section.startswith(target_header):
            return f"diff --git {section}".strip()
    return ""


def extract_diff(
    change_set: Union[ChangeSet, ChangeSetArtifact, None],
    file_path: Optional[str] = None,
) -> DiffExtraction:
    """
    Render a change set, optionally narrowed to a single file.

    Without ``file_path`` the patch comes back unchanged along with all file
    stats. With it, the patch, the file list and the summary are all
    narrowed to that one file.
    """
    if change_set is None:
        return DiffExtraction(patch_text="", files=(), summary=ChangeSummary())

    patch = change_set.unidiff_patch
    parsed = change_set.parsed()

    if not file_path:
        return DiffExtraction(
            patch_text=patch,
            files=parsed.files,
            summary=parsed.summary,
        )

    files = tuple(f for f in parsed.files if f.path == file_path)
    return DiffExtraction(
        patch_text=extract_file_diff(patch, file_path),
        files=files,
        summary=summarize(files),
    )
