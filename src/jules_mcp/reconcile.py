"""
Change-set reconciliation.

Produces the current per-file change list for a session. A settled session
has a single final change set (outcome mode). A busy session only has the
change sets attached to individual activities so far; those are merged file
by file (accumulation mode), summing line counts across revisions.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Union

from jules_mcp.activity_log import has_stable_history
from jules_mcp.changeset import ChangeSummary, ChangeType, summarize
from jules_mcp.models import Activity, ChangeSet, Session
from jules_mcp.status import SessionStatus, classify

logger = logging.getLogger(__name__)

OUTCOME_ACTIVITY_ID = "outcome"
MID_REVISION_WARNING = (
    "This session was previously stable, but is busy again. "
    "Changes may be incomplete."
)


@dataclass(frozen=True)
class FileChange:
    """Net change to one file across the observed revisions."""

    path: str
    change_type: ChangeType
    additions: int
    deletions: int
    activity_ids: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "changeType": self.change_type.value,
            "activityIds": list(self.activity_ids),
            "additions": self.additions,
            "deletions": self.deletions,
        }


@dataclass(frozen=True)
class ReconciledChanges:
    files: tuple[FileChange, ...]
    summary: ChangeSummary
    status: SessionStatus
    has_stable_history: bool = False
    warning: Optional[str] = None

    @property
    def mid_revision(self) -> bool:
        """Stable once, busy again: aggregated changes may be incomplete."""
        return self.has_stable_history and self.status is SessionStatus.BUSY


@dataclass
class _FileAccumulator:
    first_change_type: ChangeType
    latest_change_type: ChangeType
    additions: int
    deletions: int
    activity_ids: list[str] = field(default_factory=list)


def net_change_type(first: ChangeType, latest: ChangeType) -> Optional[ChangeType]:
    """
    Resolve the net change type of a file seen more than once.

    A file created and later deleted cancels out (None). A created file stays
    created whatever happens to it afterwards; otherwise the latest wins.
    """
    if first == ChangeType.CREATED and latest == ChangeType.DELETED:
        return None
    if first == ChangeType.CREATED:
        return ChangeType.CREATED
    return latest


def files_from_outcome(change_set: Optional[ChangeSet]) -> list[FileChange]:
    """Map a final change set 1:1 onto file changes, counts copied as-is."""
    if change_set is None:
        return []
    return [
        FileChange(
            path=stat.path,
            change_type=stat.change_type,
            additions=stat.additions,
            deletions=stat.deletions,
            activity_ids=(OUTCOME_ACTIVITY_ID,),
        )
        for stat in change_set.parsed().files
    ]


def files_from_activity(activity: Activity) -> list[FileChange]:
    """File changes from a single activity's own change sets, unmerged."""
    files: list[FileChange] = []
    for artifact in activity.change_set_artifacts():
        for stat in artifact.parsed().files:
            files.append(
                FileChange(
                    path=stat.path,
                    change_type=stat.change_type,
                    additions=stat.additions,
                    deletions=stat.deletions,
                    activity_ids=(activity.id,),
                )
            )
    return files


def aggregate_from_activities(activities: Iterable[Activity]) -> list[FileChange]:
    """
    Merge every change-set artifact in the log into one entry per path.

    Line counts are summed across activities and the latest change type is
    tracked alongside the first one to compute the net type.
    """
    by_path: dict[str, _FileAccumulator] = {}

    for activity in activities:
        for artifact in activity.change_set_artifacts():
            for stat in artifact.parsed().files:
                existing = by_path.get(stat.path)
                if existing is None:
                    by_path[stat.path] = _FileAccumulator(
                        first_change_type=stat.change_type,
                        latest_change_type=stat.change_type,
                        additions=stat.additions,
                        deletions=stat.deletions,
                        activity_ids=[activity.id],
                    )
                    continue
                existing.activity_ids.append(activity.id)
                existing.additions += stat.additions
                existing.deletions += stat.deletions
                existing.latest_change_type = stat.change_type

    files: list[FileChange] = []
    for path, info in by_path.items():
        net = net_change_type(info.first_change_type, info.latest_change_type)
        if net is None:
            logger.debug(f"{path} was created then deleted, dropping")
            continue
        files.append(
            FileChange(
                path=path,
                change_type=net,
                additions=info.additions,
                deletions=info.deletions,
                activity_ids=tuple(info.activity_ids),
            )
        )
    return files


def filter_by_change_type(
    files: Iterable[FileChange],
    change_filter: Union[ChangeType, str, None],
) -> list[FileChange]:
    if change_filter is None or change_filter == "all":
        return list(files)
    wanted = ChangeType(change_filter)
    return [f for f in files if f.change_type == wanted]


def reconcile_changes(
    session: Session,
    activities: Sequence[Activity],
    activity_id: Optional[str] = None,
    change_filter: Union[ChangeType, str, None] = None,
) -> ReconciledChanges:
    """
    Build the canonical file change list for a session.

    Args:
        session: Fresh session snapshot
        activities: Full activity history, in log order
        activity_id: Restrict to this one activity's change sets
        change_filter: Keep only files of this change type ("all" keeps all)

    Returns:
        ReconciledChanges with the summary computed after filtering
    """
    status = classify(session.state)
    stable_history = has_stable_history(activities)
    warning: Optional[str] = None

    if activity_id:
        activity = next((a for a in activities if a.id == activity_id), None)
        if activity is None:
            files: list[FileChange] = []
            warning = f"Activity not found: {activity_id}"
        else:
            files = files_from_activity(activity)
    elif status is SessionStatus.BUSY:
        files = aggregate_from_activities(activities)
    else:
        files = files_from_outcome(session.change_set())

    files = filter_by_change_type(files, change_filter)

    mid_revision = stable_history and status is SessionStatus.BUSY
    if mid_revision and warning is None:
        warning = MID_REVISION_WARNING

    return ReconciledChanges(
        files=tuple(files),
        summary=summarize(files),
        status=status,
        has_stable_history=stable_history,
        warning=warning,
    )
