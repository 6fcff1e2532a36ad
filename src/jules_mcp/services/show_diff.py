"""Show the unified diff of a session's outcome, or of one activity."""

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from jules_mcp.client import JulesClient
from jules_mcp.diff import DiffExtraction, extract_diff
from jules_mcp.exceptions import InputValidationError
from jules_mcp.models import Activity, ChangeSet, ChangeSetArtifact, Session


@dataclass(frozen=True)
class ShowDiffResult:
    session_id: str
    extraction: DiffExtraction
    activity_id: Optional[str] = None
    file: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "sessionId": self.session_id,
            "unidiffPatch": self.extraction.patch_text,
            "files": [f.to_dict() for f in self.extraction.files],
            "summary": self.extraction.summary.to_dict(),
        }
        if self.activity_id:
            result["activityId"] = self.activity_id
        if self.file:
            result["file"] = self.file
        return result


def select_change_set(
    session: Session,
    activities: Sequence[Activity],
    activity_id: Optional[str] = None,
) -> Union[ChangeSet, ChangeSetArtifact, None]:
    """
    The session's final change set, or the first one on a given activity.

    Returns None when the activity is unknown or carries no change set.
    """
    if not activity_id:
        return session.change_set()
    activity = next((a for a in activities if a.id == activity_id), None)
    if activity is None:
        return None
    change_sets = activity.change_set_artifacts()
    return change_sets[0] if change_sets else None


async def show_diff(
    client: JulesClient,
    session_id: str,
    file: Optional[str] = None,
    activity_id: Optional[str] = None,
) -> ShowDiffResult:
    if not session_id:
        raise InputValidationError("sessionId is required")

    activities = await client.fetch_activities(session_id)
    session = await client.get_session(session_id)
    change_set = select_change_set(session, activities, activity_id)
    return ShowDiffResult(
        session_id=session.id,
        extraction=extract_diff(change_set, file),
        activity_id=activity_id,
        file=file,
    )
