"""Collect the shell commands Jules ran during a session, with their output."""

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from jules_mcp.client import JulesClient
from jules_mcp.exceptions import InputValidationError
from jules_mcp.models import Activity


@dataclass(frozen=True)
class BashOutputRecord:
    activity_id: str
    command: str
    output: str
    exit_code: Optional[int]

    @property
    def succeeded(self) -> bool:
        return self.exit_code in (0, None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "activityId": self.activity_id,
            "command": self.command,
            "output": self.output,
            "exitCode": self.exit_code,
        }


@dataclass(frozen=True)
class BashOutputsResult:
    session_id: str
    outputs: tuple[BashOutputRecord, ...]

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outputs if o.succeeded)

    @property
    def failed(self) -> int:
        return len(self.outputs) - self.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "outputs": [o.to_dict() for o in self.outputs],
            "summary": {
                "totalCommands": len(self.outputs),
                "succeeded": self.succeeded,
                "failed": self.failed,
            },
        }


def collect_bash_outputs(
    session_id: str, activities: Iterable[Activity]
) -> BashOutputsResult:
    records = [
        BashOutputRecord(
            activity_id=activity.id,
            command=artifact.command,
            output=artifact.output,
            exit_code=artifact.exit_code,
        )
        for activity in activities
        for artifact in activity.bash_output_artifacts()
    ]
    return BashOutputsResult(session_id=session_id, outputs=tuple(records))


async def get_bash_outputs(
    client: JulesClient,
    session_id: str,
    activity_ids: Optional[list[str]] = None,
) -> BashOutputsResult:
    """
    Bash outputs for a session, in log order.

    Args:
        client: Jules API client
        session_id: Session to read
        activity_ids: Only include these activities (all when omitted)
    """
    if not session_id:
        raise InputValidationError("sessionId is required")

    activities = await client.select_activities(session_id, order="asc", ids=activity_ids)
    return collect_bash_outputs(session_id, activities)
