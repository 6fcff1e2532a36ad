"""
Wire models for the Jules API.

Sessions, activities and artifacts as returned by the REST API. Activities
and artifacts are closed sets of variants: each kind has its own model and
payloads of an unknown kind raise UnknownVariantError instead of being
passed through untyped.

Two payload shapes are accepted for activities and artifacts:

    # REST shape, one key per kind
    {"id": "a1", "createTime": "...", "planGenerated": {"plan": {...}}}

    # Flattened shape with an explicit tag
    {"id": "a1", "createTime": "...", "type": "planGenerated", "plan": {...}}
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from jules_mcp.changeset import ParsedChangeSet, parse_unidiff
from jules_mcp.exceptions import UnknownVariantError

FRACTION_PATTERN = re.compile(r"T[\d:]+\.(\d+)")


class ApiModel(BaseModel):
    """Base for API payloads: camelCase on the wire, immutable once parsed."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp the way the API does (``2024-01-01T00:00:00Z``)."""
    if value is None:
        return None
    return _ensure_utc(value).isoformat().replace("+00:00", "Z")


def sub_microsecond_nanos(timestamp: str) -> int:
    """
    Nanoseconds past the last whole microsecond in an RFC 3339 string.

    ``2024-01-01T00:00:00.1234569Z`` -> 900. Parsing into ``datetime`` keeps
    only six fractional digits, so this recovers the rest for ordering.
    """
    match = FRACTION_PATTERN.search(timestamp)
    if match is None:
        return 0
    digits = match.group(1)[:9].ljust(9, "0")
    return int(digits) % 1000


def _resource_id(name: Optional[str]) -> Optional[str]:
    """Last path segment of a resource name like ``sessions/1/activities/2``."""
    if not name:
        return None
    return name.rstrip("/").rsplit("/", 1)[-1]


# Change sets and outputs


class GitPatch(ApiModel):
    """Raw patch attached to a change set."""

    unidiff_patch: str = Field("", description="Git-style unified diff")
    base_commit_id: Optional[str] = Field(None, description="Commit the patch applies to")
    suggested_commit_message: Optional[str] = None


class ChangeSet(ApiModel):
    """A code patch plus the source it applies to."""

    source: Optional[str] = Field(None, description="Source resource name")
    git_patch: GitPatch = Field(default_factory=GitPatch)

    @property
    def unidiff_patch(self) -> str:
        return self.git_patch.unidiff_patch or ""

    def parsed(self) -> ParsedChangeSet:
        """Per-file stats and summary for this patch."""
        return parse_unidiff(self.unidiff_patch)


class PullRequest(ApiModel):
    url: str = ""
    title: str = ""
    description: Optional[str] = None


class SessionOutput(ApiModel):
    """One output of a session (pull request and/or final change set)."""

    pull_request: Optional[PullRequest] = None
    change_set: Optional[ChangeSet] = None


class GithubRepoContext(ApiModel):
    starting_branch: Optional[str] = None


class SourceContext(ApiModel):
    source: Optional[str] = None
    github_repo_context: Optional[GithubRepoContext] = None


class Session(ApiModel):
    """Snapshot of a Jules session."""

    id: str
    name: Optional[str] = None
    title: str = ""
    prompt: str = ""
    state: str = Field("", description="Raw state string as emitted by the API")
    url: str = ""
    source_context: Optional[SourceContext] = None
    outputs: list[SessionOutput] = Field(default_factory=list)
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None
    require_plan_approval: Optional[bool] = None
    automation_mode: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _derive_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("id"):
            derived = _resource_id(data.get("name"))
            if derived:
                data = {**data, "id": derived}
        return data

    @field_validator("create_time", "update_time")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(value)

    @property
    def branch(self) -> Optional[str]:
        if self.source_context and self.source_context.github_repo_context:
            return self.source_context.github_repo_context.starting_branch
        return None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.create_time is None or self.update_time is None:
            return None
        return int((self.update_time - self.create_time).total_seconds() * 1000)

    def change_set(self) -> Optional[ChangeSet]:
        """The final change set among the session outputs, if any."""
        for output in reversed(self.outputs):
            if output.change_set is not None:
                return output.change_set
        return None

    def pull_request(self) -> Optional[PullRequest]:
        for output in self.outputs:
            if output.pull_request is not None:
                return output.pull_request
        return None


class GithubRepo(ApiModel):
    owner: str = ""
    repo: str = ""
    is_private: Optional[bool] = None
    default_branch: Optional[str] = None


class Source(ApiModel):
    """A repository connected to the Jules account."""

    name: str = ""
    id: str = ""
    github_repo: Optional[GithubRepo] = None


# Plans


class PlanStep(ApiModel):
    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    index: Optional[int] = None


class Plan(ApiModel):
    id: str = ""
    steps: list[PlanStep] = Field(default_factory=list)
    create_time: Optional[datetime] = None


# Artifacts


class ArtifactType(str, Enum):
    """Kinds of payload attached to an activity."""

    CHANGE_SET = "changeSet"
    BASH_OUTPUT = "bashOutput"
    MEDIA = "media"


class ChangeSetArtifact(ApiModel):
    type: ClassVar[ArtifactType] = ArtifactType.CHANGE_SET

    change_set: ChangeSet

    @property
    def unidiff_patch(self) -> str:
        return self.change_set.unidiff_patch

    def parsed(self) -> ParsedChangeSet:
        return self.change_set.parsed()


class BashOutputArtifact(ApiModel):
    type: ClassVar[ArtifactType] = ArtifactType.BASH_OUTPUT

    command: str = ""
    output: str = ""
    exit_code: Optional[int] = None


class MediaArtifact(ApiModel):
    type: ClassVar[ArtifactType] = ArtifactType.MEDIA

    mime_type: Optional[str] = None
    data: Optional[str] = Field(None, description="Base64 payload")


Artifact = Union[ChangeSetArtifact, BashOutputArtifact, MediaArtifact]


def _split_variant(raw: dict[str, Any], kinds: list[str], family: str) -> tuple[str, dict]:
    """Find the variant tag and its payload in either wire shape."""
    if "type" in raw:
        kind = raw["type"]
        if kind not in kinds:
            raise UnknownVariantError(family, [str(kind)])
        nested = raw.get(kind)
        payload = nested if isinstance(nested, dict) else raw
        return kind, payload
    for kind in kinds:
        if kind in raw:
            payload = raw[kind]
            return kind, payload if isinstance(payload, dict) else {}
    raise UnknownVariantError(family, list(raw.keys()))


def parse_artifact(raw: dict[str, Any]) -> Artifact:
    """
    Parse one artifact payload.

    Raises:
        UnknownVariantError: If the artifact kind is not recognized
    """
    kind, payload = _split_variant(raw, [t.value for t in ArtifactType], "artifact")
    artifact_type = ArtifactType(kind)
    if artifact_type is ArtifactType.CHANGE_SET:
        return ChangeSetArtifact(change_set=ChangeSet.model_validate(payload))
    if artifact_type is ArtifactType.BASH_OUTPUT:
        return BashOutputArtifact.model_validate(payload)
    if artifact_type is ArtifactType.MEDIA:
        return MediaArtifact.model_validate(payload)
    raise UnknownVariantError("artifact", [kind])


# Activities


class ActivityType(str, Enum):
    """Kinds of activity in a session history."""

    AGENT_MESSAGED = "agentMessaged"
    USER_MESSAGED = "userMessaged"
    PLAN_GENERATED = "planGenerated"
    PLAN_APPROVED = "planApproved"
    PLAN_REJECTED = "planRejected"
    PROGRESS_UPDATED = "progressUpdated"
    SESSION_COMPLETED = "sessionCompleted"
    SESSION_FAILED = "sessionFailed"
    # Artifact-only activities, typed by their first artifact
    CHANGE_SET = "changeSet"
    BASH_OUTPUT = "bashOutput"
    MEDIA = "media"


EVENT_ACTIVITY_TYPES = [
    ActivityType.AGENT_MESSAGED,
    ActivityType.USER_MESSAGED,
    ActivityType.PLAN_GENERATED,
    ActivityType.PLAN_APPROVED,
    ActivityType.PLAN_REJECTED,
    ActivityType.PROGRESS_UPDATED,
    ActivityType.SESSION_COMPLETED,
    ActivityType.SESSION_FAILED,
]


class Activity(ApiModel):
    """An immutable, timestamped event in a session history."""

    type: ClassVar[ActivityType]

    id: str
    name: Optional[str] = None
    create_time: datetime
    # Nanoseconds below the microsecond, which datetime cannot hold
    create_time_nanos: int = 0
    description: Optional[str] = None
    originator: Optional[str] = None
    artifacts: tuple[Artifact, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _capture_nanos(cls, data: Any) -> Any:
        if isinstance(data, dict) and "create_time_nanos" not in data:
            raw = data.get("create_time", data.get("createTime"))
            if isinstance(raw, str):
                data = {**data, "create_time_nanos": sub_microsecond_nanos(raw)}
        return data

    @field_validator("create_time")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @property
    def time_key(self) -> tuple[datetime, int]:
        """Full-precision ordering key; RFC 3339 times may carry nanoseconds."""
        return (self.create_time, self.create_time_nanos)

    @classmethod
    def payload_fields(cls, payload: dict[str, Any]) -> dict[str, Any]:
        """Variant-specific fields extracted from the kind payload."""
        return {}

    def change_set_artifacts(self) -> list[ChangeSetArtifact]:
        return [a for a in self.artifacts if isinstance(a, ChangeSetArtifact)]

    def bash_output_artifacts(self) -> list[BashOutputArtifact]:
        return [a for a in self.artifacts if isinstance(a, BashOutputArtifact)]


class AgentMessaged(Activity):
    type: ClassVar[ActivityType] = ActivityType.AGENT_MESSAGED

    message: str = ""

    @classmethod
    def payload_fields(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {"message": payload.get("agentMessage") or payload.get("message") or ""}


class UserMessaged(Activity):
    type: ClassVar[ActivityType] = ActivityType.USER_MESSAGED

    message: str = ""

    @classmethod
    def payload_fields(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {"message": payload.get("userMessage") or payload.get("message") or ""}


class PlanGenerated(Activity):
    type: ClassVar[ActivityType] = ActivityType.PLAN_GENERATED

    plan: Optional[Plan] = None

    @classmethod
    def payload_fields(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {"plan": payload.get("plan")}


class PlanApproved(Activity):
    type: ClassVar[ActivityType] = ActivityType.PLAN_APPROVED

    plan_id: Optional[str] = None

    @classmethod
    def payload_fields(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {"plan_id": payload.get("planId")}


class PlanRejected(Activity):
    type: ClassVar[ActivityType] = ActivityType.PLAN_REJECTED

    plan_id: Optional[str] = None
    feedback: Optional[str] = None

    @classmethod
    def payload_fields(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {"plan_id": payload.get("planId"), "feedback": payload.get("feedback")}


class ProgressUpdated(Activity):
    type: ClassVar[ActivityType] = ActivityType.PROGRESS_UPDATED

    title: Optional[str] = None
    details: Optional[str] = None

    @classmethod
    def payload_fields(cls, payload: dict[str, Any]) -> dict[str, Any]:
        details = payload.get("details", payload.get("description"))
        return {"title": payload.get("title"), "details": details}


class SessionCompleted(Activity):
    type: ClassVar[ActivityType] = ActivityType.SESSION_COMPLETED


class SessionFailed(Activity):
    type: ClassVar[ActivityType] = ActivityType.SESSION_FAILED

    reason: str = ""

    @classmethod
    def payload_fields(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {"reason": payload.get("reason") or ""}


class ChangeSetActivity(Activity):
    type: ClassVar[ActivityType] = ActivityType.CHANGE_SET


class BashOutputActivity(Activity):
    type: ClassVar[ActivityType] = ActivityType.BASH_OUTPUT


class MediaActivity(Activity):
    type: ClassVar[ActivityType] = ActivityType.MEDIA


ACTIVITY_CLASSES: dict[ActivityType, type[Activity]] = {
    cls.type: cls
    for cls in (
        AgentMessaged,
        UserMessaged,
        PlanGenerated,
        PlanApproved,
        PlanRejected,
        ProgressUpdated,
        SessionCompleted,
        SessionFailed,
        ChangeSetActivity,
        BashOutputActivity,
        MediaActivity,
    )
}


def parse_activity(raw: dict[str, Any]) -> Activity:
    """
    Parse one activity payload into its variant model.

    Artifact-only activities (no event key) take the kind of their first
    artifact.

    Raises:
        UnknownVariantError: If neither an event kind nor an artifact is found
    """
    artifacts = tuple(parse_artifact(a) for a in raw.get("artifacts") or [])

    if "type" in raw:
        kind, payload = _split_variant(
            raw, [t.value for t in ActivityType], "activity"
        )
    else:
        try:
            kind, payload = _split_variant(
                raw, [t.value for t in EVENT_ACTIVITY_TYPES], "activity"
            )
        except UnknownVariantError:
            if not artifacts:
                raise
            kind, payload = artifacts[0].type.value, {}

    cls = ACTIVITY_CLASSES[ActivityType(kind)]
    name = raw.get("name")
    fields: dict[str, Any] = {
        "id": raw.get("id") or _resource_id(name) or "",
        "name": name,
        "create_time": raw.get("createTime", raw.get("create_time")),
        "description": raw.get("description"),
        "originator": raw.get("originator"),
        "artifacts": artifacts,
    }
    fields.update(cls.payload_fields(payload))
    if cls is ProgressUpdated and fields["description"] is None:
        fields["description"] = fields.get("details")
    return cls.model_validate(fields)


def parse_activities(raw_activities: list[dict[str, Any]]) -> list[Activity]:
    return [parse_activity(raw) for raw in raw_activities]
