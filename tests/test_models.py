"""Tests for API wire models."""

from datetime import timedelta

import pytest
from conftest import activity_payload, make_patch, plan_payload, session_payload, ts

from jules_mcp.exceptions import UnknownVariantError
from jules_mcp.models import (
    ActivityType,
    AgentMessaged,
    BashOutputArtifact,
    ChangeSetActivity,
    PlanGenerated,
    ProgressUpdated,
    Session,
    SessionFailed,
    isoformat_utc,
    parse_activity,
    parse_artifact,
    sub_microsecond_nanos,
)


class TestParseActivity:
    """Tests for parse_activity()."""

    def test_rest_shape(self):
        """The REST shape keys the payload by activity kind."""
        activity = parse_activity(
            activity_payload("a1", "agentMessaged", 5, {"agentMessage": "Hello"})
        )

        assert isinstance(activity, AgentMessaged)
        assert activity.type == ActivityType.AGENT_MESSAGED
        assert activity.id == "a1"
        assert activity.message == "Hello"
        assert activity.create_time.tzinfo is not None

    def test_flattened_shape(self):
        """The flattened shape carries an explicit type tag."""
        activity = parse_activity(
            {
                "id": "a2",
                "type": "planGenerated",
                "createTime": ts(1),
                **plan_payload("p9", ("Only step",)),
            }
        )

        assert isinstance(activity, PlanGenerated)
        assert activity.plan.id == "p9"
        assert [s.title for s in activity.plan.steps] == ["Only step"]

    def test_id_derived_from_name(self):
        raw = activity_payload("a3", "sessionCompleted", 1)
        del raw["id"]

        assert parse_activity(raw).id == "a3"

    def test_session_failed_reason(self):
        activity = parse_activity(
            activity_payload("a4", "sessionFailed", 1, {"reason": "tests broke"})
        )

        assert isinstance(activity, SessionFailed)
        assert activity.reason == "tests broke"

    def test_progress_description_falls_back_to_details(self):
        activity = parse_activity(
            activity_payload("a5", "progressUpdated", 1, {"title": "Build", "details": "npm ci"})
        )

        assert isinstance(activity, ProgressUpdated)
        assert activity.title == "Build"
        assert activity.description == "npm ci"

    def test_artifact_only_activity_takes_first_artifact_kind(self):
        activity = parse_activity(
            activity_payload("a6", None, 1, patch=make_patch("x.ts"), bash={"command": "ls"})
        )

        assert isinstance(activity, ChangeSetActivity)
        assert activity.type == ActivityType.CHANGE_SET
        assert len(activity.change_set_artifacts()) == 1
        assert len(activity.bash_output_artifacts()) == 1

    def test_unknown_kind_raises(self):
        with pytest.raises(UnknownVariantError) as exc_info:
            parse_activity({"id": "a7", "createTime": ts(1), "teleported": {}})

        assert exc_info.value.family == "activity"
        assert "teleported" in str(exc_info.value)

    def test_unknown_flattened_tag_raises(self):
        with pytest.raises(UnknownVariantError):
            parse_activity({"id": "a8", "createTime": ts(1), "type": "teleported"})


class TestParseArtifact:
    def test_bash_output(self):
        artifact = parse_artifact(
            {"bashOutput": {"command": "npm test", "output": "ok", "exitCode": 0}}
        )

        assert isinstance(artifact, BashOutputArtifact)
        assert artifact.command == "npm test"
        assert artifact.exit_code == 0

    def test_unknown_artifact_raises(self):
        with pytest.raises(UnknownVariantError):
            parse_artifact({"hologram": {}})


class TestSession:
    """Tests for the Session model."""

    def test_outputs(self):
        patch = make_patch("x.ts", "created", 3, 0)
        session = Session.model_validate(
            session_payload("completed", patch=patch, pr_url="https://github.com/acme/app/pull/1")
        )

        assert session.change_set().unidiff_patch == patch
        assert session.pull_request().url == "https://github.com/acme/app/pull/1"
        assert session.branch == "main"
        assert session.duration_ms == 90_000

    def test_no_outputs(self):
        session = Session.model_validate(session_payload("inProgress"))

        assert session.change_set() is None
        assert session.pull_request() is None

    def test_id_from_name(self):
        session = Session.model_validate({"name": "sessions/abc", "state": "queued"})

        assert session.id == "abc"


def test_isoformat_utc():
    activity = parse_activity(activity_payload("a1", "sessionCompleted", 65))

    assert activity.create_time.utcoffset() == timedelta(0)
    assert isoformat_utc(activity.create_time) == "2024-01-01T10:01:05Z"
    assert isoformat_utc(None) is None


class TestSubMicrosecondNanos:
    @pytest.mark.parametrize(
        "timestamp, expected",
        [
            ("2024-01-01T10:00:00.1234569Z", 900),
            ("2024-01-01T10:00:00.123456789Z", 789),
            ("2024-01-01T10:00:00.123456Z", 0),
            ("2024-01-01T10:00:00.5Z", 0),
            ("2024-01-01T10:00:00Z", 0),
        ],
    )
    def test_remainder(self, timestamp, expected):
        assert sub_microsecond_nanos(timestamp) == expected

    def test_activity_keeps_nanoseconds_for_ordering(self):
        raw = activity_payload("a1", "sessionCompleted", 0)
        raw["createTime"] = "2024-01-01T10:00:00.1234569Z"

        activity = parse_activity(raw)

        assert activity.create_time.microsecond == 123456
        assert activity.create_time_nanos == 900
        assert activity.time_key > (activity.create_time, 100)
