"""Tests for activity log reduction."""

from conftest import activity_payload, make_activity, make_patch, plan_payload

from jules_mcp.activity_log import (
    count_by_type,
    has_stable_history,
    last_activity,
    last_agent_message,
    latest_of_type,
    newest_first,
    pending_plan,
    reduce_activity_log,
)
from jules_mcp.models import ActivityType, parse_activity


class TestNewestFirst:
    """Tests for newest_first()."""

    def test_sorts_by_time_descending(self):
        activities = [
            make_activity("a1", "progressUpdated", 5),
            make_activity("a2", "progressUpdated", 1),
            make_activity("a3", "progressUpdated", 9),
        ]

        assert [a.id for a in newest_first(activities)] == ["a3", "a1", "a2"]

    def test_equal_timestamps_prefer_later_log_position(self):
        activities = [
            make_activity("a1", "agentMessaged", 3, {"agentMessage": "first"}),
            make_activity("a2", "agentMessaged", 3, {"agentMessage": "second"}),
        ]

        assert [a.id for a in newest_first(activities)] == ["a2", "a1"]
        assert last_activity(activities).activity_id == "a2"

    def test_input_is_not_mutated(self):
        activities = [make_activity("a1", "progressUpdated", 1), make_activity("a2", "progressUpdated", 2)]

        newest_first(activities)

        assert [a.id for a in activities] == ["a1", "a2"]


class TestLastActivity:
    def test_reports_type_and_timestamp(self):
        activities = [
            make_activity("a1", "planGenerated", 1, plan_payload()),
            make_activity("a2", None, 2, patch=make_patch("x.ts")),
        ]

        last = last_activity(activities)

        assert last.to_dict() == {
            "activityId": "a2",
            "type": "changeSet",
            "timestamp": "2024-01-01T10:00:02Z",
        }

    def test_empty(self):
        assert last_activity([]) is None
        assert latest_of_type([], ActivityType.PLAN_GENERATED) is None


class TestLastAgentMessage:
    """Tests for last_agent_message()."""

    def test_newest_agent_message(self):
        activities = [
            make_activity("a1", "agentMessaged", 1, {"agentMessage": "old"}),
            make_activity("a2", "userMessaged", 2, {"userMessage": "question"}),
            make_activity("a3", "agentMessaged", 3, {"agentMessage": "new"}),
            make_activity("a4", "progressUpdated", 4),
        ]

        message = last_agent_message(activities)

        assert message.activity_id == "a3"
        assert message.content == "new"

    def test_skips_empty_messages(self):
        activities = [
            make_activity("a1", "agentMessaged", 1, {"agentMessage": "real"}),
            make_activity("a2", "agentMessaged", 2, {"agentMessage": ""}),
        ]

        assert last_agent_message(activities).activity_id == "a1"

    def test_none_when_agent_never_spoke(self):
        assert last_agent_message([make_activity("a1", "userMessaged", 1)]) is None


class TestPendingPlan:
    """Tests for pending_plan()."""

    def test_unapproved_plan_is_pending(self):
        activities = [make_activity("a1", "planGenerated", 1, plan_payload("p1"))]

        plan = pending_plan(activities)

        assert plan.activity_id == "a1"
        assert plan.plan_id == "p1"
        assert [s.title for s in plan.steps] == ["Step one", "Step two"]
        assert plan.to_dict()["steps"] == [{"title": "Step one"}, {"title": "Step two"}]

    def test_later_approval_clears_plan(self):
        activities = [
            make_activity("a1", "planGenerated", 1, plan_payload("p1")),
            make_activity("a2", "planApproved", 2, {"planId": "p1"}),
        ]

        assert pending_plan(activities) is None

    def test_same_timestamp_approval_does_not_count(self):
        """Only an approval strictly after the plan clears it."""
        activities = [
            make_activity("a1", "planGenerated", 5, plan_payload("p1")),
            make_activity("a2", "planApproved", 5, {"planId": "p1"}),
        ]

        assert pending_plan(activities).plan_id == "p1"

    def test_approval_later_by_nanoseconds_clears_plan(self):
        """Sub-microsecond differences still order the approval after the plan."""
        plan = activity_payload("a1", "planGenerated", 0, plan_payload("p1"))
        plan["createTime"] = "2024-01-01T10:00:00.1234561Z"
        approval = activity_payload("a2", "planApproved", 0, {"planId": "p1"})
        approval["createTime"] = "2024-01-01T10:00:00.1234569Z"

        activities = [parse_activity(plan), parse_activity(approval)]

        assert pending_plan(activities) is None
        assert newest_first(activities)[0].id == "a2"

    def test_regenerated_plan_after_approval_is_pending(self):
        activities = [
            make_activity("a1", "planGenerated", 1, plan_payload("p1")),
            make_activity("a2", "planApproved", 2, {"planId": "p1"}),
            make_activity("a3", "planGenerated", 3, plan_payload("p2", ("Redo",))),
        ]

        plan = pending_plan(activities)

        assert plan.plan_id == "p2"
        assert plan.activity_id == "a3"

    def test_no_plan(self):
        assert pending_plan([]) is None
        assert pending_plan([make_activity("a1", "progressUpdated", 1)]) is None


class TestStableHistory:
    def test_completed_or_approved(self):
        assert has_stable_history([make_activity("a1", "sessionCompleted", 1)])
        assert has_stable_history([make_activity("a1", "planApproved", 1)])

    def test_never_stable(self):
        assert not has_stable_history([])
        assert not has_stable_history([make_activity("a1", "planGenerated", 1, plan_payload())])


class TestReduceActivityLog:
    def test_empty_log(self):
        view = reduce_activity_log([])

        assert view.last_activity is None
        assert view.last_agent_message is None
        assert view.pending_plan is None
        assert view.has_stable_history is False
        assert view.counts == {}

    def test_counts(self):
        activities = [
            make_activity("a1", "progressUpdated", 1),
            make_activity("a2", "progressUpdated", 2),
            make_activity("a3", "sessionCompleted", 3),
        ]

        assert count_by_type(activities) == {"progressUpdated": 2, "sessionCompleted": 1}
        assert reduce_activity_log(activities).has_stable_history is True
