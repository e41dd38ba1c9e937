"""Access policy: plan hierarchy for lessons, tools and downloads"""
import pytest

from pecc.services.access import can_access, can_view_lesson, is_premium, plan_of


class TestCanAccess:

    @pytest.mark.parametrize("required, user_plan, expected", [
        ("none", "none", True),
        ("none", "basic", True),
        ("none", "pro", True),
        ("none", None, True),
        (None, "none", True),
        (None, "pro", True),
        ("basic", "none", False),
        ("basic", None, False),
        ("basic", "basic", True),
        ("basic", "pro", True),
        ("pro", "none", False),
        ("pro", "basic", False),
        ("pro", "pro", True),
        ("enterprise", "pro", False),
        ("enterprise", "none", False),
        ("basic", "gold", False),
    ])
    def test_policy_table(self, required, user_plan, expected):
        assert can_access(required, user_plan) is expected

    def test_pro_satisfies_everything_basic_does(self):
        for required in ("none", "basic", "pro", None):
            if can_access(required, "basic"):
                assert can_access(required, "pro")


class TestPlanProjection:

    def test_anonymous_user_has_no_plan(self):
        assert plan_of(None) == "none"
        assert is_premium(None) is False

    def test_unknown_plan_value_is_treated_as_none(self):
        assert plan_of({"premium_plan_type": "legacy"}) == "none"

    def test_premium_follows_plan_type(self):
        assert is_premium({"premium_plan_type": "basic"}) is True
        assert is_premium({"premium_plan_type": None}) is False


class TestLessonVisibility:

    def test_premium_flag_blocks_users_without_plan(self):
        lesson = {"is_premium": True, "required_plan": "none"}
        assert can_view_lesson(lesson, {"premium_plan_type": None}) is False
        assert can_view_lesson(lesson, {"premium_plan_type": "basic"}) is True

    def test_required_plan_still_applies(self):
        lesson = {"is_premium": True, "required_plan": "pro"}
        assert can_view_lesson(lesson, {"premium_plan_type": "basic"}) is False
        assert can_view_lesson(lesson, {"premium_plan_type": "pro"}) is True

    def test_free_lesson_is_open_to_anonymous(self):
        assert can_view_lesson({"required_plan": "none"}, None) is True
