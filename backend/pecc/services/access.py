"""
Access policy for gated content.

Pure functions only: no I/O, no store access. Lessons, tools and the download
endpoint all ask the same question, "does this user's plan satisfy the
resource's required plan?", and must get the same answer.
"""

from typing import Optional

from pecc.core.config import PLAN_BASIC, PLAN_NONE, PLAN_PRO


def can_access(required_plan: Optional[str], user_plan: Optional[str]) -> bool:
    required = required_plan or PLAN_NONE
    if required == PLAN_NONE:
        return True
    if required == PLAN_BASIC:
        return user_plan in (PLAN_BASIC, PLAN_PRO)
    if required == PLAN_PRO:
        return user_plan == PLAN_PRO
    # Unknown tiers are never satisfiable
    return False


def plan_of(user: Optional[dict]) -> str:
    """Current plan of a user document; anonymous and unknown values are 'none'"""
    if not user:
        return PLAN_NONE
    plan = user.get("premium_plan_type")
    return plan if plan in (PLAN_BASIC, PLAN_PRO) else PLAN_NONE


def is_premium(user: Optional[dict]) -> bool:
    return plan_of(user) != PLAN_NONE


def can_view_lesson(lesson: dict, user: Optional[dict]) -> bool:
    """Lessons carry a coarse premium flag on top of their required plan"""
    if lesson.get("is_premium") and not is_premium(user):
        return False
    return can_access(lesson.get("required_plan"), plan_of(user))
