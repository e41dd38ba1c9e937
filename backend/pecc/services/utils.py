from datetime import datetime, timezone
import logging
from typing import Optional

from pecc.core.config import PLANS
from pecc.db.store import DocumentStore, SERVER_TIMESTAMP

logger = logging.getLogger(__name__)


async def log_error(
    store: DocumentStore,
    error_type: str,
    error_message: str,
    endpoint: str,
    user_id: str = None,
    stack_trace: str = None
):
    """Log error to database"""
    error_doc = {
        "error_type": error_type,
        "error_message": error_message,
        "endpoint": endpoint,
        "user_id": user_id,
        "stack_trace": stack_trace,
        "created_at": SERVER_TIMESTAMP
    }
    try:
        await store.create("error_logs", error_doc)
    except Exception:
        # The store itself may be what failed; the log line is all we have then
        logger.exception("Could not persist error log for %s", endpoint)


async def create_audit_log(
    store: DocumentStore,
    admin: dict,
    action: str,
    target_type: str,
    target_id: str,
    old_value: dict = None,
    new_value: dict = None,
    reason: str = None
):
    """Create audit log entry"""
    audit = {
        "admin_id": admin["id"],
        "admin_email": admin.get("email", ""),
        "action": action,
        "target_type": target_type,
        "target_id": target_id,
        "old_value": old_value,
        "new_value": new_value,
        "reason": reason,
        "created_at": SERVER_TIMESTAMP
    }
    await store.create("audit_logs", audit)


def get_plans():
    return sorted(PLANS.values(), key=lambda x: x.get("sort_order", 0))


def normalize_code(code: Optional[str]) -> str:
    """Redemption codes are case-insensitive and stored uppercase"""
    return (code or "").strip().upper()


def group_code(raw: str, size: int) -> str:
    """ABCD1234EFGH -> ABCD-1234-EFGH"""
    return "-".join(raw[i:i + size] for i in range(0, len(raw), size))


def names_match(typed: Optional[str], expected: Optional[str]) -> bool:
    """Case-insensitive, whitespace-trimmed, accent-sensitive name comparison"""
    if not typed or not expected:
        return False
    return typed.strip().casefold() == expected.strip().casefold()


def parse_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def format_user_response(user: dict):
    """Format user dict for API response"""
    from pecc.models.user import UserResponse
    from pecc.services.access import plan_of

    created_at = user.get('created_at', datetime.now(timezone.utc).isoformat())
    if isinstance(created_at, datetime):
        created_at = created_at.isoformat()

    plan = plan_of(user)
    return UserResponse(
        id=user['id'],
        email=user['email'],
        display_name=user.get('display_name', ''),
        is_admin=user.get('is_admin', False),
        rank=user.get('rank', 'iniciante'),
        premium_plan_type=None if plan == "none" else plan,
        is_premium=plan != "none",
        premium_expiry_date=user.get('premium_expiry_date'),
        redeemed_code=user.get('redeemed_code'),
        photo_url=user.get('photo_url'),
        created_at=created_at
    )
