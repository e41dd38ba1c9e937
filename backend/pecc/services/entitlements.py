"""
Entitlement Engine

Owns a user's premium plan and the lifecycle of redemption codes.

Plan state is a single field, ``premium_plan_type`` (``None`` meaning no
plan). Whether a user is premium is always projected from it at read time and
never stored, so the two can not drift apart.

Two writers touch a user's plan:

* code redemption: time-boxed, always sets ``premium_expiry_date``
* admin override (``set_plan``): indefinite, only clears the expiry when the
  plan is removed

Redemption flips the user and consumes the code in one atomic batch, with a
precondition that the code is still ``active`` at commit time. Of two
concurrent redeemers of the same code exactly one wins; the other gets
``CodeInvalid``.
"""

from datetime import datetime, timedelta, timezone
import logging
import secrets
from typing import Callable, List, Optional

from pecc.core.config import CODE_ALPHABET, CODE_GROUP_SIZE, CODE_LENGTH, PLAN_NONE, PLAN_BASIC, PLAN_PRO
from pecc.core.errors import CodeAlreadyExists, CodeInvalid, CodeNotFound, InvalidRequest, UserNotFound
from pecc.db.store import DocumentNotFound, DocumentStore, PreconditionFailed, SERVER_TIMESTAMP
from pecc.models.redemption import GenerateCodesRequest, RedeemResult
from pecc.services.utils import group_code, normalize_code

logger = logging.getLogger(__name__)

USERS = "users"
CODES = "redemption_codes"


def generate_random_code(length: int = CODE_LENGTH, group_size: int = CODE_GROUP_SIZE) -> str:
    raw = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    return group_code(raw, group_size)


def plan_fields(plan_type: Optional[str]) -> dict:
    """User fields written by an admin plan override"""
    if plan_type in (None, PLAN_NONE):
        return {"premium_plan_type": None, "premium_expiry_date": None}
    if plan_type not in (PLAN_BASIC, PLAN_PRO):
        raise InvalidRequest(f"Unknown plan type: {plan_type}")
    # Admin overrides carry no expiry; whatever expiry exists is left alone
    return {"premium_plan_type": plan_type}


class EntitlementService:
    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = None):
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ==================== REDEMPTION ====================
    async def redeem(self, code: str, user_id: str) -> RedeemResult:
        normalized = normalize_code(code)
        if not normalized:
            raise CodeInvalid()

        record = await self.store.find_one(CODES, {"code": normalized, "status": "active"})
        if not record:
            raise CodeInvalid()

        duration_days = int(record["duration_days"])
        expiry = self._clock() + timedelta(days=duration_days)

        batch = self.store.batch()
        batch.update(USERS, user_id, {
            "premium_plan_type": record["plan_type"],
            "premium_expiry_date": expiry.isoformat(),
            "redeemed_code": normalized
        })
        batch.update(CODES, record["id"], {
            "status": "redeemed",
            "redeemed_by_user_id": user_id,
            "redeemed_at": SERVER_TIMESTAMP
        }, expect={"status": "active"})

        try:
            await batch.commit()
        except PreconditionFailed:
            logger.warning("Code %s was redeemed concurrently; rejecting user %s", normalized, user_id)
            raise CodeInvalid()
        except DocumentNotFound as e:
            if e.collection == USERS:
                raise UserNotFound()
            raise CodeInvalid()

        logger.info("User %s redeemed %s plan for %d days", user_id, record["plan_type"], duration_days)
        return RedeemResult(
            plan_type=record["plan_type"],
            duration_days=duration_days,
            premium_expiry_date=expiry.isoformat()
        )

    # ==================== ADMIN OVERRIDE ====================
    async def set_plan(self, user_id: str, plan_type: Optional[str]) -> dict:
        fields = plan_fields(plan_type)
        try:
            await self.store.update(USERS, user_id, fields)
        except DocumentNotFound:
            raise UserNotFound()
        logger.info("Plan for user %s set to %s", user_id, fields["premium_plan_type"] or PLAN_NONE)
        return fields

    # ==================== CODE MANAGEMENT ====================
    async def generate_codes(self, request: GenerateCodesRequest, admin: dict = None) -> List[str]:
        if request.custom_code:
            if await self.store.find_one(CODES, {"code": request.custom_code}):
                raise CodeAlreadyExists()
            codes = [request.custom_code]
        else:
            codes = [generate_random_code() for _ in range(request.quantity)]

        # Inserted one by one; a partial failure leaves inert, unredeemed codes
        for code in codes:
            await self.store.create(CODES, {
                "code": code,
                "plan_type": request.plan_type,
                "duration_days": request.duration_days,
                "status": "active",
                "redeemed_by_user_id": None,
                "redeemed_at": None,
                "created_by": admin["id"] if admin else None,
                "created_at": SERVER_TIMESTAMP
            })

        logger.info("Generated %d %s code(s) for %d days", len(codes), request.plan_type, request.duration_days)
        return codes

    async def list_codes(self, status: str = None, limit: int = 500) -> List[dict]:
        filters = {"status": status} if status else None
        return await self.store.query(CODES, filters, order_by=[("created_at", -1)], limit=limit)

    async def delete_code(self, code_id: str) -> dict:
        try:
            record = await self.store.get(CODES, code_id)
        except DocumentNotFound:
            raise CodeNotFound()
        await self.store.delete(CODES, code_id)
        return record
