from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel

from pecc.core.config import RANKS
from pecc.core.security import require_admin
from pecc.db import DocumentNotFound, DocumentStore, get_store
from pecc.models.redemption import GenerateCodesRequest, GenerateCodesResponse
from pecc.models.user import AdminUserUpdate, PlanType
from pecc.services.access import is_premium
from pecc.services.entitlements import EntitlementService, plan_fields
from pecc.services.tickets import TicketService
from pecc.services.utils import create_audit_log

router = APIRouter(prefix="/admin", tags=["admin"])


class PlanChange(BaseModel):
    plan_type: PlanType


def get_entitlements(store: DocumentStore = Depends(get_store)) -> EntitlementService:
    return EntitlementService(store)


def public_user(user: dict) -> dict:
    user = {k: v for k, v in user.items() if k != "password_hash"}
    user["is_premium"] = is_premium(user)
    return user

# ==================== DASHBOARD STATS ====================
@router.get("/stats")
async def get_admin_stats(admin: dict = Depends(require_admin), store: DocumentStore = Depends(get_store)):
    plan_distribution = {
        "basic": await store.count("users", {"premium_plan_type": "basic"}),
        "pro": await store.count("users", {"premium_plan_type": "pro"})
    }
    return {
        "users": {
            "total": await store.count("users"),
            "premium": sum(plan_distribution.values()),
            "admins": await store.count("users", {"is_admin": True}),
            "plan_distribution": plan_distribution
        },
        "codes": {
            "active": await store.count("redemption_codes", {"status": "active"}),
            "redeemed": await store.count("redemption_codes", {"status": "redeemed"})
        },
        "support": {
            "open_tickets": await store.count("support_tickets", {"status": "open"})
        },
        "content": {
            "lessons": await store.count("lessons"),
            "tools": await store.count("tools")
        }
    }

# ==================== USERS MANAGEMENT ====================
@router.get("/users")
async def get_admin_users(
    admin: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
    search: str = None,
    plan: str = None,
    skip: int = 0,
    limit: int = 50
):
    query = {}
    if plan:
        query["premium_plan_type"] = None if plan == "none" else plan

    users = await store.query("users", query, order_by=[("created_at", -1)])
    if search:
        needle = search.casefold()
        users = [
            u for u in users
            if needle in u.get("email", "").casefold()
            or needle in u.get("display_name", "").casefold()
            or u.get("id") == search
        ]

    return {"users": [public_user(u) for u in users[skip:skip + limit]], "total": len(users)}

@router.get("/users/{user_id}")
async def get_admin_user_detail(
    user_id: str,
    admin: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store)
):
    try:
        user = await store.get("users", user_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="User not found")

    user = public_user(user)
    user["support_tickets"] = await TicketService(store).list_tickets(user_id=user_id, limit=50)
    return user

@router.put("/users/{user_id}")
async def update_admin_user(
    user_id: str,
    update_data: AdminUserUpdate,
    reason: str = None,
    admin: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store)
):
    try:
        user = await store.get("users", user_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="User not found")

    changes = update_data.model_dump(exclude_unset=True)
    update_dict = {k: v for k, v in changes.items() if k != "premium_plan_type" and v is not None}

    if "rank" in update_dict and update_dict["rank"] not in RANKS:
        raise HTTPException(status_code=400, detail=f"Invalid rank. Must be one of: {list(RANKS)}")
    if "display_name" in update_dict:
        update_dict["display_name"] = update_dict["display_name"].strip()
        if not update_dict["display_name"]:
            raise HTTPException(status_code=400, detail="Display name can not be empty")

    # Plan and its expiry move together, in the same write as the profile
    if "premium_plan_type" in changes:
        update_dict.update(plan_fields(changes["premium_plan_type"]))

    if not update_dict:
        raise HTTPException(status_code=400, detail="Nothing to update")

    try:
        await store.update("users", user_id, update_dict)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="User not found")

    await create_audit_log(
        store,
        admin=admin,
        action="user_update",
        target_type="user",
        target_id=user_id,
        old_value={k: user.get(k) for k in update_dict.keys()},
        new_value=update_dict,
        reason=reason
    )
    return {"message": "User updated successfully", "user": public_user({**user, **update_dict})}

@router.post("/users/{user_id}/plan")
async def set_user_plan(
    user_id: str,
    change: PlanChange,
    admin: dict = Depends(require_admin),
    entitlements: EntitlementService = Depends(get_entitlements),
    store: DocumentStore = Depends(get_store)
):
    fields = await entitlements.set_plan(user_id, change.plan_type)
    await create_audit_log(store, admin, "plan_change", "user", user_id, new_value=fields)
    return {"message": "Plan updated", **fields}

# ==================== REDEMPTION CODES ====================
@router.get("/codes")
async def get_admin_codes(
    admin: dict = Depends(require_admin),
    entitlements: EntitlementService = Depends(get_entitlements),
    status: str = None
):
    return {"codes": await entitlements.list_codes(status=status)}

@router.post("/codes", response_model=GenerateCodesResponse)
async def generate_admin_codes(
    request: GenerateCodesRequest,
    admin: dict = Depends(require_admin),
    entitlements: EntitlementService = Depends(get_entitlements),
    store: DocumentStore = Depends(get_store)
):
    codes = await entitlements.generate_codes(request, admin)
    await create_audit_log(store, admin, "codes_generate", "redemption_code", ",".join(codes[:5]),
                           new_value={**request.model_dump(), "count": len(codes)})
    return GenerateCodesResponse(codes=codes, plan_type=request.plan_type, duration_days=request.duration_days)

@router.delete("/codes/{code_id}")
async def delete_admin_code(
    code_id: str,
    admin: dict = Depends(require_admin),
    entitlements: EntitlementService = Depends(get_entitlements),
    store: DocumentStore = Depends(get_store)
):
    record = await entitlements.delete_code(code_id)
    await create_audit_log(store, admin, "code_delete", "redemption_code", code_id,
                           old_value={"code": record.get("code"), "status": record.get("status")})
    return {"message": "Code deleted"}

# ==================== ERRORS ====================
@router.get("/errors")
async def get_admin_errors(
    admin: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
    error_type: str = None,
    limit: int = 50
):
    query = {"error_type": error_type} if error_type else {}
    errors = await store.query("error_logs", query, order_by=[("created_at", -1)], limit=limit)
    return {"errors": errors, "total": await store.count("error_logs", query)}

# ==================== AUDIT LOGS ====================
@router.get("/audit-logs")
async def get_audit_logs(
    admin: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
    action: str = None,
    admin_id: str = None,
    limit: int = 100
):
    query = {}
    if action:
        query["action"] = action
    if admin_id:
        query["admin_id"] = admin_id

    logs = await store.query("audit_logs", query, order_by=[("created_at", -1)], limit=limit)
    return {"logs": logs, "total": await store.count("audit_logs", query)}
