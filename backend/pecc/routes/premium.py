from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pecc.core.errors import PaymentGatewayError
from pecc.core.security import require_auth
from pecc.db import DocumentStore, get_store
from pecc.models.payment import CheckoutRequest
from pecc.models.redemption import RedeemCodeRequest, RedeemResult
from pecc.services.entitlements import EntitlementService
from pecc.services.payments import create_pix_order
from pecc.services.utils import get_plans, log_error

router = APIRouter(tags=["premium"])


def get_entitlements(store: DocumentStore = Depends(get_store)) -> EntitlementService:
    return EntitlementService(store)


# ========== PLANS ==========
@router.get("/plans")
async def list_plans():
    return get_plans()


# ========== REDEMPTION ==========
@router.post("/premium/redeem", response_model=RedeemResult)
async def redeem_code(
    request: RedeemCodeRequest,
    user: dict = Depends(require_auth),
    entitlements: EntitlementService = Depends(get_entitlements)
):
    return await entitlements.redeem(request.code, user["id"])


# ========== PIX CHECKOUT ==========
@router.post("/checkout/pagbank")
async def pagbank_checkout(order: CheckoutRequest, store: DocumentStore = Depends(get_store)):
    # Paid orders do not grant a plan yet; an admin applies it manually
    if not order.plan_id or not order.amount or not order.user_id or not order.user_email:
        return JSONResponse({"error": "Missing or invalid order data."}, status_code=400)

    try:
        charge = await create_pix_order(order)
    except PaymentGatewayError as e:
        if e.status_code >= 500:
            await log_error(store, "PaymentGatewayError", e.detail, "/checkout/pagbank", order.user_id)
        return JSONResponse({"error": e.detail}, status_code=e.status_code)

    return charge.model_dump()
