import logging
from typing import Optional

import httpx

from pecc.core.config import PAGBANK_ACCESS_TOKEN, PAGBANK_ENV, PAGBANK_TAX_ID, APP_NAME
from pecc.core.errors import PaymentGatewayError
from pecc.models.payment import CheckoutRequest, PixCharge

logger = logging.getLogger(__name__)


def get_pagbank_base_url():
    if PAGBANK_ENV == 'production':
        return "https://api.pagseguro.com"
    return "https://sandbox.api.pagseguro.com"


def customer_name(user_name: Optional[str], user_email: str) -> str:
    """PagBank rejects placeholder names, so fall back to the e-mail"""
    name = (user_name or "").strip()
    if not name or name.lower() == "n/a":
        return user_email
    return user_name


def build_order_payload(order: CheckoutRequest) -> dict:
    amount_cents = int(round(order.amount * 100))
    return {
        "customer": {
            "name": customer_name(order.user_name, order.user_email),
            "email": order.user_email,
            "tax_id": PAGBANK_TAX_ID
        },
        "items": [
            {
                "name": f"Plano {order.plan_name or order.plan_id} - {APP_NAME.upper()}",
                "quantity": 1,
                "unit_amount": amount_cents
            }
        ],
        "qr_codes": [
            {"amount": {"value": amount_cents}}
        ],
        # TODO: point at a /webhooks/pagbank route once paid orders grant plans
        "notification_urls": []
    }


async def create_pix_order(
    order: CheckoutRequest,
    access_token: str = None,
    transport: httpx.AsyncBaseTransport = None
) -> PixCharge:
    """Create a PagBank order and return its PIX QR code"""
    token = access_token if access_token is not None else PAGBANK_ACCESS_TOKEN
    if not token:
        logger.error("PagBank token not configured")
        raise PaymentGatewayError("Payment server configuration error", status_code=500)

    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {token}"
    }

    try:
        async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
            response = await client.post(
                f"{get_pagbank_base_url()}/orders",
                json=build_order_payload(order),
                headers=headers
            )
    except httpx.HTTPError as e:
        logger.exception("PagBank request failed")
        raise PaymentGatewayError("An unexpected error occurred", status_code=500) from e

    if response.is_error:
        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        logger.error("PagBank API error %s: %s", response.status_code, error_data)
        messages = error_data.get("error_messages") or [{}]
        detail = messages[0].get("description") or "Failed to communicate with the payment gateway"
        raise PaymentGatewayError(detail, status_code=response.status_code)

    data = response.json()
    qr_codes = data.get("qr_codes") or []
    if not qr_codes:
        raise PaymentGatewayError("Could not generate the PIX QR code", status_code=500)

    qr = qr_codes[0]
    png_link = next((link.get("href") for link in qr.get("links", []) if link.get("rel") == "QRCODE.PNG"), None)
    logger.info("PagBank order %s created for user %s", data.get("id"), order.user_id)
    return PixCharge(qr_code_text=qr.get("text", ""), qr_code_url=png_link)
