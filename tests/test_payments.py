"""PagBank PIX order creation against a mocked gateway"""
import json

import httpx
import pytest

from pecc.core.errors import PaymentGatewayError
from pecc.models.payment import CheckoutRequest
from pecc.services.payments import build_order_payload, create_pix_order, customer_name

ORDER = CheckoutRequest(
    plan_id="pro",
    plan_name="Pro",
    amount=29.9,
    user_id="user-1",
    user_name="Maria Souza",
    user_email="maria@example.com"
)

PAGBANK_ORDER = {
    "id": "ORDE_123",
    "qr_codes": [{
        "text": "00020101021226830014br.gov.bcb.pix",
        "links": [
            {"rel": "QRCODE.BASE64", "href": "https://sandbox.api.pagseguro.com/qrcode/base64"},
            {"rel": "QRCODE.PNG", "href": "https://sandbox.api.pagseguro.com/qrcode/png"}
        ]
    }]
}


def mock_transport(status_code, payload=None, seen=None):
    def handler(request: httpx.Request):
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)
    return httpx.MockTransport(handler)


class TestOrderPayload:

    def test_amount_is_sent_in_cents(self):
        payload = build_order_payload(ORDER)
        assert payload["items"][0]["unit_amount"] == 2990
        assert payload["qr_codes"][0]["amount"]["value"] == 2990
        assert payload["items"][0]["name"] == "Plano Pro - STUDIO PECC"

    @pytest.mark.parametrize("name", [None, "", "   ", "N/A", "n/a"])
    def test_placeholder_names_fall_back_to_email(self, name):
        assert customer_name(name, "maria@example.com") == "maria@example.com"

    def test_real_name_is_kept(self):
        assert customer_name("Maria Souza", "maria@example.com") == "Maria Souza"


class TestCreatePixOrder:

    @pytest.mark.asyncio
    async def test_returns_qr_code(self):
        seen = []
        charge = await create_pix_order(ORDER, access_token="token", transport=mock_transport(201, PAGBANK_ORDER, seen))

        assert charge.qr_code_text == "00020101021226830014br.gov.bcb.pix"
        assert charge.qr_code_url == "https://sandbox.api.pagseguro.com/qrcode/png"

        request = seen[0]
        assert request.url.path == "/orders"
        assert request.headers["Authorization"] == "Bearer token"
        assert json.loads(request.content)["customer"]["email"] == "maria@example.com"

    @pytest.mark.asyncio
    async def test_missing_token_is_a_server_error(self):
        with pytest.raises(PaymentGatewayError) as exc:
            await create_pix_order(ORDER, access_token="", transport=mock_transport(201, PAGBANK_ORDER))
        assert exc.value.status_code == 500

    @pytest.mark.asyncio
    async def test_gateway_error_keeps_status_and_description(self):
        error = {"error_messages": [{"code": "40002", "description": "invalid_parameter: customer.tax_id"}]}
        with pytest.raises(PaymentGatewayError) as exc:
            await create_pix_order(ORDER, access_token="token", transport=mock_transport(400, error))
        assert exc.value.status_code == 400
        assert exc.value.detail == "invalid_parameter: customer.tax_id"

    @pytest.mark.asyncio
    async def test_order_without_qr_code(self):
        with pytest.raises(PaymentGatewayError) as exc:
            await create_pix_order(ORDER, access_token="token", transport=mock_transport(201, {"id": "ORDE_1"}))
        assert exc.value.status_code == 500

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PaymentGatewayError) as exc:
            await create_pix_order(ORDER, access_token="token", transport=httpx.MockTransport(handler))
        assert exc.value.status_code == 500
