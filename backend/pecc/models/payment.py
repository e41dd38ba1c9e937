from pydantic import BaseModel
from typing import Optional


class CheckoutRequest(BaseModel):
    # All optional so missing fields get the gateway-style 400, not a 422
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    amount: Optional[float] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None


class PixCharge(BaseModel):
    qr_code_text: str
    qr_code_url: Optional[str] = None
