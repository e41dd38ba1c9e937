from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Literal, Optional

from pecc.core.config import MAX_CODES_PER_BATCH, MAX_CODE_DURATION_DAYS


class RedemptionCode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    code: str
    plan_type: Literal["basic", "pro"]
    duration_days: int
    status: Literal["active", "redeemed"] = "active"
    redeemed_by_user_id: Optional[str] = None
    redeemed_at: Optional[str] = None
    created_by: Optional[str] = None
    created_at: str


class GenerateCodesRequest(BaseModel):
    plan_type: Literal["basic", "pro"] = "basic"
    duration_days: int = Field(30, ge=1, le=MAX_CODE_DURATION_DAYS)
    quantity: int = Field(1, ge=1, le=MAX_CODES_PER_BATCH)
    custom_code: Optional[str] = None

    @field_validator("custom_code")
    @classmethod
    def normalize_custom_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None

    @model_validator(mode="after")
    def single_custom_code(self):
        # A literal code repeated N times would create N colliding records
        if self.custom_code and self.quantity != 1:
            raise ValueError("A custom code can only be generated with quantity 1")
        return self


class GenerateCodesResponse(BaseModel):
    codes: List[str]
    plan_type: str
    duration_days: int


class RedeemCodeRequest(BaseModel):
    code: str = Field(..., min_length=1)


class RedeemResult(BaseModel):
    plan_type: Literal["basic", "pro"]
    duration_days: int
    premium_expiry_date: str
